"""Pydantic response models for the admin API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PolicyOut(_CamelModel):
    name: str
    keyed_by: str = Field(alias="keyedBy")
    max_attempts: int = Field(alias="maxAttempts")
    window_ms: int = Field(alias="windowMs")
    block_duration_ms: int = Field(alias="blockDurationMs")
    description: str = ""


class BlockedPrincipalOut(_CamelModel):
    principal: str
    label: Optional[str] = None
    attempt_count: int = Field(alias="attemptCount")
    last_attempt: Optional[datetime] = Field(default=None, alias="lastAttempt")
    blocked_until: Optional[datetime] = Field(default=None, alias="blockedUntil")
    remaining_time: int = Field(alias="remainingTime")


class BlockedListOut(_CamelModel):
    policy: str
    count: int
    items: List[BlockedPrincipalOut]


class PrincipalStatusOut(_CamelModel):
    policy: str
    principal: str
    limited: bool
    remaining_attempts: int = Field(alias="remainingAttempts")
    remaining_time: Optional[int] = Field(default=None, alias="remainingTime")
    message: Optional[str] = None


class UnblockOut(_CamelModel):
    message: str
    policy: str
    principal: str
    records_reset: int = Field(alias="recordsReset")


class PurgeOut(_CamelModel):
    deleted: int
    cutoff: datetime
