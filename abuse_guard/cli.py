"""Command-line access to the rate-limit admin operations.

Usage examples:
  python -m abuse_guard.cli policies
  python -m abuse_guard.cli blocked login
  python -m abuse_guard.cli status review 64f0c2...
  python -m abuse_guard.cli unblock login 203.0.113.7
  python -m abuse_guard.cli purge --older-than-hours 48

Reads MONGODB_URI (and the rest of the settings) from the environment or the
project's .env file.
"""
import argparse
import json
import sys
from datetime import timedelta
from typing import List, Optional

from abuse_guard.config import RECORD_RETENTION_HOURS
from abuse_guard.errors import StoreUnavailable, UnknownPolicy
from abuse_guard.limiters import AddressRateLimiter
from abuse_guard.logging_config import setup_logging
from abuse_guard.registry import LimiterRegistry, build_store


def _print(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="abuse-guard", description=__doc__.splitlines()[0])
    parser.add_argument("--mongodb-uri", default=None, help="Override MONGODB_URI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("policies", help="List configured policies")

    blocked = sub.add_parser("blocked", help="List principals blocked today")
    blocked.add_argument("policy")

    status = sub.add_parser("status", help="Show one principal's standing")
    status.add_argument("policy")
    status.add_argument("principal")

    unblock = sub.add_parser("unblock", help="Reset every record of a principal")
    unblock.add_argument("policy")
    unblock.add_argument("principal")

    purge = sub.add_parser("purge", help="Delete records older than the retention window")
    purge.add_argument("--older-than-hours", type=int, default=RECORD_RETENTION_HOURS)
    purge.add_argument("--dry-run", action="store_true", help="Only print the cutoff")
    return parser


def run(args: argparse.Namespace, registry: LimiterRegistry) -> int:
    if args.command == "policies":
        _print([
            {
                "name": spec.name,
                "keyedBy": spec.keyed_by.value,
                "maxAttempts": spec.config.max_attempts,
                "blockDurationMs": spec.config.block_duration_ms,
            }
            for spec in registry.specs.values()
        ])
        return 0

    if args.command == "purge":
        cutoff = registry.now() - timedelta(hours=args.older_than_hours)
        if args.dry_run:
            _print({"cutoff": cutoff, "deleted": 0, "dry_run": True})
            return 0
        _print({"cutoff": cutoff, "deleted": registry.store.purge_expired(cutoff)})
        return 0

    limiter = registry.get(args.policy)

    if args.command == "blocked":
        _print([entry.to_dict() for entry in limiter.list_blocked()])
        return 0

    if args.command == "status":
        if isinstance(limiter, AddressRateLimiter):
            block = limiter.is_blocked(args.principal)
            _print({
                "limited": block.blocked,
                "remainingTime": block.remaining_time,
                "remainingAttempts": limiter.get_remaining_attempts(args.principal),
            })
        else:
            st = limiter.is_rate_limited(args.principal)
            _print({
                "limited": st.limited,
                "remainingTime": st.remaining_time,
                "remainingAttempts": st.remaining_attempts,
            })
        return 0

    if args.command == "unblock":
        touched = limiter.unblock(args.principal)
        if not touched:
            print(f"{args.principal} not found or not blocked under {args.policy}")
            return 1
        print(f"{args.principal} unblocked under {args.policy} ({touched} record(s) reset)")
        return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(log_format="text")
    registry = LimiterRegistry(build_store(args.mongodb_uri))
    try:
        return run(args, registry)
    except UnknownPolicy as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except StoreUnavailable as exc:
        print(f"Attempt store unavailable: {exc}", file=sys.stderr)
        return 3


if __name__ == "__main__":
    sys.exit(main())
