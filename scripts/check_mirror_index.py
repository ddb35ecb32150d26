#!/usr/bin/env python3
"""Audit the message index in Redis.

Usage:
    uv run python scripts/check_mirror_index.py [--host HOST] [--port PORT] [--repo ID] [--repair]

Walks every mirror target's posted message list and checks that each
message has a reverse entry pointing back to that target, and that no
message is listed by two targets. With ``--repair`` missing reverse
entries are written back; other issues are only reported.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from blob_mirror.config import RedisConfig
from blob_mirror.memory.redis_connection import RedisConnection
from blob_mirror.memory.redis_store import RedisContentStore
from blob_mirror.sync.registry import MirrorRegistry


async def run(args: argparse.Namespace) -> int:
    connection = RedisConnection(RedisConfig(host=args.host, port=args.port, db=args.db))
    try:
        await connection.connect()
        registry = MirrorRegistry(RedisContentStore(connection))
        issues = await registry.check_consistency(args.repo, repair=args.repair)
    finally:
        await connection.close()

    if not issues:
        print("Index is consistent")
        return 0

    for issue in issues:
        suffix = " (repaired)" if issue.repaired else ""
        detail = f": {issue.detail}" if issue.detail else ""
        print(f"  {issue.kind:<18} target={issue.target_id} message={issue.message_id}{detail}{suffix}")

    unresolved = [i for i in issues if not i.repaired]
    print(f"{len(issues)} issue(s), {len(unresolved)} unresolved")
    return 1 if unresolved else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Check mirror message index consistency")
    parser.add_argument("--host", default="localhost", help="Redis host")
    parser.add_argument("--port", type=int, default=6379, help="Redis port")
    parser.add_argument("--db", type=int, default=0, help="Redis database")
    parser.add_argument("--repo", default=None, help="Only check targets of this repository ID")
    parser.add_argument("--repair", action="store_true", help="Rewrite missing reverse entries")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
