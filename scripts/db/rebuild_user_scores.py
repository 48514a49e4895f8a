#!/usr/bin/env python3
"""
Script to rebuild precomputed user product scores.

Usage:
    python scripts/db/rebuild_user_scores.py                  # every user
    python scripts/db/rebuild_user_scores.py --user-id <uid>  # one user
"""

import argparse
import asyncio
import os
import sys

# Add the project root to the Python path
sys.path.append(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)

from src.api.recommendations.user_score_service import UserScoreEngine
from src.database.connection import engine


async def main(user_id=None) -> int:
    print("=" * 80)
    print("USER SCORE REBUILD SCRIPT")
    print("=" * 80)
    print()

    user_score_engine = UserScoreEngine()

    try:
        if user_id:
            ok = await user_score_engine.rebuild_user_scores(user_id)
            print(f"{'✅' if ok else '❌'} User {user_id}: {'rebuilt' if ok else 'failed'}")
            return 0 if ok else 1

        results = await user_score_engine.rebuild_all_user_scores()

        print()
        print("=" * 80)
        print("USER SCORE REBUILD RESULTS")
        print("=" * 80)
        print(f"✅ Successfully rebuilt: {results['success']} users")
        print(f"❌ Failed to rebuild:    {results['failed']} users")
        if results["total"] > 0:
            print(f"Success rate: {results['success'] / results['total'] * 100:.1f}%")
        print()
        return 1 if results.get("error") else 0

    finally:
        # Properly dispose of the engine to close all connections
        await engine.dispose()
        print("=" * 80)
        print("USER SCORE REBUILD COMPLETE")
        print("=" * 80)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Rebuild precomputed user product scores.",
    )
    parser.add_argument(
        "--user-id",
        help="Firebase UID of a single user to rebuild (default: all users)",
    )
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(main(args.user_id)))
    except KeyboardInterrupt:
        print("\n\n⚠️  User score rebuild interrupted by user")
        sys.exit(1)
