#!/usr/bin/env python3
"""
Script to rebuild the product similarity graph.

Deletes every similarity edge and recomputes category and co-purchase
edges for all active products. Runs the same code path as the nightly
scheduled job, in the foreground.

Usage:
    python scripts/db/rebuild_similarities.py
"""

import argparse
import asyncio
import os
import sys

# Add the project root to the Python path
sys.path.append(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
)

from src.api.recommendations.similarity_service import SimilarityEngine
from src.database.connection import engine


async def main() -> int:
    print("=" * 80)
    print("PRODUCT SIMILARITY REBUILD SCRIPT")
    print("=" * 80)
    print()

    similarity_engine = SimilarityEngine()

    try:
        results = await similarity_engine.rebuild_similarities()
    finally:
        # Properly dispose of the engine to close all connections
        await engine.dispose()

    print()
    print("=" * 80)
    print("SIMILARITY REBUILD RESULTS")
    print("=" * 80)
    print(f"✅ Products processed: {results['processed']}")
    print(f"🔗 Edges written:      {results['edges']}")
    print(f"❌ Failed products:    {results['failed']}")
    if results["error"]:
        print(f"❌ Rebuild aborted:    {results['error']}")
    print()
    print("=" * 80)
    print("SIMILARITY REBUILD COMPLETE")
    print("=" * 80)

    return 1 if results["error"] else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Rebuild the product similarity graph.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
The graph is deleted before it is rebuilt, so "similar products" falls back
to same-category products until the run finishes.
        """,
    )
    parser.parse_args()

    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n\n⚠️  Similarity rebuild interrupted by user")
        sys.exit(1)
