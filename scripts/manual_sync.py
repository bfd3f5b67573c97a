#!/usr/bin/env python3
"""
Run a Shockball sync by hand.

Usage:
    python scripts/manual_sync.py                 # one regular sync cycle
    python scripts/manual_sync.py --full-rescan   # ignore tokens, sweep replay backlog
    python scripts/manual_sync.py --match ID      # fetch replay data for one match
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from shockball_analytics.core.config import settings
from shockball_analytics.core.database import SessionLocal
from shockball_analytics.core.logging import configure_logging, get_logger
from shockball_analytics.services.sync.orchestrator import SyncOrchestrator

logger = get_logger(__name__)


async def run(match_id: str = None, full_rescan: bool = False) -> bool:
    db = SessionLocal()
    orchestrator = SyncOrchestrator(db)
    try:
        if match_id:
            result = await orchestrator.sync_match_replay(match_id)
            ok = result["success"]
        else:
            result = await orchestrator.sync_matches(full_rescan=full_rescan)
            ok = result["error_count"] == 0

        print(json.dumps(result, indent=2))
        print("Rate budget:", json.dumps(orchestrator.client.get_rate_budget_status()))
        return ok
    finally:
        await orchestrator.close()
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Run a Shockball sync by hand")
    parser.add_argument("--match", metavar="ID", help="Fetch replay data for a single match")
    parser.add_argument(
        "--full-rescan",
        action="store_true",
        help="Ignore stored conditional tokens and backfill missing replays",
    )
    args = parser.parse_args()

    configure_logging(level=settings.LOG_LEVEL, json_output=False)

    ok = asyncio.run(run(match_id=args.match, full_rescan=args.full_rescan))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
