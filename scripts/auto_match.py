"""
Auto-match unlinked catalog entries to inventory items.

Links every unlinked Shopify product whose best inventory match reaches
the confidence threshold. Safe to re-run: linked entries are skipped.

Usage:
    python scripts/auto_match.py
    python scripts/auto_match.py --min-confidence 100   # SKU matches only
"""

import argparse
import sys
from pathlib import Path

# Add backend to path so we can import modules
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

from config import get_settings, create_supabase_client
from services.matching_service import MatchingService
import structlog

logger = structlog.get_logger(__name__)


def run_auto_match(min_confidence: int) -> bool:
    """Run one batch. Returns False if any entry failed."""
    settings = get_settings()
    db = create_supabase_client(settings)

    result = MatchingService(db, settings).auto_match_all(min_confidence=min_confidence)

    print(f"✓ Matched: {result.matched}")
    print(f"  Skipped (no confident match): {result.skipped}")

    if result.errors:
        print(f"✗ Errors: {len(result.errors)}")
        for error in result.errors:
            print(f"  - {error}")

    logger.info(
        "auto_match_script_complete",
        matched=result.matched,
        skipped=result.skipped,
        errors=len(result.errors)
    )
    return not result.errors


def main():
    parser = argparse.ArgumentParser(
        description="Link unlinked Shopify catalog entries to inventory items."
    )
    parser.add_argument(
        "--min-confidence",
        type=int,
        default=None,
        help="Minimum match confidence to link (default: AUTO_MATCH_MIN_CONFIDENCE, 95)",
    )
    args = parser.parse_args()

    min_confidence = args.min_confidence
    if min_confidence is None:
        min_confidence = get_settings().auto_match_min_confidence

    if not 0 <= min_confidence <= 100:
        print(f"ERROR: --min-confidence must be between 0 and 100, got {min_confidence}")
        sys.exit(1)

    sys.exit(0 if run_auto_match(min_confidence) else 1)


if __name__ == "__main__":
    main()
