#!/usr/bin/env python3
"""
Primary Image Repair Script

Restores the one-primary-image-per-city rule:
- cities with several primary screenshots keep only the first in display order
- cities with screenshots but no primary get their first screenshot promoted

Usage:
    python api/scripts/fix_primary_images.py

Options:
    --dry-run       Report what would change without writing
    --skip-assign   Only repair duplicates, leave cities without a primary alone
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Allow running from a checkout without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

load_dotenv()

from cities_collective.db import session_scope  # noqa: E402
from cities_collective.services.images import (  # noqa: E402
    ensure_primary_images,
    fix_duplicate_primary_images,
)


def run(dry_run: bool = False, skip_assign: bool = False) -> tuple[int, int]:
    """Returns (duplicates fixed, primaries assigned)."""
    with session_scope() as db:
        duplicates = fix_duplicate_primary_images(db, dry_run=dry_run)
        assigned = 0 if skip_assign else ensure_primary_images(db, dry_run=dry_run)
    return duplicates, assigned


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Repair primary image flags on city screenshots")
    parser.add_argument("--dry-run", action="store_true", help="Preview without making changes")
    parser.add_argument(
        "--skip-assign", action="store_true", help="Do not promote an image for cities without a primary"
    )
    args = parser.parse_args(argv)

    logger.info("=" * 60)
    logger.info("Primary Image Repair")
    logger.info("=" * 60)
    if args.dry_run:
        logger.info("DRY RUN MODE - No changes will be made")

    duplicates, assigned = run(dry_run=args.dry_run, skip_assign=args.skip_assign)

    verb = "would be" if args.dry_run else "were"
    logger.info(f"Cities with duplicate primaries that {verb} fixed: {duplicates}")
    if not args.skip_assign:
        logger.info(f"Cities that {verb} given a primary image: {assigned}")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
