#!/usr/bin/env python3
"""Remove every equipment catalog row (and its in-house inventory) before a reseed."""

from __future__ import annotations

import argparse
import os
import sys

from sqlalchemy import create_engine, text


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clear the equipment catalog.")
    parser.add_argument(
        "--db-url",
        default=os.environ.get("DATABASE_URL", "").strip(),
        help="SQLAlchemy DB URL; defaults to DATABASE_URL env var.",
    )
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt.")
    return parser


def clear_equipment(db_url: str) -> int:
    engine = create_engine(db_url, pool_pre_ping=True, future=True)
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM in_house_inventory"))
        conn.execute(text("DELETE FROM equipment_catalog"))
    with engine.connect() as conn:
        remaining = conn.execute(text("SELECT COUNT(*) FROM equipment_catalog")).scalar()
    return int(remaining or 0)


def main() -> int:
    args = _build_parser().parse_args()
    db_url = (args.db_url or "").strip()
    if not db_url:
        print("DATABASE_URL is not set. Provide --db-url or export env first.")
        return 2

    if not args.yes:
        answer = input("Delete all equipment catalog rows? [y/N] ").strip().lower()
        if answer not in {"y", "yes"}:
            print("Aborted.")
            return 1

    print("Clearing existing equipment...")
    try:
        remaining = clear_equipment(db_url)
    except Exception as exc:
        print(f"Clear error: {exc}")
        return 3
    print("Cleared existing equipment")
    print(f"Current count: {remaining}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
