#!/usr/bin/env python3
"""Database overview and integrity checks for Rental Hub."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine


EXPECTED_TABLES = [
    "equipment_categories",
    "equipment_catalog",
    "rental_partners",
    "in_house_inventory",
    "quotes",
    "quote_items",
    "leads",
    "quickbooks_tokens",
]

EXPECTED_COLUMNS: dict[str, list[str]] = {
    "in_house_inventory": [
        "id",
        "catalog_id",
        "quantity_owned",
        "quantity_available",
        "storage_location",
        "serial_numbers",
        "purchase_price",
        "condition",
        "is_active",
    ],
    "equipment_catalog": ["id", "sku", "name", "category", "daily_rate", "partner_id", "is_active"],
    "quotes": ["id", "quote_number", "client_email", "status", "pricing", "deposit_required"],
    "quickbooks_tokens": ["id", "access_token", "refresh_token", "expires_at", "realm_id", "created_at"],
}


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).scalar()


def _rows(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).all()


def _table_names(engine: Engine) -> set[str]:
    return set(inspect(engine).get_table_names())


def _column_names(engine: Engine, table_name: str) -> set[str]:
    return {str(column["name"]) for column in inspect(engine).get_columns(table_name)}


def _run_existence_checks(tables: set[str]) -> list[CheckResult]:
    results: list[CheckResult] = []
    for table in EXPECTED_TABLES:
        exists = table in tables
        results.append(CheckResult(f"table:{table}", exists, "present" if exists else "missing"))
    return results


def _run_column_checks(engine: Engine, tables: set[str]) -> list[CheckResult]:
    results: list[CheckResult] = []
    for table, expected in EXPECTED_COLUMNS.items():
        if table not in tables:
            results.append(CheckResult(f"columns:{table}", False, "table missing"))
            continue
        actual = _column_names(engine, table)
        missing = [name for name in expected if name not in actual]
        results.append(
            CheckResult(
                f"columns:{table}",
                not missing,
                "ok" if not missing else f"missing={','.join(missing)}",
            )
        )
    return results


def _count_check(engine: Engine, name: str, sql: str) -> CheckResult:
    count = int(_scalar(engine, sql) or 0)
    return CheckResult(name, count == 0, f"count={count}")


def _run_integrity_checks(engine: Engine, tables: set[str]) -> list[CheckResult]:
    checks: list[CheckResult] = []

    if "in_house_inventory" in tables:
        checks.append(
            _count_check(
                engine,
                "inventory:available_exceeds_owned",
                "SELECT COUNT(*) FROM in_house_inventory WHERE quantity_available > quantity_owned",
            )
        )
        checks.append(
            _count_check(
                engine,
                "inventory:negative_available",
                "SELECT COUNT(*) FROM in_house_inventory WHERE quantity_available < 0",
            )
        )
        checks.append(
            _count_check(
                engine,
                "inventory:duplicate_active_catalog_id",
                """
                SELECT COUNT(*)
                FROM (
                    SELECT catalog_id
                    FROM in_house_inventory
                    WHERE is_active = TRUE
                    GROUP BY catalog_id
                    HAVING COUNT(*) > 1
                ) d
                """,
            )
        )

    if "in_house_inventory" in tables and "equipment_catalog" in tables:
        checks.append(
            _count_check(
                engine,
                "inventory:orphan_catalog_id",
                """
                SELECT COUNT(*)
                FROM in_house_inventory ih
                LEFT JOIN equipment_catalog ec ON ec.id = ih.catalog_id
                WHERE ec.id IS NULL
                """,
            )
        )

    if "quote_items" in tables and "quotes" in tables:
        checks.append(
            _count_check(
                engine,
                "quote_items:orphan_quote_id",
                """
                SELECT COUNT(*)
                FROM quote_items qi
                LEFT JOIN quotes q ON q.id = qi.quote_id
                WHERE q.id IS NULL
                """,
            )
        )

    return checks


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine, tables: set[str]) -> None:
    _print_section("Row Counts")
    for table in EXPECTED_TABLES:
        if table not in tables:
            print(f"{table}: missing")
            continue
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def _print_samples(engine: Engine, tables: set[str], sample_size: int) -> None:
    _print_section("Sample Values")
    sample_size = max(1, sample_size)

    if "in_house_inventory" in tables:
        rows = _rows(
            engine,
            """
            SELECT catalog_id, quantity_owned, quantity_available, storage_location
            FROM in_house_inventory
            ORDER BY created_at DESC
            LIMIT :n
            """,
            {"n": sample_size},
        )
        print("in_house_inventory (recent):")
        for row in rows:
            print(f"  - {tuple(row)}")

    if "quotes" in tables:
        rows = _rows(
            engine,
            """
            SELECT quote_number, client_email, status, created_at
            FROM quotes
            ORDER BY created_at DESC
            LIMIT :n
            """,
            {"n": sample_size},
        )
        print("quotes (recent):")
        for row in rows:
            print(f"  - {tuple(row)}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Rental Hub DB overview")
    parser.add_argument("--db-url", default=os.environ.get("DATABASE_URL", ""))
    parser.add_argument("--samples", type=int, default=5)
    args = parser.parse_args()

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("DATABASE_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        # Force a quick connectivity check first.
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    tables = _table_names(engine)
    _print_results("Table Existence", _run_existence_checks(tables))
    _print_results("Column Checks", _run_column_checks(engine, tables))
    _print_results("Integrity Checks", _run_integrity_checks(engine, tables))
    _print_row_counts(engine, tables)
    _print_samples(engine, tables, args.samples)
    return 0


if __name__ == "__main__":
    sys.exit(main())
