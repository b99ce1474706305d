"""
Bulk product import.

Inserts records one at a time so a single bad row never aborts the batch.
Each insert goes through the shared ``RetryPolicy``: connection hiccups and
timeouts are retried with backoff, while duplicates and validation errors
fail on the first attempt. Failures are collected into the report instead of
stopping the import.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from salesbot.catalog.products import Product, ProductRecord
from salesbot.config.logging import get_logger
from salesbot.retry import RetryError, RetryPolicy

logger = get_logger(__name__)

InsertFn = Callable[[ProductRecord], Awaitable[Product]]


class FailedRecord(BaseModel):
    reference: str
    reason: str
    attempts: int = 1


class ImportReport(BaseModel):
    """Outcome of one bulk import run."""

    total: int = 0
    created: int = 0
    failed: list[FailedRecord] = Field(default_factory=list)
    skipped: int = 0

    @property
    def error_count(self) -> int:
        return len(self.failed)


def load_records(path: Path) -> list[dict[str, Any]]:
    """
    Read product rows from a JSON file.

    Accepts either a top-level list or ``{"products": [...]}``.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("products", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of products in {path}")
    return data


class BulkImporter:
    """
    Persist product records one at a time with per-record retries.

    Args:
        insert: Async function storing one record (e.g. ``store.create``)
        retry_policy: Shared retry primitive
    """

    def __init__(self, insert: InsertFn, retry_policy: RetryPolicy | None = None):
        self._insert = insert
        self._retry_policy = retry_policy or RetryPolicy()

    async def run(self, rows: Iterable[dict[str, Any] | ProductRecord]) -> ImportReport:
        report = ImportReport()

        for row in rows:
            report.total += 1
            try:
                record = row if isinstance(row, ProductRecord) else ProductRecord.model_validate(row)
            except ValidationError as e:
                # Rows without a reference are skipped, like blank spreadsheet lines.
                reference = str(row.get("reference") or "") if isinstance(row, dict) else ""
                if not reference:
                    report.skipped += 1
                    continue
                report.failed.append(FailedRecord(reference=reference, reason=str(e)))
                continue

            try:
                await self._retry_policy.retry(
                    lambda record=record: self._insert(record),
                    label=f"insert {record.reference}",
                )
            except RetryError as e:
                logger.error(f"Could not create product {record.reference}: {e}")
                report.failed.append(
                    FailedRecord(reference=record.reference, reason=str(e), attempts=e.attempts)
                )
                continue

            logger.debug(f"Product created: {record.reference}")
            report.created += 1

        logger.info(
            f"Import finished: {report.created} created, {report.error_count} failed, "
            f"{report.skipped} skipped (of {report.total})"
        )
        for failure in report.failed[:20]:
            logger.info(f"  reference={failure.reference} reason={failure.reason}")
        return report
