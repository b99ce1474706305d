"""
Unit tests for BulkImporter and load_records.
"""

import json

import pytest

from salesbot.catalog.importer import BulkImporter, load_records
from salesbot.catalog.products import InMemoryProductStore
from salesbot.retry import RetryPolicy


class FakeSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyInsert:
    """Fails with a connection error ``failures`` times, then stores the record."""

    def __init__(self, store, failures: int):
        self.store = store
        self.failures = failures
        self.calls = 0

    async def __call__(self, record):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("connection reset by peer")
        return await self.store.create(record)


@pytest.fixture
def sleep():
    return FakeSleep()


@pytest.fixture
def policy(sleep):
    return RetryPolicy(max_attempts=3, initial_delay=0.5, factor=2.0, jitter=0.0, sleep=sleep)


@pytest.fixture
def store():
    return InMemoryProductStore()


ROWS = [
    {"code": "TK-1", "reference": "R1", "description": "Teclado", "stock": 4, "retail_price": 20},
    {"code": "MS-1", "reference": "R2", "description": "Mouse", "stock": 10, "retail_price": 8},
]


class TestBulkImporter:
    """Tests for per-record import with retries."""

    @pytest.mark.asyncio
    async def test_imports_all_rows(self, store, policy):
        report = await BulkImporter(store.create, policy).run(ROWS)

        assert report.total == 2
        assert report.created == 2
        assert report.error_count == 0
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_duplicate_is_not_retried(self, store, policy, sleep):
        calls = 0

        async def insert(record):
            nonlocal calls
            calls += 1
            return await store.create(record)

        report = await BulkImporter(insert, policy).run([ROWS[0], dict(ROWS[0])])

        assert report.created == 1
        assert report.error_count == 1
        failure = report.failed[0]
        assert failure.reference == "R1"
        assert failure.attempts == 1
        assert "Non-retryable" in failure.reason
        assert calls == 2
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_negative_stock_fails_without_retry(self, store, policy, sleep):
        report = await BulkImporter(store.create, policy).run([{"reference": "R9", "stock": -2}])

        assert report.failed[0].attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, store, policy, sleep):
        insert = FlakyInsert(store, failures=2)

        report = await BulkImporter(insert, policy).run([ROWS[0]])

        assert report.created == 1
        assert insert.calls == 3
        assert sleep.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_are_recorded(self, store, policy):
        insert = FlakyInsert(store, failures=10)

        report = await BulkImporter(insert, policy).run(ROWS)

        assert report.created == 0
        assert [f.attempts for f in report.failed] == [3, 3]
        assert "after 3 attempts" in report.failed[0].reason

    @pytest.mark.asyncio
    async def test_one_bad_row_does_not_stop_the_batch(self, store, policy):
        rows = [ROWS[0], {"reference": "R5", "stock": "muchos"}, ROWS[1]]

        report = await BulkImporter(store.create, policy).run(rows)

        assert report.created == 2
        assert [f.reference for f in report.failed] == ["R5"]

    @pytest.mark.asyncio
    async def test_rows_without_reference_are_skipped(self, store, policy):
        report = await BulkImporter(store.create, policy).run([{"description": "fila vacía"}, ROWS[0]])

        assert report.total == 2
        assert report.skipped == 1
        assert report.created == 1
        assert report.error_count == 0


class TestLoadRecords:
    """Tests for reading the import file."""

    def test_top_level_list(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_text(json.dumps(ROWS), encoding="utf-8")
        assert load_records(path) == ROWS

    def test_products_key(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_text(json.dumps({"products": ROWS}), encoding="utf-8")
        assert load_records(path) == ROWS

    def test_rejects_other_shapes(self, tmp_path):
        path = tmp_path / "products.json"
        path.write_text(json.dumps("nope"), encoding="utf-8")
        with pytest.raises(ValueError):
            load_records(path)
