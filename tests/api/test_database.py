"""Tests for the Supabase storage adapters against a recording query builder."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from gigboard.api.database import (
    SupabaseJobStorage,
    SupabaseReviewStorage,
    apply_expected,
    to_row,
)
from gigboard.errors import DuplicateRecordError
from gigboard.geo import Address
from gigboard.lifecycle.models import CANCELLABLE_STATUSES, Job, Review


class FakeQuery:
    """Records chained PostgREST calls and returns canned rows."""

    def __init__(self, data=None, count=None, error=None):
        self.calls = []
        self.data = data or []
        self.count = count
        self.error = error

    def __getattr__(self, name):
        def method(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self

        return method

    def execute(self):
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=self.data, count=self.count)


def _db(query):
    db = MagicMock()
    db.table.return_value = query
    return db


def _job(**fields):
    values = dict(
        id="job-1",
        client_id="client-1",
        title="Fix tap",
        description="Leaking",
        skill="plumber",
        address=Address(city="Bengaluru"),
    )
    values.update(fields)
    return Job(**values)


class TestHelpers:
    def test_to_row(self):
        when = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
        row = to_row({"assigned_at": when, "address": Address(city="Mysuru"), "worker_id": None})
        assert row == {
            "assigned_at": "2024-05-01T09:30:00+00:00",
            "address": {"city": "Mysuru", "location": None},
            "worker_id": None,
        }

    def test_apply_expected(self):
        query = FakeQuery()
        apply_expected(query, {"status": CANCELLABLE_STATUSES, "worker_id": None, "client_id": "c1"})
        assert query.calls == [
            ("in_", ("status", ["posted", "assigned"]), {}),
            ("is_", ("worker_id", "null"), {}),
            ("eq", ("client_id", "c1"), {}),
        ]


class TestJobStorage:
    def test_claim_is_one_filtered_update(self):
        claimed = _job(status="assigned", worker_id="worker-1")
        query = FakeQuery(data=[claimed.to_dict()])
        storage = SupabaseJobStorage(_db(query))

        job = storage.update_job_where(
            "job-1",
            {"status": "posted", "worker_id": None},
            {"status": "assigned", "worker_id": "worker-1"},
        )

        assert job.worker_id == "worker-1"
        name, args, _ = query.calls[0]
        assert name == "update"
        assert args[0]["status"] == "assigned"
        assert "updated_at" in args[0]
        assert query.calls[1:] == [
            ("eq", ("id", "job-1"), {}),
            ("eq", ("status", "posted"), {}),
            ("is_", ("worker_id", "null"), {}),
        ]

    def test_lost_claim_returns_none(self):
        storage = SupabaseJobStorage(_db(FakeQuery(data=[])))
        assert storage.update_job_where("job-1", {"status": "posted"}, {"status": "assigned"}) is None

    def test_duplicate_insert(self):
        error = APIError({"code": "23505", "message": "duplicate key"})
        storage = SupabaseJobStorage(_db(FakeQuery(error=error)))
        with pytest.raises(DuplicateRecordError):
            storage.insert_job(_job())

    def test_other_api_errors_propagate(self):
        error = APIError({"code": "42P01", "message": "relation does not exist"})
        storage = SupabaseJobStorage(_db(FakeQuery(error=error)))
        with pytest.raises(APIError):
            storage.insert_job(_job())

    def test_empty_status_filter_skips_query(self):
        db = MagicMock()
        storage = SupabaseJobStorage(db)
        assert storage.list_jobs(statuses=[]) == []
        assert storage.count_jobs(statuses=[]) == 0
        db.table.assert_not_called()

    def test_count_by_status(self):
        query = FakeQuery(data=[{"status": "posted"}, {"status": "posted"}, {"status": "completed"}])
        storage = SupabaseJobStorage(_db(query))
        assert storage.count_jobs_by_status(client_id="c1") == {"posted": 2, "completed": 1}


class TestReviewStorage:
    def test_unique_violation_maps_to_duplicate(self):
        error = APIError({"code": "23505", "message": "duplicate key"})
        storage = SupabaseReviewStorage(_db(FakeQuery(error=error)))
        review = Review(
            id="r1",
            job_id="job-1",
            client_id="client-1",
            worker_id="worker-1",
            rating=5,
            review_type="client-to-worker",
        )
        with pytest.raises(DuplicateRecordError):
            storage.insert_review(review)
