"""Tests for job lifecycle models."""

import pytest

from gigboard.geo import Address, GeoPoint
from gigboard.lifecycle.models import (
    CANCELLABLE_STATUSES,
    Job,
    JobStatus,
    Review,
    ReviewType,
)
from gigboard.lifecycle.storage import matches


def _job(**overrides):
    values = {
        "id": "job-1",
        "client_id": "client-1",
        "title": "Fix tap",
        "description": "Leaking",
        "skill": "plumber",
        "address": Address(city="Bengaluru"),
    }
    values.update(overrides)
    return Job(**values)


class TestJobValidation:
    """Test Job invariants enforced at construction."""

    def test_new_job_is_posted_and_claimable(self):
        job = _job()
        assert job.status == "posted"
        assert job.worker_id is None
        assert job.is_claimable

    def test_status_enum_is_normalised(self):
        assert _job(status=JobStatus.POSTED).status == "posted"

    def test_invalid_status_rejected(self):
        with pytest.raises(ValueError, match="Invalid status"):
            _job(status="cancelled")

    def test_unknown_skill_rejected(self):
        with pytest.raises(ValueError, match="Unknown skill"):
            _job(skill="astronaut")

    def test_address_needs_city_or_coordinates(self):
        with pytest.raises(ValueError, match="Address"):
            _job(address=Address())
        assert _job(address=Address(location=GeoPoint(12.9, 77.6))).address.city is None

    def test_posted_job_cannot_have_worker(self):
        with pytest.raises(ValueError, match="cannot have a worker"):
            _job(worker_id="worker-1")

    def test_held_job_needs_worker(self):
        with pytest.raises(ValueError, match="must have a worker"):
            _job(status="assigned")

    def test_completion_code_only_while_active(self):
        with pytest.raises(ValueError, match="Completion code"):
            _job(status="assigned", worker_id="w", completion_otp="123456")
        job = _job(status="active", worker_id="w", completion_otp="123456")
        assert job.completion_otp == "123456"

    def test_assigned_job_is_not_claimable(self):
        assert not _job(status="assigned", worker_id="w").is_claimable

    def test_dict_round_trip_keeps_address_and_dates(self):
        job = _job(address=Address(city="Pune", location=GeoPoint(18.52, 73.85)), urgency=True)
        data = job.to_dict()
        assert data["address"] == {"city": "Pune", "location": {"lat": 18.52, "lon": 73.85}}

        restored = Job.from_dict({**data, "created_at": "2026-01-01T10:00:00Z"})
        assert restored.address == job.address
        assert restored.urgency is True
        assert restored.created_at.year == 2026


class TestReviewValidation:
    def test_rating_bounds(self):
        for rating in (0, 6):
            with pytest.raises(ValueError, match="between 1 and 5"):
                Review(id="r", job_id="j", client_id="c", worker_id="w",
                       review_type=ReviewType.CLIENT_TO_WORKER, rating=rating)

    def test_bool_is_not_a_rating(self):
        with pytest.raises(ValueError, match="integer"):
            Review(id="r", job_id="j", client_id="c", worker_id="w",
                   review_type="client-to-worker", rating=True)

    def test_unknown_direction_rejected(self):
        with pytest.raises(ValueError, match="review type"):
            Review(id="r", job_id="j", client_id="c", worker_id="w",
                   review_type="admin-to-worker", rating=3)

    def test_review_text_defaults_to_empty(self):
        review = Review(id="r", job_id="j", client_id="c", worker_id="w",
                        review_type=ReviewType.WORKER_TO_CLIENT, rating=4, review=None)
        assert review.review == ""
        assert review.review_type == "worker-to-client"


class TestConditionMatching:
    """Test the ``expected`` mapping used by conditional writes."""

    def test_none_means_unset(self):
        job = _job()
        assert matches(job, {"worker_id": None})
        assert not matches(_job(status="assigned", worker_id="w"), {"worker_id": None})

    def test_collection_means_any_of(self):
        job = _job(status="assigned", worker_id="w")
        assert matches(job, {"status": CANCELLABLE_STATUSES})
        assert not matches(job, {"status": ("active", "completed")})

    def test_all_conditions_must_hold(self):
        job = _job(status="active", worker_id="w", completion_otp="111111")
        assert matches(job, {"worker_id": "w", "status": "active", "completion_otp": "111111"})
        assert not matches(job, {"worker_id": "w", "completion_otp": "222222"})
