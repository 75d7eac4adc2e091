"""Tests for the admin routes."""

import pytest

from gigboard.api.auth import verify_admin_password
from gigboard.geo import Address
from gigboard.identity.passwords import hash_password


@pytest.fixture
def admin(auth_headers):
    return auth_headers("admin")


@pytest.fixture
def completed_job(services, make_client, make_worker):
    owner, worker = make_client(), make_worker()
    job = services.jobs.create_job(
        client_id=owner.id,
        title="Fix tap",
        description="Leaking",
        skill="plumber",
        address=Address(city="Bengaluru"),
    )
    services.jobs.accept_job(job.id, worker.id)
    services.jobs.start_job(job.id, owner.id)
    code = services.jobs.generate_completion_otp(job.id, worker.id)
    return services.jobs.complete_job(job.id, owner.id, code)


class TestAdminLogin:
    def test_login(self, client):
        response = client.post("/api/admin/login", json={"password": "test-admin-password"})
        assert response.status_code == 200
        token = response.json()["token"]

        stats = client.get("/api/admin/stats", headers={"Authorization": f"Bearer {token}"})
        assert stats.status_code == 200

    def test_wrong_password(self, client):
        response = client.post("/api/admin/login", json={"password": "guess"})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"

    def test_non_admin_token(self, client, auth_headers, make_worker):
        response = client.get("/api/admin/stats", headers=auth_headers(make_worker()))
        assert response.status_code == 403

    def test_hashed_password(self):
        configured = hash_password("letmein-admin")
        assert verify_admin_password("letmein-admin", configured)
        assert not verify_admin_password("nope", configured)
        assert not verify_admin_password("anything", None)


class TestDashboard:
    def test_stats(self, client, admin, completed_job, make_worker):
        make_worker()
        stats = client.get("/api/admin/stats", headers=admin).json()["stats"]

        assert stats["total_clients"] == 1
        assert stats["total_workers"] == 2
        assert stats["total_jobs"] == 1
        assert stats["jobs_by_status"] == {"completed": 1}
        assert stats["total_reviews"] == 0
        assert stats["pending_verifications"] == 0

    def test_stats_are_cached(self, client, admin, make_worker):
        first = client.get("/api/admin/stats", headers=admin).json()["stats"]
        make_worker()
        second = client.get("/api/admin/stats", headers=admin).json()["stats"]
        assert second == first

    def test_skill_distribution(self, client, admin, completed_job, make_worker):
        make_worker(skills=("tutor",))
        body = client.get("/api/admin/distribution/skills", headers=admin).json()
        assert body["distribution"] == [
            {"skill": "plumber", "workers": 1, "jobs": 1},
            {"skill": "tutor", "workers": 1, "jobs": 0},
        ]

    def test_job_listing(self, client, admin, completed_job):
        body = client.get("/api/admin/jobs", params={"status": "completed"}, headers=admin).json()
        assert [j["id"] for j in body["jobs"]] == [completed_job.id]
        assert "completion_otp" not in body["jobs"][0]

        stats = client.get("/api/admin/jobs/stats", headers=admin).json()
        assert stats["by_skill"] == {"plumber": 1}


class TestUsers:
    def test_list_and_block(self, client, admin, auth_headers, make_worker):
        worker = make_worker()
        body = client.get("/api/admin/users", params={"role": "worker"}, headers=admin).json()
        assert [u["id"] for u in body["users"]] == [worker.id]
        assert body["pagination"]["total"] == 1

        blocked = client.put(f"/api/admin/users/worker/{worker.id}/block", headers=admin)
        assert blocked.json()["user"]["blocked"] is True
        assert client.get("/api/jobs/available", headers=auth_headers(worker)).status_code == 403

        client.put(f"/api/admin/users/worker/{worker.id}/unblock", headers=admin)
        assert client.get("/api/jobs/available", headers=auth_headers(worker)).status_code == 200

    def test_block_unknown_user(self, client, admin):
        assert client.put("/api/admin/users/client/ghost/block", headers=admin).status_code == 404

    def test_invalid_role(self, client, admin):
        response = client.put("/api/admin/users/admin/x/block", headers=admin)
        assert response.status_code == 400


class TestVerification:
    def test_pending_then_approve(self, client, admin, make_worker, services):
        worker = make_worker()
        services.accounts.submit_identity_document("worker", worker.id, "123456789012", b"x", "a.jpg")

        pending = client.get("/api/admin/verification/pending", headers=admin).json()
        assert pending["total"] == 1
        assert pending["users"][0]["id"] == worker.id

        approved = client.put(f"/api/admin/verification/worker/{worker.id}/approve", headers=admin)
        assert approved.json()["verification_status"] == "verified"
        assert client.get("/api/admin/verification/pending", headers=admin).json()["total"] == 0

    def test_reject(self, client, admin, make_client, services):
        owner = make_client()
        services.accounts.submit_identity_document("client", owner.id, "123456789012", b"x", "a.jpg")
        rejected = client.put(f"/api/admin/verification/client/{owner.id}/reject", headers=admin)
        assert rejected.json()["verification_status"] == "rejected"


class TestReviews:
    def test_list_and_delete(self, client, admin, completed_job, services):
        review = services.reviews.rate_worker(completed_job.id, completed_job.client_id, 2, "Late")

        body = client.get("/api/admin/reviews", params={"review_type": "client-to-worker"}, headers=admin).json()
        assert [r["id"] for r in body["reviews"]] == [review.id]

        assert client.delete(f"/api/admin/reviews/{review.id}", headers=admin).status_code == 200
        assert client.delete(f"/api/admin/reviews/{review.id}", headers=admin).status_code == 404
