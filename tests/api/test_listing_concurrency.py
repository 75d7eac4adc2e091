"""Slow distance lookups must not hold up unrelated requests."""

import asyncio
import time

import httpx
import pytest

from gigboard.api.deps import build_in_memory_services
from gigboard.api.main import app
from gigboard.geo import Address, DistanceEstimator, GeoPoint

LOOKUP_SECONDS = 0.5


def _slow_route(request):
    time.sleep(LOOKUP_SECONDS)
    return httpx.Response(
        200, json={"features": [{"properties": {"segments": [{"distance": 2000}]}}]}
    )


@pytest.fixture
def services():
    estimator = DistanceEstimator(
        api_key="ors-key", client=httpx.Client(transport=httpx.MockTransport(_slow_route))
    )
    return build_in_memory_services(distance=estimator)


async def test_available_jobs_listing_leaves_loop_free(
    client, services, auth_headers, make_client, make_worker
):
    owner, worker = make_client(), make_worker()
    for i in range(4):
        services.jobs.create_job(
            client_id=owner.id,
            title=f"Fix tap {i}",
            description="Leaking",
            skill="plumber",
            address=Address(city="Bengaluru", location=GeoPoint(12.97 + i / 100, 77.60)),
        )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        listing = asyncio.create_task(
            http.get("/api/jobs/available", headers=auth_headers(worker))
        )
        await asyncio.sleep(0.3)

        started = time.monotonic()
        root = await http.get("/")
        root_latency = time.monotonic() - started

        listing_response = await listing

    assert root.status_code == 200
    assert root_latency < LOOKUP_SECONDS
    assert listing_response.status_code == 200
    assert [job["distance"] for job in listing_response.json()["jobs"]] == [2.0] * 4
