"""
Integration Test: HTTP API

Exercises the FastAPI routes through an in-process ASGI transport with an
injected runtime.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from doomsettle.main import create_app


@pytest.fixture
async def client(runtime):
    app = create_app(runtime)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


def actor(user_id) -> dict:
    return {"X-Actor-Id": str(user_id)}


async def create_event(client, clock, creator_id, sources=()):
    now = clock()
    response = await client.post(
        "/events",
        json={
            "title": "Will the reactor restart before 2027?",
            "betting_deadline": (now + timedelta(hours=1)).isoformat(),
            "event_deadline": (now + timedelta(hours=2)).isoformat(),
            "resolution_deadline": (now + timedelta(days=7)).isoformat(),
            "sources": list(sources),
        },
        headers=actor(creator_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] == "connected"


async def test_create_and_fetch_event(client, factory, clock):
    creator = await factory.user()
    event = await create_event(client, clock, creator.id)

    response = await client.get(f"/events/{event['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "active"
    assert body["phase"] == "active"
    assert body["deadlines"]["dispute_window_end"] is None


async def test_missing_actor_is_unauthorized(client):
    response = await client.post(f"/admin/events/{uuid4()}/finalize")
    assert response.status_code == 401


async def test_unknown_event_is_404(client):
    response = await client.get(f"/events/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


async def test_inverted_deadlines_are_rejected(client, factory, clock):
    creator = await factory.user()
    now = clock()
    response = await client.post(
        "/events",
        json={
            "title": "Backwards",
            "betting_deadline": (now + timedelta(hours=3)).isoformat(),
            "event_deadline": (now + timedelta(hours=2)).isoformat(),
            "resolution_deadline": (now + timedelta(days=7)).isoformat(),
        },
        headers=actor(creator.id),
    )

    assert response.status_code == 400
    assert set(response.json()) == {"error", "code"}


async def test_bet_then_duplicate_conflicts(client, factory, clock):
    creator = await factory.user()
    bettor = await factory.user()
    event = await create_event(client, clock, creator.id)
    url = f"/events/{event['id']}/bets"

    first = await client.post(url, json={"outcome": "doom", "amount": 100}, headers=actor(bettor.id))
    second = await client.post(url, json={"outcome": "life", "amount": 100}, headers=actor(bettor.id))

    assert first.status_code == 201
    assert first.json()["payout"] is None
    assert second.status_code == 409

    bets = await client.get(url)
    assert len(bets.json()) == 1


async def test_resolution_requirements_reflect_sources(client, factory, clock):
    creator = await factory.user()
    event = await create_event(
        client, clock, creator.id, sources=[{"name": "Feed", "source_type": "api", "is_primary": True}]
    )

    response = await client.get(f"/events/{event['id']}/resolution-requirements")

    assert response.status_code == 200
    body = response.json()
    assert body["type"] == "automatic"
    assert body["evidenceCount"] == 0


async def test_propose_and_dispute_window(client, factory, clock):
    creator = await factory.user()
    event = await create_event(client, clock, creator.id)
    event_id = event["id"]

    early = await client.post(f"/events/{event_id}/propose", json={"outcome": "doom"}, headers=actor(creator.id))
    assert early.status_code == 400

    clock.advance(hours=3)
    proposed = await client.post(f"/events/{event_id}/propose", json={"outcome": "doom"}, headers=actor(creator.id))
    assert proposed.status_code == 200
    assert proposed.json()["proposed_outcome"] == "doom"

    window = (await client.get(f"/events/{event_id}/dispute-window")).json()
    assert window["isResolved"] is True
    assert window["proposedOutcome"] == "doom"
    assert window["canDispute"] is True
    assert window["minimumStake"] == 50
    assert window["disputeWindowEnd"] is not None


async def test_dispute_flow_and_closed_window(client, factory, clock):
    creator = await factory.user()
    disputer = await factory.user(doom=500)
    event = await create_event(client, clock, creator.id)
    event_id = event["id"]
    clock.advance(hours=3)
    await client.post(f"/events/{event_id}/propose", json={"outcome": "life"}, headers=actor(creator.id))

    filed = await client.post(
        f"/events/{event_id}/disputes",
        json={"stake_amount": 50, "reason": "Reactor is still offline"},
        headers=actor(disputer.id),
    )
    assert filed.status_code == 201
    dispute_id = filed.json()["id"]

    duplicate = await client.post(
        f"/events/{event_id}/disputes",
        json={"stake_amount": 50, "reason": "Again"},
        headers=actor(disputer.id),
    )
    assert duplicate.status_code == 409

    appended = await client.post(
        f"/disputes/{dispute_id}/evidence",
        json={"evidence": ["https://example.org/outage"]},
        headers=actor(disputer.id),
    )
    assert appended.status_code == 200
    assert appended.json()["evidence"] == ["https://example.org/outage"]

    clock.advance(hours=25)
    late = await client.post(
        f"/events/{event_id}/disputes",
        json={"stake_amount": 50, "reason": "Late"},
        headers=actor((await factory.user()).id),
    )
    assert late.status_code == 403


async def test_admin_finalize_and_cancel(client, factory, clock, queue):
    creator = await factory.user()
    admin = uuid4()
    event = await create_event(client, clock, creator.id)
    event_id = event["id"]
    clock.advance(hours=3)
    await client.post(f"/events/{event_id}/propose", json={"outcome": "doom"}, headers=actor(creator.id))

    too_early = await client.post(f"/admin/events/{event_id}/finalize", headers=actor(admin))
    assert too_early.status_code == 409

    clock.advance(hours=24)
    finalized = await client.post(f"/admin/events/{event_id}/finalize", headers=actor(admin))
    assert finalized.status_code == 202
    assert finalized.json()["data"]["job_id"].startswith(f"resolve:{event_id}:")
    assert len(queue.jobs("resolution")) == 1

    cancelled = await client.post(f"/admin/events/{event_id}/cancel", headers=actor(admin))
    assert cancelled.status_code == 202
    assert (await client.get(f"/events/{event_id}")).json()["status"] == "cancelled"


async def test_failed_jobs_listing(client):
    response = await client.get("/admin/jobs/failed")

    assert response.status_code == 200
    assert response.json() == []
