"""
Integration tests for the /api/v1/missions endpoints.

Walks a mission through its lifecycle (open, assigned, in progress,
completed) and checks the role and status guards on each transition.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.models.mission import ApplicationStatus, MissionApplication, MissionStatus
from marketplace.models.notification import Notification
from marketplace.models.revenue import Revenue, RevenueStatus, RevenueType
from marketplace.models.user import UserRole
from marketplace.testing import create_application, create_mission, create_user, get_auth_headers


def _mission_payload(**overrides):
    return {
        "title": "Wedding coverage",
        "description": "Full evening coverage",
        "type": "event",
        "address": "Olaya Street",
        "city": "Riyadh",
        "scheduled_date": (datetime.now(timezone.utc) + timedelta(days=10)).isoformat(),
        "duration_hours": 5,
        "budget_min": 500,
        "budget_max": 900,
        **overrides,
    }


@pytest.mark.integration
async def test_create_mission_notifies_partners(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    partner = await create_user(session, role=UserRole.partner)
    await create_user(session)

    response = await client.post("/api/v1/missions/", json=_mission_payload(), headers=get_auth_headers(admin))

    assert response.status_code == 201
    assert response.json()["status"] == "open"
    assert response.json()["created_by_id"] == admin.id
    notes = (await session.exec(select(Notification))).all()
    assert [note.user_id for note in notes] == [partner.id]


@pytest.mark.integration
async def test_create_mission_validation(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    user = await create_user(session)

    bad_budget = await client.post(
        "/api/v1/missions/", json=_mission_payload(budget_min=1000), headers=get_auth_headers(admin)
    )
    not_staff = await client.post("/api/v1/missions/", json=_mission_payload(), headers=get_auth_headers(user))

    assert bad_budget.status_code == 422
    assert not_staff.status_code == 403


@pytest.mark.integration
async def test_open_missions_listing(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    user = await create_user(session)
    await create_mission(session, admin, city="Jeddah")
    await create_mission(session, admin, city="Riyadh")
    await create_mission(session, admin, status=MissionStatus.cancelled)

    response = await client.get("/api/v1/missions/open?city=Jeddah", headers=get_auth_headers(user))
    everything = await client.get("/api/v1/missions/open", headers=get_auth_headers(user))

    assert [row["city"] for row in response.json()["data"]] == ["Jeddah"]
    assert everything.json()["results"] == 2


@pytest.mark.integration
async def test_apply_rules(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    partner = await create_user(session, role=UserRole.partner)
    user = await create_user(session)
    mission = await create_mission(session, admin)
    closed = await create_mission(session, admin, status=MissionStatus.cancelled)
    payload = {"proposed_budget": 700, "message": "Available"}

    applied = await client.post(f"/api/v1/missions/{mission.id}/apply", json=payload, headers=get_auth_headers(partner))
    twice = await client.post(f"/api/v1/missions/{mission.id}/apply", json=payload, headers=get_auth_headers(partner))
    not_partner = await client.post(f"/api/v1/missions/{mission.id}/apply", json=payload, headers=get_auth_headers(user))
    not_open = await client.post(f"/api/v1/missions/{closed.id}/apply", json=payload, headers=get_auth_headers(partner))

    assert applied.status_code == 201
    assert applied.json()["status"] == "pending"
    assert twice.status_code == 400
    assert twice.json()["code"] == "already_applied"
    assert not_partner.status_code == 403
    assert not_open.json()["code"] == "mission_not_open"


@pytest.mark.integration
async def test_accept_application_assigns_and_rejects_others(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    chosen = await create_user(session, role=UserRole.partner)
    other = await create_user(session, role=UserRole.partner)
    mission = await create_mission(session, admin)
    await create_application(session, mission, chosen, proposed_budget=650)
    await create_application(session, mission, other, proposed_budget=600)

    response = await client.post(
        f"/api/v1/missions/{mission.id}/accept/{chosen.id}", headers=get_auth_headers(admin)
    )
    again = await client.post(f"/api/v1/missions/{mission.id}/accept/{other.id}", headers=get_auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "assigned"
    assert body["assigned_to_id"] == chosen.id
    assert body["final_budget"] == 650
    statuses = {
        application.partner_id: application.status
        for application in (await session.exec(select(MissionApplication))).all()
    }
    assert statuses == {chosen.id: ApplicationStatus.accepted, other.id: ApplicationStatus.rejected}
    assert again.json()["code"] == "mission_not_open"


@pytest.mark.integration
async def test_full_mission_lifecycle(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    partner = await create_user(session, role=UserRole.partner)
    intruder = await create_user(session, role=UserRole.partner)
    mission = await create_mission(session, admin, status=MissionStatus.assigned, assigned_to_id=partner.id, final_budget=800)
    headers = get_auth_headers(partner)

    too_early = await client.post(f"/api/v1/missions/{mission.id}/complete", json={}, headers=headers)
    wrong_partner = await client.post(f"/api/v1/missions/{mission.id}/start", headers=get_auth_headers(intruder))
    started = await client.post(f"/api/v1/missions/{mission.id}/start", headers=headers)
    completed = await client.post(
        f"/api/v1/missions/{mission.id}/complete", json={"deliverables": [11, 12]}, headers=headers
    )

    assert too_early.json()["code"] == "mission_cannot_complete"
    assert wrong_partner.status_code == 403
    assert started.json()["status"] == "in_progress"
    assert completed.json()["status"] == "completed"
    assert completed.json()["deliverables"] == [11, 12]

    revenue = (await session.exec(select(Revenue).where(Revenue.mission_id == mission.id))).one()
    assert revenue.type == RevenueType.mission_payment
    assert revenue.status == RevenueStatus.pending
    assert revenue.amount == 800
    assert revenue.user_id == partner.id

    mine = await client.get("/api/v1/missions/my-missions", headers=headers)
    assert [row["id"] for row in mine.json()["data"]] == [mission.id]


@pytest.mark.integration
async def test_cancel_mission(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    mission = await create_mission(session, admin)
    done = await create_mission(session, admin, status=MissionStatus.completed)

    cancelled = await client.post(f"/api/v1/missions/{mission.id}/cancel", json={"reason": "Rain"}, headers=get_auth_headers(admin))
    refused = await client.post(f"/api/v1/missions/{done.id}/cancel", headers=get_auth_headers(admin))

    assert cancelled.json()["status"] == "cancelled"
    assert refused.status_code == 400
    assert refused.json()["code"] == "mission_cannot_cancel"


@pytest.mark.integration
async def test_mission_detail_visibility(client: AsyncClient, session: AsyncSession):
    admin = await create_user(session, role=UserRole.admin)
    applicant = await create_user(session, role=UserRole.partner)
    other_applicant = await create_user(session, role=UserRole.partner)
    outsider = await create_user(session, role=UserRole.partner)
    mission = await create_mission(session, admin)
    await create_application(session, mission, applicant)
    await create_application(session, mission, other_applicant)

    as_applicant = await client.get(f"/api/v1/missions/{mission.id}", headers=get_auth_headers(applicant))
    as_outsider = await client.get(f"/api/v1/missions/{mission.id}", headers=get_auth_headers(outsider))
    as_admin = await client.get(f"/api/v1/missions/{mission.id}", headers=get_auth_headers(admin))

    assert as_applicant.status_code == 200
    assert [item["partner_id"] for item in as_applicant.json()["applications"]] == [applicant.id]
    assert as_outsider.status_code == 403
    assert len(as_admin.json()["applications"]) == 2
