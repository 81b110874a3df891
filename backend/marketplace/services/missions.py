"""Mission board: staff post photography jobs, partners apply and deliver.

A mission moves ``open -> assigned -> in_progress -> completed``; staff may
cancel it while it is still open or assigned. Every transition checks the
current status first and raises :class:`~marketplace.services.resources.TransitionError`
when the mission is in the wrong state.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.query import ResourceQueryConfig
from marketplace.models.mission import ApplicationStatus, Mission, MissionApplication, MissionStatus, MissionType
from marketplace.models.notification import NotificationPriority, NotificationType
from marketplace.models.user import User, UserRole
from marketplace.services import notifications as notifications_service
from marketplace.services import resources
from marketplace.services import revenue as revenue_service

logger = logging.getLogger(__name__)

MISSION_QUERY = ResourceQueryConfig(
    model=Mission,
    searchable_fields=("title", "city"),
    default_limit=10,
)

CANCELLABLE_STATUSES = (MissionStatus.open, MissionStatus.assigned)


def _require_partner(user: User) -> None:
    if user.role != UserRole.partner:
        raise resources.AccessDenied("Only partners can perform this action")


async def _application_for(session: AsyncSession, mission_id: int, partner_id: int) -> MissionApplication | None:
    result = await session.exec(
        select(MissionApplication).where(
            MissionApplication.mission_id == mission_id,
            MissionApplication.partner_id == partner_id,
        )
    )
    return result.one_or_none()


async def create_mission(session: AsyncSession, *, creator: User, data: dict[str, Any]) -> Mission:
    if data.get("budget_min", 0) > data.get("budget_max", 0):
        raise resources.TransitionError("budget_min cannot exceed budget_max", code="invalid_budget")
    mission = Mission(**data, created_by_id=creator.id)
    session.add(mission)
    await session.flush()
    await notifications_service.notify_partners(
        session,
        title="New Mission Available",
        message=f"A new {MissionType(mission.type).value} mission is open in {mission.city}",
        notification_type=NotificationType.system,
        data={"missionId": mission.id},
        action_url=f"/missions/{mission.id}",
        action_text="View Mission",
    )
    await session.commit()
    await session.refresh(mission)
    logger.info("Mission %s created by user %s", mission.id, creator.id)
    return mission


async def list_open(session: AsyncSession, params: Any) -> dict[str, Any]:
    return await resources.list_resources(
        session, MISSION_QUERY, params, scope=(Mission.status == MissionStatus.open.value,)
    )


async def list_for_partner(session: AsyncSession, params: Any, *, partner: User) -> dict[str, Any]:
    _require_partner(partner)
    return await resources.list_resources(
        session, MISSION_QUERY, params, scope=(Mission.assigned_to_id == partner.id,)
    )


async def list_all(session: AsyncSession, params: Any) -> dict[str, Any]:
    return await resources.list_resources(session, MISSION_QUERY, params)


async def list_applications(session: AsyncSession, mission_id: int) -> list[MissionApplication]:
    result = await session.exec(
        select(MissionApplication)
        .where(MissionApplication.mission_id == mission_id)
        .order_by(MissionApplication.applied_at)
    )
    return list(result.all())


async def get_mission(session: AsyncSession, *, mission_id: int, viewer: User) -> Mission:
    """Visible to its creator, its assignee, any applicant and staff."""
    mission = await resources.get_resource(session, Mission, mission_id)
    if viewer.is_staff or viewer.id in (mission.created_by_id, mission.assigned_to_id):
        return mission
    if await _application_for(session, mission.id, viewer.id) is not None:
        return mission
    raise resources.AccessDenied("Not allowed to access this mission")


async def apply(
    session: AsyncSession,
    *,
    mission_id: int,
    partner: User,
    proposed_budget: float,
    message: str | None = None,
    portfolio: list[str] | None = None,
) -> MissionApplication:
    _require_partner(partner)
    mission = await resources.get_resource(session, Mission, mission_id)
    if mission.status != MissionStatus.open:
        raise resources.TransitionError("Mission is not open for applications", code="mission_not_open")
    if await _application_for(session, mission.id, partner.id) is not None:
        raise resources.TransitionError("You have already applied for this mission", code="already_applied")

    application = MissionApplication(
        mission_id=mission.id,
        partner_id=partner.id,
        proposed_budget=proposed_budget,
        message=message,
        portfolio=portfolio or [],
    )
    session.add(application)
    try:
        await session.flush()
    except IntegrityError as exc:  # pragma: no cover - concurrent apply
        await session.rollback()
        raise resources.TransitionError("You have already applied for this mission", code="already_applied") from exc

    await notifications_service.create_notification(
        session,
        user_id=mission.created_by_id,
        title="New Mission Application",
        message=f"{partner.full_name} applied for \"{mission.title}\"",
        data={"missionId": mission.id, "partnerId": partner.id},
    )
    await session.commit()
    await session.refresh(application)
    return application


async def accept_application(session: AsyncSession, *, mission_id: int, partner_id: int, actor: User) -> Mission:
    """Accept one partner's application, reject the rest and assign the mission."""
    mission = await resources.get_resource(session, Mission, mission_id)
    if mission.created_by_id != actor.id and not actor.is_staff:
        raise resources.AccessDenied("Not allowed to manage this mission")
    if mission.status != MissionStatus.open:
        raise resources.TransitionError("Mission is not open for applications", code="mission_not_open")

    accepted = await _application_for(session, mission.id, partner_id)
    if accepted is None:
        raise resources.TransitionError("Application not found", code="application_not_found")

    applications = await list_applications(session, mission.id)
    for application in applications:
        application.status = (
            ApplicationStatus.accepted if application.id == accepted.id else ApplicationStatus.rejected
        )
        session.add(application)

    resources.apply_changes(
        mission,
        {
            "status": MissionStatus.assigned,
            "assigned_to_id": partner_id,
            "final_budget": accepted.proposed_budget,
            "accepted_at": datetime.now(timezone.utc),
        },
    )
    session.add(mission)

    await notifications_service.create_notification(
        session,
        user_id=partner_id,
        title="Mission Application Accepted",
        message=f"Your application for \"{mission.title}\" has been accepted",
        priority=NotificationPriority.high,
        data={"missionId": mission.id},
        action_url=f"/missions/{mission.id}",
        action_text="View Mission",
    )
    rejected = [application.partner_id for application in applications if application.id != accepted.id]
    await notifications_service.notify_users(
        session,
        rejected,
        title="Mission Application Update",
        message=f"Another partner was selected for \"{mission.title}\"",
        data={"missionId": mission.id},
    )
    await session.commit()
    await session.refresh(mission)
    logger.info("Mission %s assigned to partner %s", mission.id, partner_id)
    return mission


async def start_mission(session: AsyncSession, *, mission_id: int, partner: User) -> Mission:
    mission = await resources.get_resource(session, Mission, mission_id)
    if mission.assigned_to_id != partner.id:
        raise resources.AccessDenied("Only the assigned partner can start this mission")
    if mission.status != MissionStatus.assigned:
        raise resources.TransitionError("Mission cannot be started", code="mission_cannot_start")
    resources.apply_changes(mission, {"status": MissionStatus.in_progress, "started_at": datetime.now(timezone.utc)})
    session.add(mission)
    await notifications_service.create_notification(
        session,
        user_id=mission.created_by_id,
        title="Mission Started",
        message=f"{partner.full_name} started \"{mission.title}\"",
        data={"missionId": mission.id},
    )
    await session.commit()
    await session.refresh(mission)
    return mission


async def complete_mission(
    session: AsyncSession,
    *,
    mission_id: int,
    partner: User,
    deliverables: list[int] | None = None,
    notes: str | None = None,
) -> Mission:
    """Close an in-progress mission and stage the partner's pending payout."""
    mission = await resources.get_resource(session, Mission, mission_id)
    if mission.assigned_to_id != partner.id:
        raise resources.AccessDenied("Only the assigned partner can complete this mission")
    if mission.status != MissionStatus.in_progress:
        raise resources.TransitionError("Mission cannot be completed", code="mission_cannot_complete")

    changes: dict[str, Any] = {
        "status": MissionStatus.completed,
        "completed_at": datetime.now(timezone.utc),
        "deliverables": list(deliverables or []),
    }
    if notes:
        changes["notes"] = notes
    resources.apply_changes(mission, changes)
    session.add(mission)

    await revenue_service.record_mission_payment(session, mission=mission)
    await notifications_service.create_notification(
        session,
        user_id=mission.created_by_id,
        title="Mission Completed",
        message=f"\"{mission.title}\" has been completed",
        priority=NotificationPriority.high,
        data={"missionId": mission.id, "deliverables": changes["deliverables"]},
    )
    await session.commit()
    await session.refresh(mission)
    return mission


async def cancel_mission(session: AsyncSession, *, mission_id: int, reason: str | None = None) -> Mission:
    mission = await resources.get_resource(session, Mission, mission_id)
    if mission.status not in CANCELLABLE_STATUSES:
        raise resources.TransitionError("Mission cannot be cancelled", code="mission_cannot_cancel")
    changes: dict[str, Any] = {"status": MissionStatus.cancelled}
    if reason:
        changes["notes"] = reason
    resources.apply_changes(mission, changes)
    session.add(mission)
    await session.exec(
        update(MissionApplication)
        .where(
            MissionApplication.mission_id == mission.id,
            MissionApplication.status == ApplicationStatus.pending.value,
        )
        .values(status=ApplicationStatus.rejected.value)
    )
    if mission.assigned_to_id is not None:
        await notifications_service.create_notification(
            session,
            user_id=mission.assigned_to_id,
            title="Mission Cancelled",
            message=f"\"{mission.title}\" has been cancelled",
            priority=NotificationPriority.high,
            data={"missionId": mission.id},
        )
    await session.commit()
    await session.refresh(mission)
    return mission
