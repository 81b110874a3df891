from typing import Any

from fastapi import APIRouter, Request, status

from marketplace.api.deps import CurrentUser, PartnerUser, SessionDep, StaffUser
from marketplace.models.mission import Mission, MissionApplication
from marketplace.schemas.mission import (
    MissionApplicationRead,
    MissionApply,
    MissionCancel,
    MissionComplete,
    MissionCreate,
    MissionDetail,
    MissionRead,
)
from marketplace.schemas.query import ListEnvelope, Record
from marketplace.services import missions as missions_service

router = APIRouter()


@router.post("/", response_model=MissionRead, status_code=status.HTTP_201_CREATED)
async def create_mission(mission_in: MissionCreate, session: SessionDep, current_user: StaffUser) -> Mission:
    return await missions_service.create_mission(session, creator=current_user, data=mission_in.model_dump())


@router.get("/open", response_model=ListEnvelope[Record])
async def list_open_missions(request: Request, session: SessionDep, _: CurrentUser) -> dict[str, Any]:
    return await missions_service.list_open(session, request.query_params)


@router.get("/my-missions", response_model=ListEnvelope[Record])
async def list_my_missions(request: Request, session: SessionDep, current_user: PartnerUser) -> dict[str, Any]:
    return await missions_service.list_for_partner(session, request.query_params, partner=current_user)


@router.get("/admin/all", response_model=ListEnvelope[Record])
async def list_all_missions(request: Request, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await missions_service.list_all(session, request.query_params)


@router.get("/{mission_id}", response_model=MissionDetail)
async def read_mission(mission_id: int, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    mission = await missions_service.get_mission(session, mission_id=mission_id, viewer=current_user)
    applications = await missions_service.list_applications(session, mission.id)
    if not (current_user.is_staff or current_user.id == mission.created_by_id):
        applications = [application for application in applications if application.partner_id == current_user.id]
    return {**mission.model_dump(), "applications": [application.model_dump() for application in applications]}


@router.post("/{mission_id}/apply", response_model=MissionApplicationRead, status_code=status.HTTP_201_CREATED)
async def apply_for_mission(
    mission_id: int,
    payload: MissionApply,
    session: SessionDep,
    current_user: PartnerUser,
) -> MissionApplication:
    return await missions_service.apply(
        session,
        mission_id=mission_id,
        partner=current_user,
        proposed_budget=payload.proposed_budget,
        message=payload.message,
        portfolio=payload.portfolio,
    )


@router.post("/{mission_id}/accept/{partner_id}", response_model=MissionRead)
async def accept_application(mission_id: int, partner_id: int, session: SessionDep, current_user: StaffUser) -> Mission:
    return await missions_service.accept_application(
        session, mission_id=mission_id, partner_id=partner_id, actor=current_user
    )


@router.post("/{mission_id}/start", response_model=MissionRead)
async def start_mission(mission_id: int, session: SessionDep, current_user: PartnerUser) -> Mission:
    return await missions_service.start_mission(session, mission_id=mission_id, partner=current_user)


@router.post("/{mission_id}/complete", response_model=MissionRead)
async def complete_mission(
    mission_id: int,
    payload: MissionComplete,
    session: SessionDep,
    current_user: PartnerUser,
) -> Mission:
    return await missions_service.complete_mission(
        session,
        mission_id=mission_id,
        partner=current_user,
        deliverables=payload.deliverables,
        notes=payload.notes,
    )


@router.post("/{mission_id}/cancel", response_model=MissionRead)
async def cancel_mission(mission_id: int, session: SessionDep, _: StaffUser, payload: MissionCancel | None = None) -> Mission:
    return await missions_service.cancel_mission(session, mission_id=mission_id, reason=payload.reason if payload else None)
