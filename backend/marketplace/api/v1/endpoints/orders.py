from typing import Any

from fastapi import APIRouter, Request, status

from marketplace.api.deps import CurrentUser, SessionDep, SettingsCacheDep, StaffUser
from marketplace.schemas.order import DownloadLink, OrderCreate, OrderPayment, OrderRead, OrderStatusUpdate
from marketplace.schemas.query import ListEnvelope, Record
from marketplace.services import orders as orders_service

router = APIRouter()


@router.post("/", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def create_order(order_in: OrderCreate, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    order = await orders_service.create_order(
        session,
        customer=current_user,
        upload_ids=order_in.upload_ids,
        payment_method=order_in.payment_method,
        billing_address=order_in.billing_address,
        notes=order_in.notes,
    )
    return await orders_service.with_items(session, order)


@router.get("/", response_model=ListEnvelope[Record])
async def list_my_orders(request: Request, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    return await orders_service.list_own_orders(session, request.query_params, customer=current_user)


@router.get("/admin/all", response_model=ListEnvelope[Record])
async def list_all_orders(request: Request, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await orders_service.list_all_orders(session, request.query_params)


@router.get("/{order_id}", response_model=OrderRead)
async def read_order(order_id: int, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    order = await orders_service.get_order(session, order_id=order_id, viewer=current_user)
    return await orders_service.with_items(session, order)


@router.post("/{order_id}/payment", response_model=OrderRead)
async def pay_order(
    order_id: int,
    payment: OrderPayment,
    session: SessionDep,
    cache: SettingsCacheDep,
    current_user: CurrentUser,
) -> dict[str, Any]:
    order = await orders_service.process_payment(
        session,
        cache,
        order_id=order_id,
        customer=current_user,
        payment_reference=payment.payment_reference,
    )
    return await orders_service.with_items(session, order)


@router.get("/{order_id}/download/{item_id}", response_model=DownloadLink)
async def download_item(order_id: int, item_id: int, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    return await orders_service.download_item(session, order_id=order_id, item_id=item_id, customer=current_user)


@router.patch("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    session: SessionDep,
    _: StaffUser,
) -> dict[str, Any]:
    order = await orders_service.update_status(session, order_id=order_id, status=payload.status, notes=payload.notes)
    return await orders_service.with_items(session, order)
