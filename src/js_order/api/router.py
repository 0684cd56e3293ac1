"""js_order REST API — operator JWT required.

The dashboard acts on behalf of parties, so the acting party id travels in
the request body. Receipt confirmation and disputes additionally need the
order's delivery token from the buyer's link.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_broadcast.domain.models import ResolutionOutcome
from src.js_common.database import get_db_session
from src.js_common.enums import OrderStatus
from src.js_common.response import ApiResponse, success_response
from src.js_gateway.auth.dependencies import get_current_operator
from src.js_gateway.operator.db_models import OperatorModel
from src.js_order.application.schemas import (
    BuyerActionRequest,
    CancelOrderRequest,
    ConfirmReceiptRequest,
    CourierResponseRequest,
    CreateOrderRequest,
    DeliverRequest,
    DisputeRequest,
    OrderResponse,
    PickupRequest,
    RespondResponse,
    SupplierActionRequest,
    SupplierResponseRequest,
    TrackLocationRequest,
)
from src.js_order.application.service import OrderWorkflowService

router = APIRouter(prefix="/orders", tags=["orders"])
track_router = APIRouter(prefix="/track", tags=["tracking"])

_service = OrderWorkflowService()


def _respond(outcome: ResolutionOutcome) -> RespondResponse:
    return RespondResponse(
        outcome=outcome.kind.value,
        order=OrderResponse.from_domain(outcome.order) if outcome.order else None,
    )


@router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.create_order(db, body)
    return success_response(data.model_dump(), request)


@router.get("")
async def list_orders(
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    party_id: str = Query(..., description="Buyer, supplier or courier id"),
    status: OrderStatus | None = Query(None, description="Filter by order status"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    data = await _service.list_orders(db, party_id, status, limit, cursor)
    return success_response(data.model_dump(), request)


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_order(db, order_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/supplier-response")
async def supplier_response(
    order_id: str,
    body: SupplierResponseRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    outcome = await _service.respond_as_supplier(
        db, order_id, body.supplier_id, body.accept, body.delivery_method, body.offered_price
    )
    return success_response(_respond(outcome).model_dump(), request)


@router.post("/{order_id}/courier-response")
async def courier_response(
    order_id: str,
    body: CourierResponseRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    outcome = await _service.respond_as_courier(db, order_id, body.courier_id, body.accept)
    return success_response(_respond(outcome).model_dump(), request)


@router.post("/{order_id}/approve")
async def approve_offer(
    order_id: str,
    body: BuyerActionRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.approve_offer(db, order_id, body.buyer_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/reject-offer")
async def reject_offer(
    order_id: str,
    body: BuyerActionRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.reject_offer(db, order_id, body.buyer_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.cancel(db, order_id, body.buyer_id, body.reason)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/self-delivery")
async def switch_to_self_delivery(
    order_id: str,
    body: SupplierActionRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.switch_to_self_delivery(db, order_id, body.supplier_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/retry-courier")
async def retry_courier_search(
    order_id: str,
    body: SupplierActionRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.retry_courier_search(db, order_id, body.supplier_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/pay")
async def confirm_payment(
    order_id: str,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.confirm_payment(db, order_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/pickup")
async def confirm_pickup(
    order_id: str,
    body: PickupRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.confirm_pickup(db, order_id, body.party_id, body.photo_url)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/deliver")
async def mark_delivered(
    order_id: str,
    body: DeliverRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.mark_delivered(db, order_id, body.party_id)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/confirm")
async def confirm_receipt(
    order_id: str,
    body: ConfirmReceiptRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.confirm_receipt(db, order_id, body.token)
    return success_response(data.model_dump(), request)


@router.post("/{order_id}/dispute")
async def open_dispute(
    order_id: str,
    body: DisputeRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.open_dispute(db, order_id, body.token, body.reason, body.image_url)
    return success_response(data.model_dump(), request)


@track_router.post("/location")
async def track_location(
    body: TrackLocationRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.track_location(db, body)
    return success_response(data.model_dump(), request)
