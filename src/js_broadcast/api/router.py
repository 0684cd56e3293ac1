"""js_broadcast REST API — who was offered an order, and how they answered."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_broadcast.application.coordinator import BroadcastCoordinator
from src.js_broadcast.application.schemas import BroadcastItem, BroadcastListResponse
from src.js_common.database import get_db_session
from src.js_common.response import ApiResponse, success_response
from src.js_gateway.auth.dependencies import get_current_operator
from src.js_gateway.operator.db_models import OperatorModel

router = APIRouter(prefix="/orders", tags=["broadcasts"])

_coordinator = BroadcastCoordinator()


@router.get("/{order_id}/broadcasts")
async def list_broadcasts(
    order_id: str,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    records = await _coordinator.list_for_order(db, order_id)
    data = BroadcastListResponse(
        order_id=order_id, broadcasts=[BroadcastItem.from_domain(r) for r in records]
    )
    return success_response(data.model_dump(), request)
