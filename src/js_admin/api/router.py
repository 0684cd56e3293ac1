"""Admin REST API — is_admin operators only."""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_admin.application.service import AdminService
from src.js_common.database import get_db_session
from src.js_common.response import ApiResponse, success_response
from src.js_gateway.auth.dependencies import require_admin
from src.js_gateway.operator.db_models import OperatorModel

router = APIRouter(prefix="/admin", tags=["admin"])
_service = AdminService()


class ResolveDisputeRequest(BaseModel):
    outcome: Literal["refund", "complete"]
    note: str | None = Field(None, max_length=240)


@router.post("/orders/{order_id}/resolve-dispute")
async def resolve_dispute(
    order_id: str,
    body: ResolveDisputeRequest,
    admin: Annotated[OperatorModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.resolve_dispute(db, order_id, body.outcome, body.note)
    return success_response(data.model_dump(), request)


@router.post("/maintenance/expire-offers")
async def expire_offers(
    admin: Annotated[OperatorModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    return success_response(await _service.expire_offers(db), request)


@router.post("/maintenance/retry-notifications")
async def retry_notifications(
    admin: Annotated[OperatorModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    limit: int = Query(50, ge=1, le=500),
) -> ApiResponse:
    return success_response(await _service.retry_notifications(db, limit), request)


@router.get("/verify-invariants")
async def verify_invariants(
    admin: Annotated[OperatorModel, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    return success_response(await _service.verify_invariants(db), request)
