"""js_wallet REST API — read-only, operator JWT required."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.database import get_db_session
from src.js_common.response import ApiResponse, success_response
from src.js_gateway.auth.dependencies import get_current_operator
from src.js_gateway.operator.db_models import OperatorModel
from src.js_wallet.application.service import WalletApplicationService

router = APIRouter(prefix="/wallets", tags=["wallets"])

_service = WalletApplicationService()


@router.get("/{party_id}")
async def get_wallet(
    party_id: str,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_wallet(db, party_id)
    return success_response(data.model_dump(), request)


@router.get("/{party_id}/ledger")
async def list_ledger(
    party_id: str,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    entry_type: str | None = Query(None, description="Filter by LedgerEntryType"),
) -> ApiResponse:
    data = await _service.list_ledger(db, party_id, cursor, limit, entry_type)
    return success_response(data.model_dump(), request)
