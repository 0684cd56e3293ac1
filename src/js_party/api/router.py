"""js_party REST API — operator JWT required."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.database import get_db_session
from src.js_common.response import ApiResponse, success_response
from src.js_gateway.auth.dependencies import get_current_operator
from src.js_gateway.operator.db_models import OperatorModel
from src.js_party.application.schemas import CreatePartyRequest, UpdateLocationRequest
from src.js_party.application.service import PartyApplicationService

router = APIRouter(prefix="/parties", tags=["parties"])

_service = PartyApplicationService()


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_party(
    body: CreatePartyRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.register(db, body)
    return success_response(data.model_dump(), request)


@router.get("/{party_id}")
async def get_party(
    party_id: str,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_party(db, party_id)
    return success_response(data.model_dump(), request)


@router.put("/{party_id}/location")
async def update_location(
    party_id: str,
    body: UpdateLocationRequest,
    operator: Annotated[OperatorModel, Depends(get_current_operator)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.update_location(db, party_id, body)
    return success_response(data.model_dump(), request)
