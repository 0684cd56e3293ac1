"""FastAPI auth dependencies.

Usage in any protected router:
    from src.js_gateway.auth.dependencies import get_current_operator

    @router.get("/protected")
    async def protected(operator: Annotated[OperatorModel, Depends(get_current_operator)]):
        ...
"""

import hmac

from fastapi import Depends, Header, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.js_common.database import get_db_session
from src.js_common.errors import (
    AccountDisabledError,
    AdminRequiredError,
    InvalidCredentialsError,
    InvalidWebhookTokenError,
)
from src.js_gateway.auth.jwt_handler import decode_token
from src.js_gateway.operator.db_models import OperatorModel

# tokenUrl tells Swagger UI where to get a token (used for the "Authorize" button)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


async def get_current_operator(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> OperatorModel:
    """Extract and validate the JWT Bearer token, return the OperatorModel.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    Raises AccountDisabledError (403) if the operator has been disabled.
    """
    try:
        payload = decode_token(token, expected_type="access")
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    operator_id: str | None = payload.get("sub")
    if not operator_id:
        raise _CREDENTIALS_EXCEPTION

    result = await db.execute(select(OperatorModel).where(OperatorModel.id == operator_id))
    operator = result.scalar_one_or_none()
    if operator is None:
        raise _CREDENTIALS_EXCEPTION

    if not operator.is_active:
        raise AccountDisabledError()

    return operator


async def require_admin(
    operator: OperatorModel = Depends(get_current_operator),
) -> OperatorModel:
    """Dispute resolution and maintenance endpoints are admin-only."""
    if not operator.is_admin:
        raise AdminRequiredError()
    return operator


async def verify_webhook_token(
    x_webhook_token: str | None = Header(None),
    token: str | None = Query(None),
) -> None:
    """Shared-secret check for the WhatsApp gateway callback.

    The gateway can be configured with either a header or a `?token=` query
    parameter. An empty WEBHOOK_TOKEN disables the check (local dev only).
    """
    expected = settings.WEBHOOK_TOKEN
    if not expected:
        return
    supplied = x_webhook_token or token or ""
    if not hmac.compare_digest(supplied, expected):
        raise InvalidWebhookTokenError()
