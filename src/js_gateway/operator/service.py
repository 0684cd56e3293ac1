"""Operator service: register, login, refresh.

All DB operations use the injected AsyncSession. register() expects the
caller to wrap it in `async with db.begin()`.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.js_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    UsernameExistsError,
)
from src.js_gateway.auth.jwt_handler import (
    create_access_token,
    create_refresh_token,
    decode_token,
)
from src.js_gateway.auth.password import hash_password, verify_password
from src.js_gateway.operator.db_models import OperatorModel


class OperatorService:
    """Stateless service — instantiate once, reuse across requests."""

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        db: AsyncSession,
    ) -> OperatorModel:
        # Uniqueness pre-checks give clean errors; the DB UNIQUE constraints are the final guard
        result = await db.execute(
            select(OperatorModel).where(OperatorModel.username == username)
        )
        if result.scalar_one_or_none() is not None:
            raise UsernameExistsError()

        result = await db.execute(
            select(OperatorModel).where(OperatorModel.email == email)
        )
        if result.scalar_one_or_none() is not None:
            raise EmailExistsError()

        operator = OperatorModel(
            username=username,
            email=email,
            password_hash=hash_password(password),
            is_active=True,
            is_admin=False,
        )
        db.add(operator)
        await db.flush()
        await db.refresh(operator)
        return operator

    async def login(
        self,
        username: str,
        password: str,
        db: AsyncSession,
    ) -> tuple[OperatorModel, str, str]:
        """Authenticate and return (operator, access_token, refresh_token).

        Unknown username and wrong password both raise InvalidCredentialsError.
        """
        result = await db.execute(
            select(OperatorModel).where(OperatorModel.username == username)
        )
        operator = result.scalar_one_or_none()

        if operator is None or not verify_password(password, operator.password_hash):
            raise InvalidCredentialsError()

        if not operator.is_active:
            raise AccountDisabledError()

        return (
            operator,
            create_access_token(str(operator.id)),
            create_refresh_token(str(operator.id)),
        )

    async def refresh(self, refresh_token: str) -> str:
        """Validate refresh token and return a new access token."""
        payload = decode_token(refresh_token, expected_type="refresh")
        return create_access_token(str(payload["sub"]))
