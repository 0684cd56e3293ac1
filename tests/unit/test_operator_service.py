"""Unit tests for OperatorService and its request schemas (mocked session)."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from src.js_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    UsernameExistsError,
)
from src.js_gateway.auth.jwt_handler import create_access_token, create_refresh_token, decode_token
from src.js_gateway.operator.db_models import OperatorModel
from src.js_gateway.operator.schemas import RegisterRequest
from src.js_gateway.operator.service import OperatorService


def _operator(is_active: bool = True) -> OperatorModel:
    return OperatorModel(
        id="op-1",
        username="dispatcher",
        email="ops@juragan.id",
        password_hash="$2b$12$notreal",
        is_active=is_active,
        is_admin=False,
    )


def _result(value: object) -> MagicMock:
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


@pytest.fixture
def mock_db() -> AsyncMock:
    db = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def service() -> OperatorService:
    return OperatorService()


class TestRegister:
    async def test_taken_username(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(return_value=_result(_operator()))
        with pytest.raises(UsernameExistsError):
            await service.register("dispatcher", "other@juragan.id", "Gudang123", mock_db)

    async def test_taken_email(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(side_effect=[_result(None), _result(_operator())])
        with pytest.raises(EmailExistsError):
            await service.register("someone", "ops@juragan.id", "Gudang123", mock_db)

    async def test_new_operator_is_added_with_hashed_password(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(return_value=_result(None))
        with patch("src.js_gateway.operator.service.hash_password", return_value="hashed"):
            operator = await service.register("someone", "new@juragan.id", "Gudang123", mock_db)

        mock_db.add.assert_called_once_with(operator)
        mock_db.flush.assert_awaited_once()
        assert operator.password_hash == "hashed"
        assert operator.is_active is True
        assert operator.is_admin is False


class TestLogin:
    async def test_unknown_username(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(return_value=_result(None))
        with pytest.raises(InvalidCredentialsError):
            await service.login("ghost", "Gudang123", mock_db)

    async def test_wrong_password(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(return_value=_result(_operator()))
        with (
            patch("src.js_gateway.operator.service.verify_password", return_value=False),
            pytest.raises(InvalidCredentialsError),
        ):
            await service.login("dispatcher", "Wrong1234", mock_db)

    async def test_disabled_operator(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(return_value=_result(_operator(is_active=False)))
        with (
            patch("src.js_gateway.operator.service.verify_password", return_value=True),
            pytest.raises(AccountDisabledError),
        ):
            await service.login("dispatcher", "Gudang123", mock_db)

    async def test_success_issues_token_pair_for_operator(self, service, mock_db) -> None:
        mock_db.execute = AsyncMock(return_value=_result(_operator()))
        with patch("src.js_gateway.operator.service.verify_password", return_value=True):
            operator, access, refresh = await service.login("dispatcher", "Gudang123", mock_db)

        assert operator.username == "dispatcher"
        assert decode_token(access, "access")["sub"] == "op-1"
        assert decode_token(refresh, "refresh")["sub"] == "op-1"


class TestRefresh:
    async def test_new_access_token(self, service) -> None:
        access = await service.refresh(create_refresh_token("op-1"))
        assert decode_token(access, "access")["sub"] == "op-1"

    async def test_access_token_cannot_refresh(self, service) -> None:
        with pytest.raises(InvalidRefreshTokenError):
            await service.refresh(create_access_token("op-1"))


class TestRegisterRequest:
    def test_valid(self) -> None:
        req = RegisterRequest(username="ops_jakarta", email="ops@juragan.id", password="Gudang123")
        assert req.username == "ops_jakarta"

    @pytest.mark.parametrize(
        "username, password",
        [
            ("ab", "Gudang123"),
            ("a" * 65, "Gudang123"),
            ("ops jakarta", "Gudang123"),
            ("ops", "gudang123"),
            ("ops", "GUDANG123"),
            ("ops", "Gudangxyz"),
            ("ops", "Gd1"),
        ],
    )
    def test_rejected(self, username: str, password: str) -> None:
        with pytest.raises(ValidationError):
            RegisterRequest(username=username, email="ops@juragan.id", password=password)
