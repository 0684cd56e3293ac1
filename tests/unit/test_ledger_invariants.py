"""Unit tests for the ledger-wide invariant checks (mocked session)."""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from src.js_wallet.domain.invariants import verify_ledger_invariants


def _rows(*rows: object) -> MagicMock:
    result = MagicMock()
    result.fetchall.return_value = list(rows)
    return result


def _scalar(value: int) -> MagicMock:
    result = MagicMock()
    result.scalar_one.return_value = value
    return result


async def test_consistent_ledger() -> None:
    db = AsyncMock()
    db.execute.side_effect = [_rows(), _scalar(105000), _scalar(105000), _rows()]
    assert await verify_ledger_invariants(db) == []


async def test_every_violation_is_reported() -> None:
    db = AsyncMock()
    db.execute.side_effect = [
        _rows(SimpleNamespace(order_id="o-1", net=-5000)),
        _scalar(100000),
        _scalar(105000),
        _rows(SimpleNamespace(party_id="s1")),
    ]
    violations = await verify_ledger_invariants(db)
    assert violations == [
        "order o-1 nets to -5000, expected 0",
        "wallets hold 100000 in escrow but ledger shows 105000",
        "wallet s1 has a negative aggregate",
    ]
