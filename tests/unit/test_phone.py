"""Unit tests for phone normalization."""

import pytest

from src.js_common.phone import mask_phone, normalize_phone


@pytest.mark.parametrize(
    "raw",
    ["081234567890", "0812-3456-7890", "+62 812 3456 7890", "6281234567890", "81234567890"],
)
def test_normalize_variants(raw: str) -> None:
    assert normalize_phone(raw) == "6281234567890"


def test_normalize_rejects_empty() -> None:
    with pytest.raises(ValueError):
        normalize_phone("call me")


def test_mask_keeps_prefix_and_suffix() -> None:
    assert mask_phone("6281234567890") == "62812****890"


def test_mask_short_number_unchanged() -> None:
    assert mask_phone("12345") == "12345"
