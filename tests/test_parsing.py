from datetime import date, datetime
from decimal import Decimal

import pytest

from amounts import parse_amount, parse_date
from sessions import issue_session_token, resolve_session_token, token_from_headers


@pytest.mark.parametrize(
    "raw, expected",
    [
        (1500, Decimal("1500")),
        (12.5, Decimal("12.50")),
        ("15000", Decimal("15000")),
        ("12,50", Decimal("12.50")),
        ("Rp 12.500,75", Decimal("12500.75")),
        (" $ 3.10 ", Decimal("3.10")),
        (Decimal("0.015"), Decimal("0.02")),
        (Decimal("999999999999.99"), Decimal("999999999999.99")),
    ],
)
def test_parse_amount_accepts_numbers_and_strings(raw, expected) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["", "abc", "0", "-5", 0, -1, None, True, "NaN", [1], 1e30, "1e30", 10**12],
)
def test_parse_amount_rejects_invalid_values(raw) -> None:
    with pytest.raises(ValueError):
        parse_amount(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Rp 12.500", Decimal("12500")),
        ("Rp12.500,50", Decimal("12500.50")),
        ("IDR 1.250.000", Decimal("1250000")),
        ("1.250.000", Decimal("1250000")),
        ("1,234.56", Decimal("1234.56")),
        ("€ 12.50", Decimal("12.50")),
    ],
)
def test_parse_amount_reads_grouping_separators(raw, expected) -> None:
    assert parse_amount(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-01-31", date(2025, 1, 31)),
        ("31.01.2025", date(2025, 1, 31)),
        ("2025-01-31T23:59:59.000Z", date(2025, 1, 31)),
        (datetime(2025, 1, 31, 8, 0), date(2025, 1, 31)),
        (date(2025, 1, 31), date(2025, 1, 31)),
    ],
)
def test_parse_date_formats(raw, expected) -> None:
    assert parse_date(raw) == expected


@pytest.mark.parametrize("raw", ["", "2025-02-30", "tomorrow", 20250101])
def test_parse_date_rejects_garbage(raw) -> None:
    with pytest.raises(ValueError):
        parse_date(raw)


def test_session_token_round_trip() -> None:
    token = issue_session_token(42)
    assert resolve_session_token(token) == 42


def test_tampered_or_missing_token_is_rejected() -> None:
    token = issue_session_token(42)
    assert resolve_session_token(token[:-2] + "xx") is None
    assert resolve_session_token("not-a-token") is None
    assert resolve_session_token("") is None
    assert resolve_session_token(None) is None


def test_bearer_header_wins_over_cookie() -> None:
    assert token_from_headers("Bearer abc", "cookie") == "abc"
    assert token_from_headers("Basic abc", "cookie") == "cookie"
    assert token_from_headers(None, None) is None
