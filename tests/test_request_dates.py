import pytest

from request_desk.core.errors import ValidationError
from request_desk.services.request_dates import expand_date_range, normalize_request_dates


def test_expand_date_range_is_inclusive():
    assert expand_date_range("2024-01-01", "2024-01-03") == [
        "2024-01-01",
        "2024-01-02",
        "2024-01-03",
    ]


def test_expand_date_range_crosses_month_and_leap_day():
    dates = expand_date_range("2024-02-28", "2024-03-01")
    assert dates == ["2024-02-28", "2024-02-29", "2024-03-01"]


def test_expand_date_range_returns_empty_when_reversed():
    assert expand_date_range("2024-01-03", "2024-01-01") == []


def test_normalize_mixes_single_dates_and_ranges_in_order():
    value = normalize_request_dates("2024-01-10, 2024-01-01:2024-01-02")
    assert value == "2024-01-10,2024-01-01,2024-01-02"


def test_normalize_accepts_range_mappings_and_keeps_duplicates():
    value = normalize_request_dates(
        [
            {"start": "2024-05-01", "end": "2024-05-02"},
            "2024-05-02",
        ]
    )
    assert value == "2024-05-01,2024-05-02,2024-05-02"


def test_normalize_rejects_reversed_range():
    with pytest.raises(ValidationError):
        normalize_request_dates("2024-01-03:2024-01-01")


@pytest.mark.parametrize("value", [None, "", " , ", []])
def test_normalize_requires_at_least_one_date(value):
    with pytest.raises(ValidationError):
        normalize_request_dates(value)


@pytest.mark.parametrize("value", ["2024/01/01", "2024-02-30", "tomorrow"])
def test_normalize_rejects_malformed_dates(value):
    with pytest.raises(ValidationError):
        normalize_request_dates(value)


@pytest.mark.parametrize("value", [5, 1.5, True])
def test_normalize_rejects_scalar_values(value):
    with pytest.raises(ValidationError):
        normalize_request_dates(value)


def test_range_length_is_capped():
    assert len(expand_date_range("2024-01-01", "2024-12-31")) == 366

    with pytest.raises(ValidationError):
        expand_date_range("2024-01-01", "2025-01-01")
    with pytest.raises(ValidationError):
        normalize_request_dates("0001-01-01:9999-12-31")
