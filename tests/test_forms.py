from datetime import date

import pytest

from errors import ValidationError
from forms import is_checked, parse_amount, parse_category_id, parse_entry_date, year_choices
from schemas import MAX_AMOUNT_CENTS


def test_parse_amount_accepts_swedish_formatting() -> None:
    assert parse_amount("100") == 10_000
    assert parse_amount("1 234,50 kr") == 123_450
    assert parse_amount("0.01") == 1


@pytest.mark.parametrize("raw", ["", "abc", "0", "-5", "nan", None])
def test_parse_amount_rejects_non_positive_or_garbage(raw) -> None:
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_parse_entry_date_requires_real_calendar_date() -> None:
    assert parse_entry_date("2024", "2", "29") == date(2024, 2, 29)
    for parts in [("2025", "2", "29"), ("2025", "0", "1"), ("", "1", "1")]:
        with pytest.raises(ValidationError):
            parse_entry_date(*parts)


def test_parse_category_id_requires_a_selection() -> None:
    assert parse_category_id("3") == 3
    for raw in ["", "0", "food", None]:
        with pytest.raises(ValidationError):
            parse_category_id(raw)


def test_year_choices_span_five_years_each_way() -> None:
    assert year_choices(date(2025, 6, 1)) == list(range(2020, 2031))


def test_is_checked() -> None:
    assert is_checked("on")
    assert not is_checked(None)
    assert not is_checked("")


@pytest.mark.parametrize("raw", ["1e30", "99999999999999999999", "100000000001"])
def test_parse_amount_rejects_amounts_beyond_the_column_range(raw) -> None:
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_parse_amount_accepts_the_largest_allowed_amount() -> None:
    assert parse_amount("100000000000") == MAX_AMOUNT_CENTS
