from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from errors import ValidationError
from schemas import MAX_AMOUNT_CENTS
from services import AMOUNT_TOO_LARGE, INVALID_AMOUNT, INVALID_CATEGORY, INVALID_DATE

YEAR_SPAN = 5


def parse_amount(value: Optional[str]) -> int:
    clean = (value or "").strip().replace("kr", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
        if not amount.is_finite():
            raise ValidationError(INVALID_AMOUNT)
        cents = int((amount * 100).quantize(Decimal("1")))
    except InvalidOperation as exc:
        raise ValidationError(INVALID_AMOUNT) from exc
    if cents <= 0:
        raise ValidationError(INVALID_AMOUNT)
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(AMOUNT_TOO_LARGE)
    return cents


def parse_category_id(value: Optional[str]) -> int:
    try:
        category_id = int((value or "").strip())
    except ValueError as exc:
        raise ValidationError(INVALID_CATEGORY) from exc
    if category_id <= 0:
        raise ValidationError(INVALID_CATEGORY)
    return category_id


def parse_entry_date(
    year: Optional[str], month: Optional[str], day: Optional[str]
) -> date:
    try:
        parts = [int((part or "").strip()) for part in (year, month, day)]
        if 0 in parts:
            raise ValueError("date component missing")
        return date(*parts)
    except ValueError as exc:
        raise ValidationError(INVALID_DATE) from exc


def year_choices(today: Optional[date] = None) -> list[int]:
    current = (today or date.today()).year
    return list(range(current - YEAR_SPAN, current + YEAR_SPAN + 1))


def is_checked(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in {"1", "true", "yes", "on"}
