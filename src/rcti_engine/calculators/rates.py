"""Driver rate lookup and RCTI invoice numbering."""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from rcti_engine.models import Driver

_NAME_CHARS = re.compile(r"[^A-Z0-9]")


def rate_for_truck_type(truck_type: str, driver: Driver) -> Decimal | None:
    """Pick the driver's hourly rate for a truck category.

    Matching is by keyword, most specific first; unknown types fall back to
    the tray rate.
    """
    normalized = truck_type.lower().strip()

    if "semi" in normalized and "crane" in normalized:
        return driver.rate_semi_crane
    if "semi" in normalized:
        return driver.rate_semi
    if "crane" in normalized:
        return driver.rate_crane
    return driver.rate_tray


def generate_invoice_number(
    existing_numbers: Iterable[str],
    week_ending: date,
    payee_name: str,
) -> str:
    """Generate a unique number of the form RCTI-DDMMYYYY-NAME[-n]."""
    taken = set(existing_numbers)
    name_part = _NAME_CHARS.sub("", (payee_name or "")[:10].upper())
    base = f"RCTI-{week_ending:%d%m%Y}-{name_part}"

    if base not in taken:
        return base

    counter = 1
    while f"{base}-{counter}" in taken:
        counter += 1
    return f"{base}-{counter}"
