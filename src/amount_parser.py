"""
Normalization of provider-formatted amounts into exact Decimals.

Amounts arrive as strings such as "12,345.67", "$1,200.00" or "USD 99.5".
The provider formats amounts with "." as the decimal point and "," only as
a thousands separator. Currency markers are stripped and well-formed grouping
commas removed before parsing. Anything else, including decimal-comma text
such as "1.234,56", degrades to zero rather than being misread.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Union

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# ISO code before or after the number, e.g. "USD 10" or "10 EUR".
_CURRENCY_CODE = re.compile(r"^\s*[A-Za-z]{3}\b|\b[A-Za-z]{3}\s*$")
# Whitespace and currency symbols.
_NOISE = re.compile(r"[\s$€£¥₹]")
# Commas must group digits in threes before any decimal point.
_GROUPED = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d*)?$")


def parse_amount(raw: Union[str, int, float, Decimal, None]) -> Decimal:
    """Parse a provider amount, returning Decimal("0") when it is not numeric."""
    if raw is None:
        return ZERO
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else ZERO
    if isinstance(raw, (int, float)):
        raw = str(raw)

    cleaned = _NOISE.sub("", _CURRENCY_CODE.sub("", raw))
    if "," in cleaned:
        if not _GROUPED.match(cleaned):
            logger.debug("Amount %r is not in 1,234.56 form; treated as zero", raw)
            return ZERO
        cleaned = cleaned.replace(",", "")
    if not cleaned:
        return ZERO
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        logger.debug("Unparseable amount %r treated as zero", raw)
        return ZERO
    if not value.is_finite():
        logger.debug("Non-finite amount %r treated as zero", raw)
        return ZERO
    return value
