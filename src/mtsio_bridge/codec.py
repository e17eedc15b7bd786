"""
Value conversion between JSON scalars and the text used by mts-io-sysfs.

The utility speaks plain text on its command line and stdout. Binary
signals use the integer tokens 1 (on) and 0 (off). Booleans are only
recognized on the way back (decode); on the way out a boolean simply
becomes its token, so encode(decode(x)) is not expected to return x.
"""
import math
from decimal import Decimal
from typing import Optional

from mtsio_bridge.models import JSONScalar

ON = 1
OFF = 0


def _format_exponential(number: float) -> str:
    # Shortest digits that round-trip, written as d.dddE+XX
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "+Inf" if number > 0 else "-Inf"

    exact = Decimal(repr(number)).normalize()
    sign, digits, _ = exact.as_tuple()
    exponent = exact.adjusted()
    text = "".join(str(d) for d in digits)
    mantissa = text[0] + (f".{text[1:]}" if len(text) > 1 else "")
    exp_sign = "+" if exponent >= 0 else "-"
    return f"{'-' if sign else ''}{mantissa}E{exp_sign}{abs(exponent):02d}"


def encode(value: Optional[JSONScalar]) -> Optional[str]:
    """
    Converts a write value into the utility's positional argument.

    Returns None when no argument should be appended.
    """
    if value is None:
        return None
    # bool must be checked before int, it is a subclass
    if isinstance(value, bool):
        return str(ON) if value else str(OFF)
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return _format_exponential(float(value))
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def _parse_number(text: str) -> Optional[float]:
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    # Finite text that overflows a double is out of range, not infinite
    if math.isinf(number) and text.lstrip("+-").lower() not in ("inf", "infinity"):
        return None
    return number


def decode(raw: str) -> JSONScalar:
    """Converts utility stdout back into a JSON value."""
    text = raw.replace("\n", "")
    number = _parse_number(text)
    if number is None:
        return text
    if number == ON:
        return True
    if number == OFF:
        return False
    if math.isfinite(number) and number.is_integer():
        return int(number)
    return number
