"""Reference range parsing and value status helpers."""

import re
from typing import Optional, Tuple

NOT_AVAILABLE = "Reference range not available"

# Fraction of the range width treated as "near the edge"
BORDERLINE_MARGIN = 0.05

_BETWEEN = re.compile(r"(-?\d+(?:\.\d+)?)\s*(?:-|–|—|to)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_UPPER = re.compile(r"(?:<=?|≤|up\s+to|below|less\s+than)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_LOWER = re.compile(r"(?:>=?|≥|above|greater\s+than)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)


def parse_range(range_text: Optional[str]) -> Optional[Tuple[Optional[float], Optional[float]]]:
    """
    Parse a reference range into (low, high) bounds.

    Supports "70-100", "70 to 100", "<200" and ">40". Open ends are None.
    Returns None when the text carries no recognisable range.
    """
    if not range_text:
        return None

    match = _BETWEEN.search(range_text)
    if match:
        low, high = float(match.group(1)), float(match.group(2))
        if low > high:
            low, high = high, low
        return low, high

    match = _UPPER.search(range_text)
    if match:
        return None, float(match.group(1))

    match = _LOWER.search(range_text)
    if match:
        return float(match.group(1)), None

    return None


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def is_critical(value: float, low: Optional[float], high: Optional[float]) -> bool:
    if low is not None and value < low * 0.5:
        return True
    if high is not None and value > high * 2:
        return True
    return False


def is_out_of_range(value, range_text: Optional[str]) -> bool:
    """True when a numeric value falls outside the parsed range."""
    number = _as_number(value)
    bounds = parse_range(range_text)
    if number is None or bounds is None:
        return False
    low, high = bounds
    return (low is not None and number < low) or (high is not None and number > high)


def lab_status(value, range_text: Optional[str]) -> str:
    """Classify a lab value as normal, abnormal or critical against its range."""
    number = _as_number(value)
    bounds = parse_range(range_text)
    if number is None or bounds is None:
        return "normal"

    low, high = bounds
    if is_critical(number, low, high):
        return "critical"
    if is_out_of_range(number, range_text):
        return "abnormal"
    return "normal"


def result_status(value, range_text: Optional[str]) -> str:
    """Classify a test result as normal, high, low, critical or borderline."""
    number = _as_number(value)
    bounds = parse_range(range_text)
    if number is None or bounds is None:
        return "normal"

    low, high = bounds
    if is_critical(number, low, high):
        return "critical"
    if high is not None and number > high:
        return "high"
    if low is not None and number < low:
        return "low"

    if low is not None and high is not None:
        margin = (high - low) * BORDERLINE_MARGIN
    else:
        margin = abs(high if high is not None else low) * BORDERLINE_MARGIN
    if high is not None and high - number <= margin:
        return "borderline"
    if low is not None and number - low <= margin:
        return "borderline"
    return "normal"
