"""
Capture Extractor
Turns raw group message text into the structured data stored and templated by rules.
"""
import logging
import re
from typing import Any, Dict, Optional

from group_automation.models.automation_rule import DataType
from group_automation.utils.patterns import PATTERN_ERRORS, search_pattern

logger = logging.getLogger(__name__)

_INTEGER = re.compile(r"\d+")
_MONEY = re.compile(r"R?\$?\s*(\d+[.,]?\d*)", re.IGNORECASE)

LOTTERY_MIN = 1
LOTTERY_MAX = 60
LOTTERY_PICKS = 6

# Default capture pattern for each data type, used when a rule has none
DATA_TYPE_PATTERNS: Dict[str, Optional[str]] = {
    DataType.LOTTERY_NUMBERS.value: r"\d+",
    DataType.MONEY.value: r"R?\$?\s*\d+[.,]?\d*",
    DataType.PHONE.value: r"\(?\d{2}\)?\s*\d{4,5}[-.\s]?\d{4}",
    DataType.EMAIL.value: r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}",
    DataType.CUSTOM.value: None,
}


def extract_lottery_numbers(content: str) -> list[int]:
    """First six integers in [1, 60]; fewer if the message has fewer."""
    numbers = [int(token) for token in _INTEGER.findall(content)]
    valid = [n for n in numbers if LOTTERY_MIN <= n <= LOTTERY_MAX]
    return valid[:LOTTERY_PICKS]


def extract_money(content: str) -> Optional[float]:
    """First currency-like amount ("R$ 12,50" -> 12.5), or None."""
    match = _MONEY.search(content)
    if not match:
        return None
    try:
        return float(match.group(1).replace(",", ".", 1))
    except ValueError:
        return None


def extract_captured_data(
    content: str,
    capture_pattern: Optional[str],
    action_config: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """
    Apply a rule's pattern to a message.
    Returns the captured data (always with "raw"), or None when the rule does not match.
    Invalid or timed-out patterns are treated as "no match".
    """
    content = content or ""
    data: Dict[str, Any] = {"raw": content}

    if not capture_pattern:
        return data

    try:
        first_match = search_pattern(capture_pattern, content)
    except TimeoutError:
        logger.warning("Capture pattern %r timed out, treating as no match", capture_pattern)
        return None
    except PATTERN_ERRORS as e:
        logger.warning("Invalid capture pattern %r: %s", capture_pattern, e)
        return None

    if first_match is None:
        return None

    data_type = (action_config or {}).get("data_type")

    if data_type == DataType.LOTTERY_NUMBERS.value:
        data["numbers"] = extract_lottery_numbers(content)

    if data_type == DataType.MONEY.value:
        value = extract_money(content)
        if value is not None:
            data["value"] = value

    # Named groups from the first match, e.g. (?P<team>\w+) or (?<team>\w+)
    for name, value in first_match.groupdict().items():
        if value is not None:
            data[name] = value

    return data
