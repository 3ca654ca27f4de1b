"""
Reply templates: "{{identifier}}" placeholders filled from captured data.
"""
import re
from typing import Any, Mapping

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def _render_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return " - ".join(str(item) for item in value)
    return str(value)


def interpolate(template: str, data: Mapping[str, Any]) -> str:
    """
    Replace every {{key}} with data[key]. Sequences are joined with " - ".
    Keys missing from data (or set to None) are left as-is.
    """
    if not template:
        return template or ""

    def replace(match: re.Match) -> str:
        value = data.get(match.group(1))
        if value is None:
            return match.group(0)
        return _render_value(value)

    return _PLACEHOLDER.sub(replace, template)
