"""stash_reporter.sonar.rules

Pure parsing of ``/api/rules/search`` pages.

- ``api.py`` is responsible for HTTP calls and pagination.
- This module turns one JSON page into ``(rule_keys, total)``.

Expected shape::

    {"total": 1200, "p": 1, "ps": 500, "rules": [{"key": "java:S1118"}, ...]}
"""

from __future__ import annotations

from typing import Any, List, Tuple


def parse_rules_page(payload: Any) -> Tuple[List[str], int]:
    """Return the trimmed rule keys and the reported total of one page.

    Blank keys are dropped. Raises ValueError when the payload does not have
    the expected shape.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"rules/search returned {type(payload).__name__}, expected object")

    try:
        total = int(payload.get("total", 0) or 0)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"rules/search 'total' is not an integer: {payload.get('total')!r}") from None

    rules = payload.get("rules") or []
    if not isinstance(rules, list):
        raise ValueError("rules/search 'rules' is not a list")

    keys: List[str] = []
    for rule in rules:
        if not isinstance(rule, dict):
            continue
        key = str(rule.get("key") or "").strip()
        if key:
            keys.append(key)
    return keys, total
