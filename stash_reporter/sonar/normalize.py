"""stash_reporter.sonar.normalize

Turn Sonar ``/api/issues/search`` issue objects into :class:`Issue` values.

Only the fields the reporter needs are kept. A single bad entry raises
:class:`MalformedIssueError`; callers decide whether to skip it.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from stash_reporter.models import Issue, Severity


class MalformedIssueError(ValueError):
    pass


def extract_location(issue: Dict[str, Any]) -> Tuple[Optional[str], Optional[int]]:
    """Return (repo-relative path, line) for a Sonar issue.

    ``component`` looks like ``project:src/main/java/Foo.java``; project-level
    issues carry no path. ``line`` falls back to ``textRange.startLine``.
    """
    component = issue.get("component") or ""
    if not isinstance(component, str):
        raise MalformedIssueError(f"Issue component is not a string: {component!r}")
    file_path: Optional[str] = None
    if component:
        file_path = component.split(":", 1)[1] if ":" in component else component

    line = issue.get("line")
    if line is None:
        text_range = issue.get("textRange") or {}
        if not isinstance(text_range, dict):
            raise MalformedIssueError(f"Issue textRange is not an object: {text_range!r}")
        line = text_range.get("startLine")

    if line is not None:
        if isinstance(line, bool):
            raise MalformedIssueError(f"Issue line is not an integer: {line!r}")
        try:
            line = int(line)
        except (TypeError, ValueError, OverflowError):
            raise MalformedIssueError(f"Issue line is not an integer: {line!r}") from None
    return file_path or None, line


def parse_issue(raw: Any) -> Issue:
    if isinstance(raw, Issue):
        return raw
    if not isinstance(raw, dict):
        raise MalformedIssueError(f"Issue entry must be an object, got {type(raw).__name__}")

    rule = str(raw.get("rule") or "").strip()
    if not rule:
        raise MalformedIssueError(f"Issue has no rule: {raw.get('key')!r}")

    try:
        severity = Severity.from_label(raw.get("severity"))
    except ValueError as e:
        raise MalformedIssueError(str(e)) from None

    path, line = extract_location(raw)
    return Issue(
        key=str(raw.get("key") or ""),
        rule=rule,
        severity=severity,
        message=str(raw.get("message") or ""),
        path=path,
        line=line,
        type=raw.get("type"),
        status=raw.get("status"),
    )


def load_issues_file(path: str | Path) -> List[Dict[str, Any]]:
    """Read a saved issues export.

    Accepts the raw ``/api/issues/search`` response (``{"issues": [...]}``)
    or a bare list of issue objects.
    """
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("issues", [])
    if not isinstance(data, list):
        raise ValueError(f"Issues file must contain a list or an 'issues' list: {p}")
    return data

