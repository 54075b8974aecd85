"""stash_reporter.stash.diff

Read-only view over a Bitbucket pull-request diff (``.../diff?withComments=true``).

Only two questions are asked of a diff:

- is (path, line) of the new file part of the diff, and with which line type?
- which comments are already attached to the diff?
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional


@dataclass(frozen=True)
class DiffComment:
    id: int
    version: int
    author_slug: Optional[str]
    path: Optional[str] = None


class DiffReport:
    def __init__(
        self,
        lines: Optional[Dict[str, Dict[int, str]]] = None,
        comments: Optional[List[DiffComment]] = None,
    ):
        self.lines: Dict[str, Dict[int, str]] = lines or {}
        self.comments: List[DiffComment] = comments or []

    @classmethod
    def from_json(cls, payload: Any) -> "DiffReport":
        """Build the view from a diff payload; entries of the wrong shape are skipped."""
        lines: Dict[str, Dict[int, str]] = {}
        comments: List[DiffComment] = []
        if not isinstance(payload, dict):
            return cls()

        for diff in _dicts(payload.get("diffs")):
            path = _path_of(diff.get("destination")) or _path_of(diff.get("source"))

            for hunk in _dicts(diff.get("hunks")):
                for segment in _dicts(hunk.get("segments")):
                    line_type = str(segment.get("type") or "").upper()
                    # Removed lines do not exist in the new file.
                    if line_type == "REMOVED" or not path:
                        continue
                    file_lines = lines.setdefault(path, {})
                    for line in _dicts(segment.get("lines")):
                        dest = line.get("destination")
                        if isinstance(dest, int) and not isinstance(dest, bool):
                            file_lines[dest] = line_type

            comments.extend(_comments(diff.get("lineComments"), path))
            comments.extend(_comments(diff.get("fileComments"), path))

        return cls(lines=lines, comments=comments)

    def line_type(self, path: Optional[str], line: Optional[int]) -> Optional[str]:
        if not path or line is None:
            return None
        return self.lines.get(path, {}).get(line)

    def comments_by(self, author_slug: str) -> List[DiffComment]:
        return [c for c in self.comments if c.author_slug == author_slug]


def _dicts(items: Any) -> Iterator[Dict[str, Any]]:
    if not isinstance(items, list):
        return
    for item in items:
        if isinstance(item, dict):
            yield item


def _path_of(node: Any) -> Optional[str]:
    if not isinstance(node, dict):
        return None
    path = node.get("toString")
    return path if isinstance(path, str) and path else None


def _comments(items: Any, path: Optional[str]) -> List[DiffComment]:
    out: List[DiffComment] = []
    for c in _dicts(items):
        try:
            comment_id = int(c["id"])
            version = int(c.get("version") or 0)
        except (KeyError, TypeError, ValueError, OverflowError):
            continue
        author = c.get("author")
        slug = author.get("slug") if isinstance(author, dict) else None
        out.append(DiffComment(id=comment_id, version=version, author_slug=slug, path=path))
    return out
