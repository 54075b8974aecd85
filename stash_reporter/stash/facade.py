"""stash_reporter.stash.facade

Turns runner decisions into Bitbucket REST calls.

The runner never talks to :class:`StashClient` directly; it goes through this
facade, which keeps the step functions free of URL and payload details and
lets tests substitute a fake facade.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from stash_reporter.models import Issue, PullRequestRef, StashUser
from stash_reporter.stash import markdown
from stash_reporter.stash.client import StashClient
from stash_reporter.stash.diff import DiffReport

logger = logging.getLogger(__name__)

ACTIVITIES_PAGE_SIZE = 100


class StashRequestFacade:
    def __init__(self, client: StashClient, sonar_host: str, log: Optional[logging.Logger] = None):
        self.client = client
        self.sonar_host = sonar_host
        self.log = log or logger

    def get_reviewer(self, user_slug: str) -> Optional[StashUser]:
        data = self.client.get_user(user_slug)
        if not data:
            return None
        return StashUser(
            id=int(data.get("id") or 0),
            name=str(data.get("name") or user_slug),
            slug=str(data.get("slug") or user_slug),
            email=data.get("emailAddress"),
        )

    def get_diff_report(self, pr: PullRequestRef) -> Optional[DiffReport]:
        data = self.client.get_pull_request_diff(pr)
        if data is None:
            return None
        return DiffReport.from_json(data)

    def reset_comments(self, pr: PullRequestRef, diff_report: DiffReport, user: StashUser) -> int:
        """Delete every comment ``user`` left on the pull request.

        Covers both the comments attached to the diff and the general
        comments (the analysis overview) found in the activity stream.
        """
        to_delete: Dict[int, int] = {}
        for c in diff_report.comments_by(user.slug):
            to_delete[c.id] = c.version

        start = 0
        while True:
            page = self.client.get_activities(pr, start=start, limit=ACTIVITIES_PAGE_SIZE)
            if not isinstance(page, dict):
                break
            for comment_id, version in _own_comments(page.get("values"), user.slug):
                to_delete.setdefault(comment_id, version)
            if page.get("isLastPage", True):
                break
            next_start = page.get("nextPageStart")
            # Stop on a missing or non-advancing cursor.
            if not isinstance(next_start, int) or isinstance(next_start, bool) or next_start <= start:
                self.log.debug("Activity paging stopped at start=%d (nextPageStart=%r)", start, next_start)
                break
            start = next_start

        for comment_id, version in to_delete.items():
            self.client.delete_comment(pr, comment_id, version)

        self.log.info("%d comment(s) by %s removed from %s", len(to_delete), user.slug, pr.describe())
        return len(to_delete)

    def add_reviewer(self, pr: PullRequestRef, user_name: str) -> None:
        self.client.add_reviewer(pr, user_name)
        self.log.info("Reviewer %s added to %s", user_name, pr.describe())

    def post_report(self, pr: PullRequestRef, report: Sequence[Issue], diff_report: DiffReport) -> int:
        """Post one comment per issue located on a line of the diff."""
        posted = 0
        for issue in report:
            line_type = diff_report.line_type(issue.path, issue.line)
            if line_type is None:
                self.log.debug("Issue %s (%s:%s) is outside the diff, not posted", issue.key, issue.path, issue.line)
                continue
            anchor = {
                "line": issue.line,
                "lineType": line_type,
                "fileType": "TO",
                "path": issue.path,
                "srcPath": issue.path,
            }
            self.client.post_comment(pr, markdown.issue_comment(issue, self.sonar_host), anchor=anchor)
            posted += 1

        self.log.info("%d SonarQube issue(s) pushed to %s", posted, pr.describe())
        return posted

    def post_overview(self, pr: PullRequestRef, report: Sequence[Issue], *, published: bool) -> None:
        self.client.post_comment(pr, markdown.overview(report, self.sonar_host, published=published))
        self.log.info("SonarQube analysis overview pushed to %s", pr.describe())

    def approve(self, pr: PullRequestRef) -> None:
        self.client.approve(pr)
        self.log.info("Pull request %s approved", pr.describe())

    def reset_approval(self, pr: PullRequestRef) -> None:
        self.client.reset_approval(pr)
        self.log.info("Pull request %s approval reset", pr.describe())


def _own_comments(activities: Any, slug: str) -> Iterator[Tuple[int, int]]:
    """Yield (id, version) of the COMMENTED activities authored by ``slug``."""
    if not isinstance(activities, list):
        return
    for activity in activities:
        if not isinstance(activity, dict) or activity.get("action") != "COMMENTED":
            continue
        comment = activity.get("comment")
        if not isinstance(comment, dict):
            continue
        author = comment.get("author")
        if not isinstance(author, dict) or author.get("slug") != slug:
            continue
        try:
            comment_id, version = int(comment["id"]), int(comment.get("version") or 0)
        except (KeyError, TypeError, ValueError, OverflowError):
            continue
        yield comment_id, version
