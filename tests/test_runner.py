from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Set

import pytest

from stash_reporter.config import ReporterConfig
from stash_reporter.models import (
    GateDecision,
    Issue,
    PullRequestRef,
    ReviewDecision,
    Severity,
    StashUser,
)
from stash_reporter.runner import RunState, run
from stash_reporter.stash.client import StashClientError
from stash_reporter.stash.diff import DiffReport

REVIEWER = StashUser(id=1, name="sonarqube", slug="sonarqube")
MUTATIONS = {"reset_comments", "add_reviewer", "post_report", "post_overview", "approve", "reset_approval"}


class FakeClient:
    def __init__(self) -> None:
        self.closed = 0

    def __enter__(self) -> "FakeClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.closed += 1


class FakeFacade:
    """Records facade calls; a shared `comments` list stands in for the pull request."""

    def __init__(
        self,
        reviewer: Optional[StashUser] = REVIEWER,
        diff: Optional[DiffReport] = None,
        comments: Optional[List[str]] = None,
        fail_on: Optional[str] = None,
    ) -> None:
        self.reviewer = reviewer
        self.diff = diff if diff is not None else DiffReport()
        self.comments = comments if comments is not None else []
        self.fail_on = fail_on
        self.calls: List[str] = []
        self.posted_issues: List[Issue] = []

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name == self.fail_on:
            raise StashClientError(f"{name} failed", status=500)

    def get_reviewer(self, user_slug: str) -> Optional[StashUser]:
        self._record("get_reviewer")
        return self.reviewer

    def get_diff_report(self, pr: PullRequestRef) -> Optional[DiffReport]:
        self._record("get_diff_report")
        return self.diff

    def reset_comments(self, pr: PullRequestRef, diff_report: DiffReport, user: StashUser) -> int:
        self._record("reset_comments")
        n = len(self.comments)
        self.comments.clear()
        return n

    def add_reviewer(self, pr: PullRequestRef, user_name: str) -> None:
        self._record("add_reviewer")

    def post_report(self, pr: PullRequestRef, report: Sequence[Issue], diff_report: DiffReport) -> int:
        self._record("post_report")
        self.posted_issues.extend(report)
        self.comments.extend(i.key for i in report)
        return len(report)

    def post_overview(self, pr: PullRequestRef, report: Sequence[Issue], *, published: bool) -> None:
        self._record("post_overview")
        self.comments.append("overview")

    def approve(self, pr: PullRequestRef) -> None:
        self._record("approve")

    def reset_approval(self, pr: PullRequestRef) -> None:
        self._record("reset_approval")


def _cfg(**overrides: Any) -> ReporterConfig:
    base: Dict[str, Any] = dict(
        notify_enabled=True,
        issue_threshold=100,
        stash_url="https://stash.local",
        stash_user="sonarqube",
        stash_password="pw",
        stash_project="PRJ",
        stash_repository="repo",
        stash_pull_request_id="7",
    )
    base.update(overrides)
    return ReporterConfig(**base)


def _issues(n: int, severity: str = "MAJOR") -> List[Dict[str, Any]]:
    return [
        {"key": f"i{k}", "rule": "java:S100", "severity": severity, "component": "p:src/A.java", "line": k + 1}
        for k in range(n)
    ]


class Harness:
    def __init__(self, facade: FakeFacade, catalog: Optional[Set[str]] = None) -> None:
        self.facade = facade
        self.client = FakeClient()
        self.client_created = 0
        self.catalog_calls = 0
        self.catalog = catalog or set()

    def client_factory(self, cfg: ReporterConfig) -> FakeClient:
        self.client_created += 1
        return self.client

    def facade_factory(self, client: Any, cfg: ReporterConfig, log: logging.Logger) -> FakeFacade:
        assert client is self.client
        return self.facade

    def catalog_fetcher(self, cfg: ReporterConfig, log: logging.Logger) -> Set[str]:
        self.catalog_calls += 1
        return self.catalog

    def run(self, cfg: ReporterConfig, issues: Any):
        return run(
            cfg,
            issues,
            client_factory=self.client_factory,
            facade_factory=self.facade_factory,
            catalog_fetcher=self.catalog_fetcher,
        )


def test_notification_disabled_makes_no_remote_call() -> None:
    h = Harness(FakeFacade())
    consumed: List[int] = []

    def feed():
        consumed.append(1)
        yield from _issues(1)

    outcome = h.run(_cfg(notify_enabled=False), feed())

    assert outcome.state is RunState.SKIPPED
    assert h.client_created == 0
    assert h.facade.calls == []
    assert h.catalog_calls == 0
    assert consumed == []


def test_full_run_in_order() -> None:
    h = Harness(FakeFacade())
    cfg = _cfg(reset_comments=True, can_approve_pull_request=True)

    outcome = h.run(cfg, iter(_issues(2)))

    assert h.facade.calls == [
        "get_reviewer",
        "get_diff_report",
        "reset_comments",
        "add_reviewer",
        "post_report",
        "post_overview",
        "reset_approval",
    ]
    assert outcome.states == [
        RunState.START,
        RunState.REVIEWER_RESOLVED,
        RunState.DIFF_RESOLVED,
        RunState.COMMENTS_RESET,
        RunState.REVIEWER_REGISTERED,
        RunState.CLASSIFIED,
        RunState.GATED,
        RunState.OVERVIEW_POSTED,
        RunState.APPROVAL_APPLIED,
        RunState.DONE,
    ]
    assert outcome.gate is GateDecision.PUBLISH
    assert outcome.review is ReviewDecision.RESET_APPROVAL
    assert outcome.issue_count == 2
    assert h.client.closed == 1


def test_optional_steps_skipped_when_disabled() -> None:
    h = Harness(FakeFacade())
    outcome = h.run(_cfg(include_analysis_overview=False), iter(_issues(1)))

    assert h.facade.calls == ["get_reviewer", "get_diff_report", "post_report"]
    assert outcome.state is RunState.DONE
    assert outcome.review is None


def test_missing_reviewer_aborts_before_any_mutation(caplog: pytest.LogCaptureFixture) -> None:
    h = Harness(FakeFacade(reviewer=None))
    cfg = _cfg(reset_comments=True, can_approve_pull_request=True)

    with caplog.at_level(logging.DEBUG):
        outcome = h.run(cfg, iter(_issues(3)))

    assert outcome.state is RunState.ABORTED
    assert h.facade.calls == ["get_reviewer"]
    assert not MUTATIONS & set(h.facade.calls)
    assert h.catalog_calls == 0
    assert h.client.closed == 1
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "Process stopped" in errors[0].getMessage()
    assert any(r.levelno == logging.DEBUG and "sonarqube" in r.getMessage() for r in caplog.records)


def test_missing_diff_aborts() -> None:
    facade = FakeFacade()
    facade.diff = None  # type: ignore[assignment]
    h = Harness(facade)

    outcome = h.run(_cfg(reset_comments=True), iter(_issues(1)))

    assert outcome.state is RunState.ABORTED
    assert h.facade.calls == ["get_reviewer", "get_diff_report"]
    assert "differential report" in outcome.message


def test_reset_is_idempotent_across_runs() -> None:
    pull_request_comments: List[str] = []
    cfg = _cfg(reset_comments=True)

    first = Harness(FakeFacade(comments=pull_request_comments))
    first.run(cfg, iter(_issues(2)))
    after_first = list(pull_request_comments)

    second = Harness(FakeFacade(comments=pull_request_comments))
    second.run(cfg, iter(_issues(2)))

    assert first.facade.calls.count("reset_comments") == 1
    assert second.facade.calls.count("reset_comments") == 1
    assert pull_request_comments == after_first == ["i0", "i1", "overview"]


def test_threshold_reached_suppresses_annotations_but_posts_overview(caplog: pytest.LogCaptureFixture) -> None:
    h = Harness(FakeFacade())

    with caplog.at_level(logging.WARNING):
        outcome = h.run(_cfg(issue_threshold=5), iter(_issues(5)))

    assert outcome.gate is GateDecision.SUPPRESS
    assert "post_report" not in h.facade.calls
    assert "post_overview" in h.facade.calls
    assert any("(5/5)" in r.getMessage() for r in caplog.records)


def test_approval_with_severity_threshold() -> None:
    h = Harness(FakeFacade())
    cfg = _cfg(can_approve_pull_request=True, approval_severity_threshold=Severity.MAJOR)

    outcome = h.run(cfg, iter(_issues(3, severity="MINOR")))

    assert outcome.review is ReviewDecision.APPROVE
    assert h.facade.calls[-1] == "approve"
    assert "reset_approval" not in h.facade.calls


def test_catalog_only_fetched_when_policy_needs_it() -> None:
    h = Harness(FakeFacade(), catalog={"java:S100"})
    outcome = h.run(_cfg(exclude_code_smells=True), iter(_issues(3)))

    assert h.catalog_calls == 1
    assert outcome.issue_count == 0

    h2 = Harness(FakeFacade())
    h2.run(_cfg(), iter(_issues(3)))
    assert h2.catalog_calls == 0


def test_transport_failure_mid_run_is_logged_and_client_released(caplog: pytest.LogCaptureFixture) -> None:
    h = Harness(FakeFacade(fail_on="post_overview"))
    cfg = _cfg(can_approve_pull_request=True)

    with caplog.at_level(logging.ERROR):
        outcome = h.run(cfg, iter(_issues(1)))

    assert outcome.state is RunState.ABORTED
    assert "approve" not in h.facade.calls
    assert "reset_approval" not in h.facade.calls
    assert h.client.closed == 1
    assert any("Unable to push SonarQube report to Stash" in r.getMessage() for r in caplog.records)


def test_missing_pull_request_setting_is_a_configuration_error() -> None:
    h = Harness(FakeFacade())
    outcome = h.run(_cfg(stash_pull_request_id=None), iter(_issues(1)))

    assert outcome.state is RunState.ABORTED
    assert h.facade.calls == []
    assert h.client.closed == 1


def test_missing_credentials_abort_before_client_is_created() -> None:
    from stash_reporter.runner import default_client_factory

    outcome = run(_cfg(stash_password=None), iter(_issues(1)), client_factory=default_client_factory)

    assert outcome.state is RunState.ABORTED
    assert "password" in outcome.message


def test_malformed_feed_entries_do_not_abort_the_run() -> None:
    h = Harness(FakeFacade())
    raw: List[Any] = _issues(2)
    raw.insert(1, {"key": "bad", "rule": "java:S1", "severity": "MAJOR", "component": 123})
    raw.insert(2, None)

    outcome = h.run(_cfg(), iter(raw))

    assert outcome.state is RunState.DONE
    assert outcome.issue_count == 2
    assert [i.key for i in h.facade.posted_issues] == ["i0", "i1"]


class BrokenDiffFacade(FakeFacade):
    def get_diff_report(self, pr: PullRequestRef) -> Optional[DiffReport]:
        self._record("get_diff_report")
        return DiffReport.from_json({"diffs": [{"destination": {"toString": "A"}, "hunks": [None]}]})


def test_wrongly_shaped_diff_still_completes() -> None:
    h = Harness(BrokenDiffFacade())

    outcome = h.run(_cfg(), iter(_issues(1)))

    assert outcome.state is RunState.DONE
    assert outcome.gate is GateDecision.PUBLISH


class ExplodingFacade(FakeFacade):
    def post_report(self, pr: PullRequestRef, report: Sequence[Issue], diff_report: DiffReport) -> int:
        self._record("post_report")
        raise AttributeError("'NoneType' object has no attribute 'get'")


def test_unexpected_exception_is_contained_at_run_boundary(caplog: pytest.LogCaptureFixture) -> None:
    h = Harness(ExplodingFacade())
    cfg = _cfg(can_approve_pull_request=True)

    with caplog.at_level(logging.DEBUG):
        outcome = h.run(cfg, iter(_issues(1)))

    assert outcome.state is RunState.ABORTED
    assert "AttributeError" in outcome.message
    assert "post_overview" not in h.facade.calls
    assert "approve" not in h.facade.calls
    assert h.client.closed == 1
    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "Unable to push SonarQube report to Stash" in errors[0].getMessage()
    assert any(r.levelno == logging.DEBUG and "Traceback" in r.getMessage() for r in caplog.records)


def test_unexpected_exception_from_client_factory_is_contained() -> None:
    def factory(cfg: ReporterConfig) -> FakeClient:
        raise RuntimeError("boom")

    outcome = run(_cfg(), iter(_issues(1)), client_factory=factory)

    assert outcome.state is RunState.ABORTED
    assert "boom" in outcome.message
