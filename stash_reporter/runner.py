"""stash_reporter.runner

Push one SonarQube analysis to one Bitbucket pull request.

    reviewer -> diff -> (reset comments) -> (add reviewer) -> classify
             -> gate + per-issue comments -> (overview) -> (approve | reset approval)

Rules of the run:

- single pass, no retries, steps strictly in order
- a missing reviewer or diff aborts before anything is written to Stash
- a configuration error aborts whatever is left; so does any unexpected
  exception raised by a step
- an aborted run is logged (error: short message, debug: detail) and never
  raised to the caller
- the Stash client is opened once and closed on every exit path

Step functions return :mod:`stash_reporter.results` values instead of raising,
so every abort point is explicit in :func:`_execute`.
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Set, Tuple

from stash_reporter.classifier import InclusionPolicy, classify
from stash_reporter.config import ConfigurationError, ReporterConfig
from stash_reporter.gate import decide_approval, decide_report
from stash_reporter.models import GateDecision, PullRequestRef, ReviewDecision, StashUser
from stash_reporter.results import ConfigError, MissingElement, Ok, StepResult
from stash_reporter.sonar.api import fetch_rule_catalog
from stash_reporter.stash.client import StashClient, StashClientError
from stash_reporter.stash.diff import DiffReport
from stash_reporter.stash.facade import StashRequestFacade

logger = logging.getLogger(__name__)


class RunState(Enum):
    SKIPPED = "skipped"
    START = "start"
    REVIEWER_RESOLVED = "reviewer_resolved"
    DIFF_RESOLVED = "diff_resolved"
    COMMENTS_RESET = "comments_reset"
    REVIEWER_REGISTERED = "reviewer_registered"
    CLASSIFIED = "classified"
    GATED = "gated"
    OVERVIEW_POSTED = "overview_posted"
    APPROVAL_APPLIED = "approval_applied"
    DONE = "done"
    ABORTED = "aborted"


@dataclass
class RunOutcome:
    state: RunState = RunState.START
    states: List[RunState] = field(default_factory=list)
    gate: Optional[GateDecision] = None
    review: Optional[ReviewDecision] = None
    issue_count: Optional[int] = None
    message: str = ""

    def advance(self, state: RunState) -> None:
        self.state = state
        self.states.append(state)


ClientFactory = Callable[[ReporterConfig], StashClient]
FacadeFactory = Callable[[Any, ReporterConfig, logging.Logger], StashRequestFacade]
CatalogFetcher = Callable[[ReporterConfig, logging.Logger], Set[str]]


def default_client_factory(cfg: ReporterConfig) -> StashClient:
    return StashClient(
        cfg.require_stash_url(),
        cfg.stash_credentials(),
        timeout=cfg.timeout_seconds,
    )


def default_facade_factory(client: Any, cfg: ReporterConfig, log: logging.Logger) -> StashRequestFacade:
    return StashRequestFacade(client, cfg.sonar_config().host, log=log)


def default_catalog_fetcher(cfg: ReporterConfig, log: logging.Logger) -> Set[str]:
    return fetch_rule_catalog(
        cfg.sonar_config(),
        languages=cfg.rule_languages,
        types=cfg.rule_types,
        log=log,
    )


def run(
    cfg: ReporterConfig,
    raw_issues: Iterable[Any],
    *,
    client_factory: ClientFactory = default_client_factory,
    facade_factory: FacadeFactory = default_facade_factory,
    catalog_fetcher: CatalogFetcher = default_catalog_fetcher,
    log: Optional[logging.Logger] = None,
) -> RunOutcome:
    log = log or logger
    outcome = RunOutcome()

    if not cfg.notify_enabled:
        log.info("Stash notification not enabled, skipping")
        outcome.advance(RunState.SKIPPED)
        return outcome

    outcome.advance(RunState.START)
    try:
        client = client_factory(cfg)
    except ConfigurationError as e:
        return _abort(outcome, ConfigError(str(e), traceback.format_exc()), log)
    except Exception as e:
        return _abort(outcome, _unexpected(e), log)

    try:
        with client:
            facade = facade_factory(client, cfg, log)
            result = _execute(cfg, facade, raw_issues, catalog_fetcher, log, outcome)
    except (StashClientError, ConfigurationError) as e:
        return _abort(outcome, ConfigError(str(e), traceback.format_exc()), log)
    except Exception as e:
        return _abort(outcome, _unexpected(e), log)

    if not isinstance(result, Ok):
        return _abort(outcome, result, log)

    outcome.advance(RunState.DONE)
    return outcome


def _execute(
    cfg: ReporterConfig,
    facade: StashRequestFacade,
    raw_issues: Iterable[Any],
    catalog_fetcher: CatalogFetcher,
    log: logging.Logger,
    outcome: RunOutcome,
) -> StepResult[None]:
    resolved = _resolve_reviewer(cfg, facade)
    if not isinstance(resolved, Ok):
        return resolved
    pr, reviewer = resolved.value
    outcome.advance(RunState.REVIEWER_RESOLVED)

    diff = _resolve_diff(facade, pr)
    if not isinstance(diff, Ok):
        return diff
    diff_report = diff.value
    outcome.advance(RunState.DIFF_RESOLVED)

    if cfg.reset_comments:
        facade.reset_comments(pr, diff_report, reviewer)
        outcome.advance(RunState.COMMENTS_RESET)

    if cfg.can_approve_pull_request:
        facade.add_reviewer(pr, reviewer.name)
        outcome.advance(RunState.REVIEWER_REGISTERED)

    policy = InclusionPolicy.from_config(cfg)
    catalog: Set[str] = catalog_fetcher(cfg, log) if policy.needs_catalog else set()
    report = classify(raw_issues, catalog, policy, log)
    outcome.issue_count = len(report)
    outcome.advance(RunState.CLASSIFIED)

    outcome.gate = decide_report(len(report), cfg.issue_threshold, log)
    if outcome.gate is GateDecision.PUBLISH:
        facade.post_report(pr, report, diff_report)
    outcome.advance(RunState.GATED)

    if cfg.include_analysis_overview:
        facade.post_overview(pr, report, published=outcome.gate is GateDecision.PUBLISH)
        outcome.advance(RunState.OVERVIEW_POSTED)

    if cfg.can_approve_pull_request:
        outcome.review = decide_approval(cfg.approval_severity_threshold, report)
        if outcome.review is ReviewDecision.APPROVE:
            facade.approve(pr)
        else:
            facade.reset_approval(pr)
        outcome.advance(RunState.APPROVAL_APPLIED)

    return Ok(None)


def _resolve_reviewer(
    cfg: ReporterConfig,
    facade: StashRequestFacade,
) -> StepResult[Tuple[PullRequestRef, StashUser]]:
    try:
        pr = cfg.pull_request()
        user_slug = cfg.stash_credentials().user
    except ConfigurationError as e:
        return ConfigError(str(e), traceback.format_exc())

    reviewer = facade.get_reviewer(user_slug)
    if reviewer is None:
        return MissingElement(
            "No SonarQube reviewer identified to publish to Stash the SQ analysis",
            f"user slug {user_slug!r} not found on {pr.describe()}",
        )
    return Ok((pr, reviewer))


def _resolve_diff(facade: StashRequestFacade, pr: PullRequestRef) -> StepResult[DiffReport]:
    diff_report = facade.get_diff_report(pr)
    if diff_report is None:
        return MissingElement(
            "No Stash differential report available to process the SQ analysis",
            f"no diff returned for {pr.describe()}",
        )
    return Ok(diff_report)


def _unexpected(e: Exception) -> ConfigError:
    return ConfigError(f"unexpected error ({type(e).__name__}): {e}", traceback.format_exc())


def _abort(outcome: RunOutcome, result: StepResult[Any], log: logging.Logger) -> RunOutcome:
    if isinstance(result, MissingElement):
        log.error("Process stopped: %s", result.message)
    else:
        log.error("Unable to push SonarQube report to Stash: %s", result.message)
    if result.detail:
        log.debug("Abort detail: %s", result.detail)

    outcome.message = result.message
    outcome.advance(RunState.ABORTED)
    return outcome
