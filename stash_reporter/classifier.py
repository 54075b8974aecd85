"""stash_reporter.classifier

Build the issue report: a single, order-preserving pass over the raw feed.

Which issues survive is decided by an :class:`InclusionPolicy`, built from
configuration. The policy may consult the rule catalog, which is how code
smells are told apart from bugs and vulnerabilities.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, FrozenSet, Iterable, List, Optional, Set

from stash_reporter.config import ReporterConfig
from stash_reporter.models import Issue
from stash_reporter.sonar.normalize import MalformedIssueError, parse_issue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InclusionPolicy:
    include_existing_issues: bool = False
    exclude_code_smells: bool = False
    excluded_rules: FrozenSet[str] = frozenset()

    @classmethod
    def from_config(cls, cfg: ReporterConfig) -> "InclusionPolicy":
        return cls(
            include_existing_issues=cfg.include_existing_issues,
            exclude_code_smells=cfg.exclude_code_smells,
            excluded_rules=frozenset(cfg.excluded_rules),
        )

    @property
    def needs_catalog(self) -> bool:
        return self.exclude_code_smells

    def __call__(self, issue: Issue, catalog: Set[str]) -> bool:
        if issue.resolved and not self.include_existing_issues:
            return False
        if issue.rule in self.excluded_rules:
            return False
        if self.exclude_code_smells and issue.rule in catalog:
            return False
        return True


def classify(
    raw_issues: Iterable[Any],
    catalog: Set[str],
    policy: InclusionPolicy,
    log: Optional[logging.Logger] = None,
) -> List[Issue]:
    log = log or logger
    report: List[Issue] = []
    skipped = 0

    for raw in raw_issues:
        try:
            issue = parse_issue(raw)
        except MalformedIssueError as e:
            log.warning("Skipping malformed issue: %s", e)
            continue
        if policy(issue, catalog):
            report.append(issue)
        else:
            skipped += 1

    log.info("Issue report built: %d issue(s) kept, %d filtered out", len(report), skipped)
    return report
