"""stash_reporter.gate

The two pure decisions taken on an issue report.

- decide_report  : publish the per-issue comments, or suppress all of them
- decide_approval: approve the pull request, or reset the approval

Neither touches the network.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from stash_reporter.models import GateDecision, Issue, ReviewDecision, Severity

logger = logging.getLogger(__name__)


def decide_report(
    issue_count: int,
    threshold: int,
    log: Optional[logging.Logger] = None,
) -> GateDecision:
    """Suppress when ``issue_count >= threshold`` (the threshold is exclusive)."""
    if issue_count >= threshold:
        (log or logger).warning(
            "Too many issues detected (%d/%d): Issues cannot be displayed in Diff view",
            issue_count,
            threshold,
        )
        return GateDecision.SUPPRESS
    return GateDecision.PUBLISH


def decide_approval(
    severity_threshold: Optional[Severity],
    report: Sequence[Issue],
) -> ReviewDecision:
    # Without a threshold no issue is tolerated.
    if severity_threshold is None:
        ok = len(report) == 0
    else:
        ok = all(issue.severity <= severity_threshold for issue in report)
    return ReviewDecision.APPROVE if ok else ReviewDecision.RESET_APPROVAL
