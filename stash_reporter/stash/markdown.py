"""stash_reporter.stash.markdown

Comment bodies posted on the pull request (Bitbucket renders markdown).
"""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from stash_reporter.models import Issue, Severity

OVERVIEW_TITLE = "## SonarQube analysis Overview"


def rule_link(sonar_host: str, rule: str) -> str:
    return f"[{rule}]({sonar_host.rstrip('/')}/coding_rules#rule_key={rule})"


def issue_comment(issue: Issue, sonar_host: str) -> str:
    return f"*{issue.severity.name}* - {issue.message} [{rule_link(sonar_host, issue.rule)}]"


def overview(
    report: Sequence[Issue],
    sonar_host: str,
    *,
    published: bool,
) -> str:
    parts = [OVERVIEW_TITLE, ""]

    if not report:
        parts.append("No new issues detected.")
    else:
        counts = Counter(issue.severity for issue in report)
        parts.append(f"| Total New Issues | {len(report)} |")
        parts.append("|---|---|")
        for sev in Severity.ordered():
            parts.append(f"| {sev.name.capitalize()} | {counts.get(sev, 0)} |")

        rules = Counter(issue.rule for issue in report)
        parts.append("")
        parts.append("| Issues per rule | |")
        parts.append("|---|---|")
        for rule, n in rules.most_common():
            parts.append(f"| {rule_link(sonar_host, rule)} | {n} |")

        if not published:
            parts.append("")
            parts.append("*Too many issues to display them in the diff view.*")

    return "\n".join(parts)
