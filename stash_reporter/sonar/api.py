"""stash_reporter.sonar.api

All SonarQube HTTP calls live here.

Design goals:
  - Keep network I/O separated from parsing (see rules.py / normalize.py).
  - Best-effort pagination: return partial results on errors instead of
    raising, because both the rule catalog and a live issue feed are inputs
    the report can live without.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Optional, Set

import requests

from .rules import parse_rules_page
from .types import SonarConfig

logger = logging.getLogger(__name__)

RULES_PAGE_SIZE = 500
ISSUES_PAGE_SIZE = 500


def _auth_headers(cfg: SonarConfig) -> Dict[str, str]:
    headers = {"Accept": "application/json"}
    if cfg.token:
        headers["Authorization"] = f"Bearer {cfg.token}"
    return headers


def fetch_rule_catalog(
    cfg: SonarConfig,
    *,
    languages: str = "java",
    types: str = "CODE_SMELL",
    log: Optional[logging.Logger] = None,
) -> Set[str]:
    """Fetch the set of rule keys matching the given filters via /api/rules/search.

    The fetched count advances by the page size after every page and the loop
    ends once it reaches the reported total, or as soon as a page comes back
    without any usable rule key. A page whose rules all have blank keys counts
    as empty and also ends the loop. Never raises: on any failure the keys
    collected so far are returned.
    """
    log = log or logger
    headers = _auth_headers(cfg)
    url = f"{cfg.host.rstrip('/')}/api/rules/search"

    catalog: Set[str] = set()
    fetched = 0
    total = 1
    page = 1

    try:
        while total > fetched:
            params: Dict[str, Any] = {
                "languages": languages,
                "ps": RULES_PAGE_SIZE,
                "p": page,
                "types": types,
                "f": "templateKey",
            }
            if cfg.org:
                params["organization"] = cfg.org

            resp = requests.get(url, params=params, headers=headers, timeout=cfg.timeout)
            resp.raise_for_status()
            keys, total = parse_rules_page(resp.json())
            catalog.update(keys)

            fetched += RULES_PAGE_SIZE
            page += 1

            if not keys:
                break
    except (requests.RequestException, ValueError) as e:
        log.error("Unable to fetch rules from Sonar server: %s", e)
        log.debug("Rule catalog fetch failed on page %d", page, exc_info=True)

    log.debug("# Of rules: %d fetched (languages=%s, types=%s)", len(catalog), languages, types)
    return catalog


def iter_project_issues(
    cfg: SonarConfig,
    project_key: str,
    *,
    pull_request: Optional[str] = None,
    log: Optional[logging.Logger] = None,
) -> Iterator[Dict[str, Any]]:
    """Yield unresolved issues for a project via /api/issues/search (paginated).

    Pages are requested lazily as the caller iterates. On any error the feed
    simply ends early.
    """
    log = log or logger
    headers = _auth_headers(cfg)
    url = f"{cfg.host.rstrip('/')}/api/issues/search"
    page = 1

    while True:
        params: Dict[str, Any] = {
            "componentKeys": project_key,
            "resolved": "false",
            "ps": ISSUES_PAGE_SIZE,
            "p": page,
        }
        if pull_request:
            params["pullRequest"] = pull_request
        if cfg.org:
            params["organization"] = cfg.org

        try:
            resp = requests.get(url, params=params, headers=headers, timeout=cfg.timeout)
        except requests.RequestException as e:
            log.warning("Issues request error page %d: %s. Returning partial results.", page, e)
            return

        if resp.status_code == 404:
            log.warning("Issues search: project '%s' not found (404).", project_key)
            return

        if resp.status_code == 400 and "Can return only the first 10000 results" in resp.text:
            log.warning("Hit Sonar 10k issue limit. Returning the first pages only.")
            return

        if not resp.ok:
            log.warning("Issues search HTTP %d: %r. Returning partial results.", resp.status_code, resp.text[:200])
            return

        try:
            data = resp.json()
        except ValueError:
            log.warning("Could not decode issues JSON. Returning partial results.")
            return

        if not isinstance(data, dict):
            log.warning("Issues search returned %s, expected object.", type(data).__name__)
            return

        issues = data.get("issues", []) or []
        for issue in issues:
            yield issue

        if len(issues) < ISSUES_PAGE_SIZE:
            return
        page += 1
