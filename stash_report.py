#!/usr/bin/env python3
"""
Push a SonarQube analysis to a Bitbucket Server (Stash) pull request.

This file is intentionally kept as a thin entrypoint:
  - load .env and the optional YAML config
  - configure logging
  - open the issue feed (saved issues export OR live Sonar API)
  - call stash_reporter.runner.run()

Usage:
  python stash_report.py --issues-file runs/sonar/my_repo/issues.json
  python stash_report.py --sonar-project-key my_project --sonar-pull-request 42
  python stash_report.py --config stash-reporter.yaml --pull-request-id 42 -v
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional

from dotenv import load_dotenv

from stash_reporter.config import ConfigurationError, load_config
from stash_reporter.runner import RunState, run
from stash_reporter.sonar.api import iter_project_issues
from stash_reporter.sonar.normalize import load_issues_file

ROOT_DIR = Path(__file__).resolve().parent
ENV_PATH = ROOT_DIR / ".env"

log = logging.getLogger("stash_reporter")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Post SonarQube issues to a Bitbucket Server pull request and approve or reset approval."
    )
    p.add_argument("--config", default=None, help="Optional YAML config file (env vars win).")
    p.add_argument("--env-file", default=str(ENV_PATH), help="Path to a .env file (default: repo .env).")

    feed = p.add_mutually_exclusive_group(required=True)
    feed.add_argument("--issues-file", help="Saved /api/issues/search JSON export.")
    feed.add_argument("--sonar-project-key", help="Fetch unresolved issues live for this project.")

    p.add_argument("--sonar-pull-request", default=None, help="Sonar pull request key for live issue fetch.")
    p.add_argument("--pull-request-id", default=None, help="Override STASH_PULL_REQUEST_ID.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p.parse_args(argv)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    # Load .env at runtime (not import-time); exported variables win.
    load_dotenv(args.env_file, override=False)
    configure_logging(args.verbose)

    try:
        cfg = load_config(args.config)
    except ConfigurationError as e:
        log.error("Unable to push SonarQube report to Stash: %s", e)
        log.debug("Configuration error", exc_info=True)
        return 0

    if args.pull_request_id:
        cfg = dataclasses.replace(cfg, stash_pull_request_id=args.pull_request_id)

    issues: Iterable[Any]
    if args.issues_file:
        try:
            issues = iter(load_issues_file(args.issues_file))
        except (OSError, ValueError) as e:
            log.error("Cannot read issues file %s: %s", args.issues_file, e)
            return 2
    else:
        issues = iter_project_issues(
            cfg.sonar_config(),
            args.sonar_project_key,
            pull_request=args.sonar_pull_request,
            log=log,
        )

    outcome = run(cfg, issues, log=log)
    if outcome.state is RunState.DONE:
        log.info(
            "Done: %s issue(s), annotations %s",
            outcome.issue_count,
            outcome.gate.value if outcome.gate else "n/a",
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
