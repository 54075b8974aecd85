"""SonarQube -> Bitbucket Server (Stash) pull-request reporter.

Modules:
  - models.py    : Severity, Issue, PullRequestRef, decisions
  - results.py   : Ok | MissingElement | ConfigError step results
  - config.py    : ReporterConfig (env + optional YAML)
  - classifier.py: issue report building (inclusion policy)
  - gate.py      : publish/suppress and approve/reset decisions
  - runner.py    : the end-to-end run
  - sonar/       : SonarQube API + parsing
  - stash/       : Bitbucket client, diff view, comment bodies, facade

stash_report.py at the repo root is the CLI entrypoint.
"""
