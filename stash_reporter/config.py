"""stash_reporter.config

Reporter settings.

Settings come from two places:

1) an optional YAML file (keys are the ``ReporterConfig`` field names)
2) environment variables (``STASH_*`` / ``SONAR_*``), which win over the file

The CLI loads ``.env`` with python-dotenv before calling :func:`load_config`,
so a local ``.env`` behaves exactly like exported variables.

Mandatory Stash settings (URL, credentials, pull request) are *not* checked
at load time. They are checked by the accessor that needs them, so the runner
can report a missing setting as a configuration error of the step that needed
it, and a disabled reporter never complains about settings it will not use.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from stash_reporter.models import PullRequestRef, Severity
from stash_reporter.sonar.types import SonarConfig


SONAR_HOST_DEFAULT = "http://localhost:9000"


class ConfigurationError(ValueError):
    pass


# Env var -> ReporterConfig field
ENV_VARS: Dict[str, str] = {
    "STASH_NOTIFICATION": "notify_enabled",
    "STASH_TIMEOUT": "timeout_ms",
    "STASH_ISSUE_THRESHOLD": "issue_threshold",
    "STASH_RESET_COMMENTS": "reset_comments",
    "STASH_REVIEWER_APPROVAL": "can_approve_pull_request",
    "STASH_REVIEWER_APPROVAL_SEVERITY_THRESHOLD": "approval_severity_threshold",
    "STASH_INCLUDE_OVERVIEW": "include_analysis_overview",
    "STASH_INCLUDE_EXISTING_ISSUES": "include_existing_issues",
    "STASH_EXCLUDE_CODE_SMELLS": "exclude_code_smells",
    "STASH_EXCLUDE_RULES": "excluded_rules",
    "STASH_URL": "stash_url",
    "STASH_USER": "stash_user",
    "STASH_PASSWORD": "stash_password",
    "STASH_PROJECT": "stash_project",
    "STASH_REPOSITORY": "stash_repository",
    "STASH_PULL_REQUEST_ID": "stash_pull_request_id",
    "SONAR_HOST": "sonar_host",
    "SONAR_TOKEN": "sonar_token",
    "SONAR_ORG": "sonar_org",
    "SONAR_RULE_LANGUAGES": "rule_languages",
    "SONAR_RULE_TYPES": "rule_types",
}


@dataclass(frozen=True)
class StashCredentials:
    user: str
    password: str


@dataclass(frozen=True)
class ReporterConfig:
    notify_enabled: bool = False
    timeout_ms: int = 10_000
    issue_threshold: int = 100
    reset_comments: bool = False
    can_approve_pull_request: bool = False
    approval_severity_threshold: Optional[Severity] = None
    include_analysis_overview: bool = True

    # Inclusion policy
    include_existing_issues: bool = False
    exclude_code_smells: bool = False
    excluded_rules: Tuple[str, ...] = ()

    # Bitbucket Server
    stash_url: Optional[str] = None
    stash_user: Optional[str] = None
    stash_password: Optional[str] = None
    stash_project: Optional[str] = None
    stash_repository: Optional[str] = None
    stash_pull_request_id: Optional[str] = None

    # SonarQube
    sonar_host: str = SONAR_HOST_DEFAULT
    sonar_token: Optional[str] = None
    sonar_org: Optional[str] = None
    rule_languages: str = "java"
    rule_types: str = "CODE_SMELL"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def require_stash_url(self) -> str:
        if not self.stash_url:
            raise ConfigurationError("Stash URL is not set (STASH_URL).")
        return self.stash_url.rstrip("/")

    def stash_credentials(self) -> StashCredentials:
        if not self.stash_user:
            raise ConfigurationError("Stash user is not set (STASH_USER).")
        if not self.stash_password:
            raise ConfigurationError("Stash password is not set (STASH_PASSWORD).")
        return StashCredentials(user=self.stash_user, password=self.stash_password)

    def pull_request(self) -> PullRequestRef:
        if not self.stash_project:
            raise ConfigurationError("Stash project is not set (STASH_PROJECT).")
        if not self.stash_repository:
            raise ConfigurationError("Stash repository is not set (STASH_REPOSITORY).")
        raw_id = (self.stash_pull_request_id or "").strip()
        if not raw_id:
            raise ConfigurationError("Pull request id is not set (STASH_PULL_REQUEST_ID).")
        try:
            pr_id = int(raw_id)
        except ValueError:
            raise ConfigurationError(f"Pull request id must be an integer, got {raw_id!r}.") from None
        return PullRequestRef(
            project=self.stash_project,
            repository=self.stash_repository,
            pull_request_id=pr_id,
        )

    def sonar_config(self) -> SonarConfig:
        return SonarConfig(
            host=self.sonar_host.rstrip("/"),
            token=self.sonar_token,
            org=self.sonar_org,
            timeout=self.timeout_seconds,
        )


def load_config(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ReporterConfig:
    """Build a ReporterConfig from an optional YAML file and the environment."""
    raw: Dict[str, Any] = {}
    if path is not None:
        raw.update(_read_yaml(Path(path)))

    env = os.environ if environ is None else environ
    for var, field_name in ENV_VARS.items():
        value = env.get(var)
        if value is not None and str(value).strip() != "":
            raw[field_name] = value

    return _build(raw)


def _read_yaml(path: Path) -> Dict[str, Any]:
    import yaml

    p = path.expanduser().resolve()
    if not p.exists():
        raise ConfigurationError(f"Config file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config YAML in {p}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read config file {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config YAML must be a mapping at top level: {p}")

    known = {f.name for f in fields(ReporterConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys in {p}: {', '.join(unknown)}")
    return dict(data)


def _build(raw: Dict[str, Any]) -> ReporterConfig:
    kwargs: Dict[str, Any] = {}
    for f in fields(ReporterConfig):
        if f.name not in raw:
            continue
        value = raw[f.name]
        if f.name in _BOOL_FIELDS:
            kwargs[f.name] = _parse_bool(value, f.name)
        elif f.name in _INT_FIELDS:
            kwargs[f.name] = _parse_int(value, f.name)
        elif f.name == "approval_severity_threshold":
            kwargs[f.name] = _parse_severity(value)
        elif f.name == "excluded_rules":
            kwargs[f.name] = _parse_rule_list(value)
        else:
            kwargs[f.name] = None if value is None else str(value).strip()

    cfg = ReporterConfig(**kwargs)
    if cfg.timeout_ms <= 0:
        raise ConfigurationError(f"timeout_ms must be positive, got {cfg.timeout_ms}")
    return cfg


_BOOL_FIELDS = {
    "notify_enabled",
    "reset_comments",
    "can_approve_pull_request",
    "include_analysis_overview",
    "include_existing_issues",
    "exclude_code_smells",
}
_INT_FIELDS = {"timeout_ms", "issue_threshold"}


def _parse_bool(value: object, name: str) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in {"1", "true", "yes", "on"}:
        return True
    if s in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _parse_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def _parse_severity(value: object) -> Optional[Severity]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.upper() == "NONE":
        return None
    try:
        return Severity.from_label(s)
    except ValueError:
        allowed = ", ".join(sev.name for sev in Severity)
        raise ConfigurationError(
            f"approval_severity_threshold must be one of {allowed}, got {value!r}"
        ) from None


def _parse_rule_list(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        items = [str(x) for x in value]
    else:
        items = str(value).split(",")
    out = []
    for item in items:
        s = item.strip()
        if s and s not in out:
            out.append(s)
    return tuple(out)
