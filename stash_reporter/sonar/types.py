from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SonarConfig:
    """Connection settings for SonarQube / SonarCloud API calls."""
    host: str
    token: Optional[str] = None
    org: Optional[str] = None
    timeout: float = 10.0
