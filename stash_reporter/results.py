"""stash_reporter.results

Explicit step results for the runner.

Each runner step returns one of:

- ``Ok(value)``          : the step produced what the next step needs
- ``MissingElement(msg)``: a required remote entity (reviewer, diff) is absent
- ``ConfigError(msg)``   : a mandatory setting is missing or invalid

The runner inspects the result instead of relying on exceptions for control
flow, so "abort" is visible at every call site.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class MissingElement:
    message: str
    detail: str = ""


@dataclass(frozen=True)
class ConfigError:
    message: str
    detail: str = ""


StepResult = Union[Ok[T], MissingElement, ConfigError]
