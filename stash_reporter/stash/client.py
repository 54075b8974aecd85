"""stash_reporter.stash.client

Minimal Bitbucket Server (Stash) REST 1.0 client.

One ``StashClient`` is opened per run and closed exactly once; use it as a
context manager::

    with StashClient(url, credentials, timeout=10.0) as client:
        client.get_user("sonarqube")

Every call raises :class:`StashClientError` on transport errors and on
unexpected HTTP statuses. Lookups that are allowed to come back empty
(``get_user``, ``get_pull_request_diff``) return ``None`` on 404.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from stash_reporter.config import StashCredentials
from stash_reporter.models import PullRequestRef

USER_AGENT = "sonar-stash-reporter/0.1"


class StashClientError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class StashClient:
    def __init__(
        self,
        base_url: str,
        credentials: StashCredentials,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (credentials.user, credentials.password)
        self.session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            }
        )
        self._closed = False

    def __enter__(self) -> "StashClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.session.close()

    @property
    def closed(self) -> bool:
        return self._closed

    # -------------------------
    # REST calls
    # -------------------------

    def get_user(self, slug: str) -> Optional[Dict[str, Any]]:
        resp = self._request("GET", f"/rest/api/1.0/users/{slug}", allow={404})
        if resp.status_code == 404:
            return None
        return self._json(resp)

    def get_pull_request_diff(self, pr: PullRequestRef) -> Optional[Dict[str, Any]]:
        resp = self._request(
            "GET",
            f"{_pr_path(pr)}/diff",
            params={"withComments": "true"},
            allow={404},
        )
        if resp.status_code == 404:
            return None
        return self._json(resp)

    def get_activities(self, pr: PullRequestRef, *, start: int = 0, limit: int = 100) -> Dict[str, Any]:
        resp = self._request(
            "GET",
            f"{_pr_path(pr)}/activities",
            params={"start": start, "limit": limit},
        )
        return self._json(resp)

    def delete_comment(self, pr: PullRequestRef, comment_id: int, version: int) -> None:
        # 404: already gone, which is what we wanted.
        self._request(
            "DELETE",
            f"{_pr_path(pr)}/comments/{comment_id}",
            params={"version": version},
            allow={404},
        )

    def add_reviewer(self, pr: PullRequestRef, user_name: str) -> None:
        # 409: the user already takes part in the pull request.
        self._request(
            "POST",
            f"{_pr_path(pr)}/participants",
            json={"user": {"name": user_name}, "role": "REVIEWER"},
            allow={409},
        )

    def post_comment(
        self,
        pr: PullRequestRef,
        text: str,
        anchor: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"text": text}
        if anchor:
            payload["anchor"] = anchor
        resp = self._request("POST", f"{_pr_path(pr)}/comments", json=payload)
        return self._json(resp)

    def approve(self, pr: PullRequestRef) -> None:
        self._request("POST", f"{_pr_path(pr)}/approve")

    def reset_approval(self, pr: PullRequestRef) -> None:
        # 409: nothing to reset.
        self._request("DELETE", f"{_pr_path(pr)}/approve", allow={409})

    # -------------------------
    # plumbing
    # -------------------------

    def _request(self, method: str, path: str, *, allow=frozenset(), **kwargs: Any) -> requests.Response:
        if self._closed:
            raise StashClientError("Stash client is closed")
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StashClientError(f"{method} {url} failed: {e}") from e

        if not resp.ok and resp.status_code not in allow:
            raise StashClientError(
                f"HTTP {resp.status_code} for {method} {url}: {resp.text[:400]}",
                status=resp.status_code,
            )
        return resp

    @staticmethod
    def _json(resp: requests.Response) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise StashClientError(f"Could not decode JSON from {resp.url}") from e
        if not isinstance(data, dict):
            raise StashClientError(f"Unexpected JSON payload from {resp.url}")
        return data


def _pr_path(pr: PullRequestRef) -> str:
    return (
        f"/rest/api/1.0/projects/{pr.project}/repos/{pr.repository}"
        f"/pull-requests/{pr.pull_request_id}"
    )
