"""GitHub REST API content provider.

Thin, synchronous wrapper around the endpoints the pipeline needs.  HTTP
failures are translated into the :mod:`prcontext.errors` taxonomy so the
fetcher can tell a retryable hiccup from a rate-limit signal or a missing
path:

- 404 -> :class:`NotFoundError` (mapped to "absent" by the listing/content calls)
- 403/429 with an exhausted quota -> primary :class:`RateLimitError`
- 403/429 with ``retry-after`` or a secondary-limit message -> secondary :class:`RateLimitError`
- 5xx, timeouts, connection resets -> :class:`TransientRemoteError`
- anything else -> :class:`RemoteError`
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from . import config
from .errors import NotFoundError, RateLimitError, RemoteError, TransientRemoteError
from .models import FileChange, PullRequestInfo, RepoItem
from .provider import ContentProvider

logger = logging.getLogger(__name__)

FILES_PER_PAGE = 100
MAX_FILE_PAGES = 30
DEFAULT_SECONDARY_COOLDOWN = 60.0


class GitHubClient(ContentProvider):
    """Read-only GitHub access for indexing and diff anchoring."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = config.GITHUB_API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = config.REQUEST_TIMEOUT,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._shared_session = session
        self._local = threading.local()
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": config.USER_AGENT,
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    @property
    def session(self) -> requests.Session:
        """Session for the calling thread.

        Batched fetches run up to one window of calls in worker threads at once;
        each thread gets its own ``requests.Session`` unless one was injected.
        """
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
        return session

    # ------------------------------------------------------------------
    # Repository contents
    # ------------------------------------------------------------------

    def list_directory(self, owner: str, repo: str, path: str, ref: str) -> List[RepoItem]:
        try:
            data = self._get_json(self._contents_url(owner, repo, path), "list_directory", path, {"ref": ref})
        except NotFoundError:
            return []

        if isinstance(data, list):
            return [
                RepoItem(name=item.get("name", ""), path=item.get("path", ""), type=item.get("type", "file"))
                for item in data
            ]
        if isinstance(data, dict) and data.get("type") == "file":
            return [RepoItem(name=data.get("name", ""), path=data.get("path", ""), type="file")]
        return []

    def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]:
        try:
            data = self._get_json(self._contents_url(owner, repo, path), "get_file_content", path, {"ref": ref})
        except NotFoundError:
            return None

        if not isinstance(data, dict) or data.get("type", "file") != "file":
            return None

        if data.get("encoding") == "base64" and data.get("content") is not None:
            raw = base64.b64decode(data["content"])
            return raw.decode("utf-8", errors="replace")

        # Files over 1 MB come back without inline content
        download_url = data.get("download_url")
        if download_url:
            logger.debug("Fetching %s from %s", path, download_url)
            response = self._request("GET", download_url, "get_file_content", path)
            return response.text
        return None

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def get_pull_request_info(self, owner: str, repo: str, number: int) -> PullRequestInfo:
        pr = self._get_json(f"{self._repo_url(owner, repo)}/pulls/{number}", "get_pull_request", f"#{number}")
        return PullRequestInfo(
            owner=owner,
            repo=repo,
            number=number,
            title=pr.get("title") or "",
            body=pr.get("body") or "",
            base_branch=pr["base"]["ref"],
            head_branch=pr["head"]["ref"],
            head_sha=pr["head"]["sha"],
            files=self.list_pull_request_files(owner, repo, number),
        )

    def list_pull_request_files(self, owner: str, repo: str, number: int) -> List[FileChange]:
        url = f"{self._repo_url(owner, repo)}/pulls/{number}/files"
        changes: List[FileChange] = []
        for page in range(1, MAX_FILE_PAGES + 1):
            batch = self._get_json(
                url, "list_pull_request_files", f"#{number}",
                {"per_page": FILES_PER_PAGE, "page": page},
            )
            for item in batch:
                changes.append(FileChange(
                    filename=item["filename"],
                    status=item.get("status", "modified"),
                    additions=item.get("additions", 0),
                    deletions=item.get("deletions", 0),
                    changes=item.get("changes", 0),
                    patch=item.get("patch"),
                ))
            if len(batch) < FILES_PER_PAGE:
                break
        return changes

    def get_changed_file_patches(self, owner: str, repo: str, number: int) -> Dict[str, str]:
        """Map each changed filename to its unified diff text.

        Binary or oversized files have no patch and are left out.
        """
        return {
            change.filename: change.patch
            for change in self.list_pull_request_files(owner, repo, number)
            if change.patch
        }

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _repo_url(self, owner: str, repo: str) -> str:
        return f"{self.api_url}/repos/{quote(owner)}/{quote(repo)}"

    def _contents_url(self, owner: str, repo: str, path: str) -> str:
        path = path.strip("/")
        if not path:
            return f"{self._repo_url(owner, repo)}/contents"
        return f"{self._repo_url(owner, repo)}/contents/{quote(path)}"

    def _get_json(
        self,
        url: str,
        operation: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = self._request("GET", url, operation, path, params)
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(f"invalid JSON response: {exc}", operation=operation, path=path) from exc

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method, url, headers=self.headers, params=params, timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            raise TransientRemoteError(str(exc), operation=operation, path=path) from exc
        except requests.RequestException as exc:
            raise RemoteError(str(exc), operation=operation, path=path) from exc

        if response.status_code < 400:
            return response
        raise classify_error(response, operation, path)


def classify_error(response: requests.Response, operation: str = "", path: str = "") -> RemoteError:
    """Turn a failed response into the matching exception instance."""
    status = response.status_code
    headers = response.headers
    message = _error_message(response)

    if status == 404:
        return NotFoundError(message, operation=operation, path=path, status=status)

    if status in (403, 429):
        if headers.get("x-ratelimit-remaining") == "0":
            return RateLimitError(
                message, kind="primary", retry_after=_reset_cooldown(headers.get("x-ratelimit-reset")),
                operation=operation, path=path, status=status,
            )
        retry_after = headers.get("retry-after")
        if retry_after is not None or "secondary rate limit" in message.lower() or status == 429:
            return RateLimitError(
                message, kind="secondary", retry_after=_parse_seconds(retry_after, DEFAULT_SECONDARY_COOLDOWN),
                operation=operation, path=path, status=status,
            )

    if status >= 500:
        return TransientRemoteError(message, operation=operation, path=path, status=status)
    return RemoteError(message, operation=operation, path=path, status=status)


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return f"HTTP {response.status_code}: {payload['message']}"
    return f"HTTP {response.status_code}"


def _parse_seconds(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        return default


def _reset_cooldown(reset_epoch: Optional[str]) -> Optional[float]:
    if reset_epoch is None:
        return None
    try:
        return max(0.0, float(reset_epoch) - time.time())
    except ValueError:
        return None
