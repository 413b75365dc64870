"""Pytest configuration and fixtures for prcontext tests."""

import threading
from pathlib import Path
from typing import List, Optional, Set

import pytest

from prcontext.errors import TransientRemoteError
from prcontext.fetcher import RetryingFetcher
from prcontext.models import FileChange, PullRequestInfo, RepoItem
from prcontext.provider import ContentProvider
from prcontext.rate_limit import RetryPolicy


class LocalTreeProvider(ContentProvider):
    """Serves a directory on disk as if it were a remote repository.

    ``failing_files`` always raise a transient error; ``failing_dirs`` do the
    same for listings.  Every call is recorded for assertions.
    """

    def __init__(
        self,
        root: Path,
        failing_files: Optional[Set[str]] = None,
        failing_dirs: Optional[Set[str]] = None,
    ) -> None:
        self.root = root
        self.failing_files = failing_files or set()
        self.failing_dirs = failing_dirs or set()
        self.listed: List[str] = []
        self.fetched: List[str] = []
        self._lock = threading.Lock()

    def list_directory(self, owner: str, repo: str, path: str, ref: str) -> List[RepoItem]:
        with self._lock:
            self.listed.append(path)
        if path in self.failing_dirs:
            raise TransientRemoteError("boom", operation="list_directory", path=path)
        directory = self.root / path if path else self.root
        if not directory.is_dir():
            return []
        items = []
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            rel = entry.relative_to(self.root).as_posix()
            items.append(RepoItem(name=entry.name, path=rel, type="dir" if entry.is_dir() else "file"))
        return items

    def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]:
        with self._lock:
            self.fetched.append(path)
        if path in self.failing_files:
            raise TransientRemoteError("boom", operation="get_file_content", path=path)
        file_path = self.root / path
        if not file_path.is_file():
            return None
        return file_path.read_text(encoding="utf-8")


class FakeGitHub(LocalTreeProvider):
    """LocalTreeProvider that also answers pull-request queries."""

    def __init__(self, root: Path, pull_request: PullRequestInfo) -> None:
        super().__init__(root)
        self.pull_request = pull_request

    def get_pull_request_info(self, owner: str, repo: str, number: int) -> PullRequestInfo:
        return self.pull_request


class SleepRecorder:
    """Async stand-in for asyncio.sleep that only records the delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    """Point the config file at a temp dir and hide any real GitHub token."""
    base = tmp_path / "prcontext_home"
    monkeypatch.setattr("prcontext.config.BASE_DIR", base)
    monkeypatch.setattr("prcontext.config.CONFIG_FILE", base / "config.toml")
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)


@pytest.fixture
def sample_repo_path() -> Path:
    """Get path to the sample TypeScript repository."""
    return Path(__file__).parent / "fixtures" / "sample_repo"


@pytest.fixture
def sample_provider(sample_repo_path: Path) -> LocalTreeProvider:
    return LocalTreeProvider(sample_repo_path)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_fetcher(sleep_recorder: SleepRecorder) -> RetryingFetcher:
    """Fetcher with the default policy that never really sleeps."""
    return RetryingFetcher(RetryPolicy(), sleep=sleep_recorder)


@pytest.fixture
def sample_patch() -> str:
    """Two-hunk unified diff of a TypeScript file."""
    return "\n".join([
        "@@ -1,3 +1,3 @@",
        " import { a } from './a';",
        "-const limit = 1;",
        "+const limit = 2;",
        " export default limit;",
        "@@ -10,2 +10,3 @@ export function run() {",
        "   start();",
        "+  log('started');",
        "   finish();",
    ])


@pytest.fixture
def sample_pull_request(sample_patch: str) -> PullRequestInfo:
    return PullRequestInfo(
        owner="acme",
        repo="shop",
        number=7,
        title="Cancel orders",
        body="Adds order cancellation.",
        base_branch="main",
        head_branch="feature/cancel",
        head_sha="abc123",
        files=[
            FileChange(filename="src/services/orders.ts", status="modified", additions=1, deletions=1,
                       changes=2, patch=sample_patch),
            FileChange(filename="assets/logo.png", status="added", patch=None),
        ],
    )
