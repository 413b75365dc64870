"""Codebase indexer: traversal, batched fetch, scanning, and dependency graph.

Files are fetched in priority order so that whatever the review stage can
fit into its budget is the most relevant context:

1. *prioritized*: files changed by the pull request,
2. *related*: files one relative-import hop away from a prioritized file,
3. *remaining*: everything else, capped at ``max_remaining``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .errors import NoEligibleFilesError, NotFoundError, RemoteError
from .fetcher import DEFAULT_BATCH_SIZE, RetryingFetcher
from .models import FetchFailure, IndexedCodebase, SourceFile
from .provider import ContentProvider
from .scanner import DEFAULT_EXTENSIONS, SKIP_DIRS, SourceScanner, resolve_relative_import

logger = logging.getLogger(__name__)

DEFAULT_BASE_DIRS: Tuple[str, ...] = ("", "src", "lib", "packages", "test", "tests", "__tests__")
DEFAULT_MAX_REMAINING = 100


@dataclass
class IndexSettings:
    base_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_BASE_DIRS))
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    batch_size: int = DEFAULT_BATCH_SIZE
    max_remaining: int = DEFAULT_MAX_REMAINING

    @classmethod
    def from_config(cls, values: Optional[Dict[str, Any]] = None) -> "IndexSettings":
        values = values or {}
        return cls(
            base_dirs=list(values.get("base_dirs", DEFAULT_BASE_DIRS)),
            extensions=tuple(values.get("extensions", DEFAULT_EXTENSIONS)),
            batch_size=int(values.get("batch_size", DEFAULT_BATCH_SIZE)),
            max_remaining=int(values.get("max_remaining", DEFAULT_MAX_REMAINING)),
        )


class _IndexBuild:
    """Accumulates one indexing pass.  Only the orchestrating coroutine writes here."""

    def __init__(self) -> None:
        self.codebase = IndexedCodebase()
        self.scanned: Dict[str, SourceFile] = {}

    def add(self, source_file: SourceFile) -> None:
        self.codebase.files.append(source_file)
        self.codebase.imports[source_file.path] = list(source_file.import_targets)
        self.codebase.dependencies.register(source_file.path, source_file.import_targets)
        self.scanned[source_file.path] = source_file

    def fail(self, path: str, operation: str, reason: str) -> None:
        self.codebase.failures.append(FetchFailure(path=path, operation=operation, reason=reason))


class CodebaseIndexer:
    """Builds an :class:`IndexedCodebase` for one repository ref."""

    def __init__(
        self,
        provider: ContentProvider,
        fetcher: Optional[RetryingFetcher] = None,
        settings: Optional[IndexSettings] = None,
        scanner: Optional[SourceScanner] = None,
    ) -> None:
        self.provider = provider
        self.fetcher = fetcher or RetryingFetcher()
        self.settings = settings or IndexSettings()
        self.scanner = scanner or SourceScanner(self.settings.extensions)

    async def index_codebase(
        self,
        owner: str,
        repo: str,
        branch: str,
        prioritized_files: Iterable[str] = (),
        *,
        allow_empty: bool = False,
    ) -> IndexedCodebase:
        """Index *owner/repo* at *branch*, changed files first.

        Args:
            owner: Repository owner.
            repo: Repository name.
            branch: Ref to read files from.
            prioritized_files: Paths changed by the pull request.
            allow_empty: Return an empty index instead of raising when the
                repository has no eligible source file.

        Raises:
            NoEligibleFilesError: No eligible file was found and
                *allow_empty* is False.
        """
        build = _IndexBuild()
        candidates = await self._discover(owner, repo, branch, build)

        if not candidates:
            if allow_empty:
                logger.warning(
                    "No eligible source files found in %s/%s@%s; continuing with pull request context only.",
                    owner, repo, branch,
                )
                return build.codebase
            raise NoEligibleFilesError(f"No eligible source files found in {owner}/{repo}@{branch}")

        wanted = set(prioritized_files)
        prioritized = [path for path in candidates if path in wanted]
        await self._fetch(owner, repo, branch, prioritized, build)

        related = self._related(prioritized, candidates, build)
        await self._fetch(owner, repo, branch, related, build)

        taken = set(prioritized) | set(related)
        remaining = [path for path in candidates if path not in taken][: self.settings.max_remaining]
        await self._fetch(owner, repo, branch, remaining, build)

        logger.info(
            "Indexed %d of %d candidate files (%d prioritized, %d related, %d remaining)",
            len(build.codebase.files), len(candidates), len(prioritized), len(related), len(remaining),
        )
        if not build.codebase.files:
            logger.warning(
                "No source files were successfully processed. This might affect the quality of the review."
            )
        return build.codebase

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _discover(self, owner: str, repo: str, branch: str, build: _IndexBuild) -> List[str]:
        found: List[str] = []
        seen: Set[str] = set()
        visited: Set[str] = set()

        async def walk(directory: str) -> None:
            if directory in visited:
                return
            visited.add(directory)
            if any(part in SKIP_DIRS for part in directory.split("/")):
                return

            def list_directory() -> Any:
                return self.provider.list_directory(owner, repo, directory, branch)

            try:
                items = await self.fetcher.with_retry(
                    list_directory, description="list_directory", path=directory or "/",
                )
            except NotFoundError:
                logger.debug("Directory %s not found", directory or "root")
                return
            except (RemoteError, ConnectionError, TimeoutError) as exc:
                logger.warning("Could not list %s: %s", directory or "root", exc)
                build.fail(directory or "/", "list_directory", str(exc))
                return

            for item in items or []:
                if item.type == "dir":
                    await walk(item.path)
                elif item.type == "file" and item.path not in seen and self.scanner.is_eligible(item.path):
                    seen.add(item.path)
                    found.append(item.path)

        for base in self.settings.base_dirs:
            await walk(base.strip("/"))
        return found

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _related(self, prioritized: Sequence[str], candidates: Sequence[str], build: _IndexBuild) -> List[str]:
        """Files one relative-import hop away from the fetched prioritized files."""
        excluded = set(prioritized)
        related: List[str] = []
        for path in prioritized:
            source_file = build.scanned.get(path)
            if source_file is None:
                continue
            for target in source_file.import_targets:
                resolved = resolve_relative_import(path, target, candidates, self.settings.extensions)
                if resolved and resolved not in excluded:
                    excluded.add(resolved)
                    related.append(resolved)
        return related

    # ------------------------------------------------------------------
    # Fetch + scan
    # ------------------------------------------------------------------

    async def _fetch(
        self,
        owner: str,
        repo: str,
        branch: str,
        paths: Sequence[str],
        build: _IndexBuild,
    ) -> None:
        if not paths:
            return

        def get_content(path: str) -> Any:
            return self.provider.get_file_content(owner, repo, path, branch)

        async for window in self.fetcher.iter_batches(
            paths, get_content, batch_size=self.settings.batch_size, description="get_file_content",
        ):
            # every fetch of the window has settled; safe to write
            for result in window:
                if result.error is not None:
                    logger.warning("Failed to fetch content for %s: %s", result.item, result.error)
                    build.fail(result.item, "get_file_content", str(result.error))
                    continue
                if result.value is None:
                    logger.debug("No content for %s", result.item)
                    build.fail(result.item, "get_file_content", "no content")
                    continue
                build.add(self.scanner.scan(result.item, result.value))
