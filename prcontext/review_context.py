"""Pull-request level entry point: PR metadata, codebase index, and patches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .diff_position import anchor_comments
from .fetcher import RetryingFetcher
from .github import GitHubClient
from .indexer import CodebaseIndexer, IndexSettings
from .models import IndexedCodebase, InlineComment, PullRequestInfo, ReviewComment

logger = logging.getLogger(__name__)


@dataclass
class ReviewContext:
    pull_request: PullRequestInfo
    codebase: IndexedCodebase
    patches: Dict[str, str] = field(default_factory=dict)

    def anchor(self, comments: Iterable[ReviewComment]) -> Tuple[List[InlineComment], List[ReviewComment]]:
        """Map review comments onto diff positions of this pull request."""
        return anchor_comments(comments, self.patches)


async def build_review_context(
    client: GitHubClient,
    owner: str,
    repo: str,
    number: int,
    *,
    allow_empty: bool = True,
    fetcher: Optional[RetryingFetcher] = None,
    settings: Optional[IndexSettings] = None,
) -> ReviewContext:
    """Collect everything the review stage needs for pull request *number*.

    The base branch is indexed with the changed files prioritized.  By
    default a repository without eligible source files still produces a
    context (pull-request-only review) instead of failing.
    """
    fetcher = fetcher or RetryingFetcher()

    def get_pull_request() -> PullRequestInfo:
        return client.get_pull_request_info(owner, repo, number)

    pull_request = await fetcher.with_retry(
        get_pull_request, description="get_pull_request", path=f"{owner}/{repo}#{number}",
    )
    logger.info("Analyzing PR #%d: %s", number, pull_request.title)

    indexer = CodebaseIndexer(client, fetcher=fetcher, settings=settings)
    codebase = await indexer.index_codebase(
        owner, repo, pull_request.base_branch, pull_request.changed_paths, allow_empty=allow_empty,
    )
    if not codebase.files:
        logger.warning("Review will be limited to changed files only.")

    patches = {change.filename: change.patch for change in pull_request.files if change.patch}
    return ReviewContext(pull_request=pull_request, codebase=codebase, patches=patches)
