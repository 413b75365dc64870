"""Tests for assembling the review context of a pull request."""

import asyncio

import pytest

from conftest import FakeGitHub
from prcontext.errors import NoEligibleFilesError
from prcontext.models import ReviewComment
from prcontext.review_context import build_review_context


def build(client, fetcher, **kwargs):
    return asyncio.run(build_review_context(client, "acme", "shop", 7, fetcher=fetcher, **kwargs))


def test_changed_files_lead_the_index(sample_repo_path, sample_pull_request, fast_fetcher):
    client = FakeGitHub(sample_repo_path, sample_pull_request)

    context = build(client, fast_fetcher)

    assert context.pull_request.title == "Cancel orders"
    assert context.codebase.paths()[:2] == ["src/services/orders.ts", "src/models/order.ts"]
    assert set(context.patches) == {"src/services/orders.ts"}


def test_anchor_uses_pull_request_patches(sample_repo_path, sample_pull_request, fast_fetcher):
    context = build(FakeGitHub(sample_repo_path, sample_pull_request), fast_fetcher)

    inline, unplaced = context.anchor([
        ReviewComment(path="src/services/orders.ts", line=2, body="Why bump the limit?"),
        ReviewComment(path="assets/logo.png", line=1, body="Compress this"),
    ])

    assert [(c.path, c.position) for c in inline] == [("src/services/orders.ts", 4)]
    assert [c.path for c in unplaced] == ["assets/logo.png"]


def test_repository_without_sources_still_gets_context(tmp_path, sample_pull_request, fast_fetcher):
    context = build(FakeGitHub(tmp_path, sample_pull_request), fast_fetcher)

    assert context.codebase.files == []
    assert context.pull_request.number == 7


def test_strict_mode_refuses_empty_repository(tmp_path, sample_pull_request, fast_fetcher):
    with pytest.raises(NoEligibleFilesError):
        build(FakeGitHub(tmp_path, sample_pull_request), fast_fetcher, allow_empty=False)
