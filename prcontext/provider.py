"""Abstract content-fetch provider consumed by the indexer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .models import RepoItem


class ContentProvider(ABC):
    """Read-only access to a repository's tree at a given ref.

    A missing path is not an error: ``list_directory`` returns ``[]`` and
    ``get_file_content`` returns ``None``.  Anything else that goes wrong is
    raised so the fetcher can decide whether to retry.
    """

    @abstractmethod
    def list_directory(self, owner: str, repo: str, path: str, ref: str) -> List[RepoItem]:
        ...

    @abstractmethod
    def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> Optional[str]:
        ...
