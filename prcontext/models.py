"""Core data models produced by scanning and indexing, and consumed by review tooling."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

DECLARATION_KINDS: Tuple[str, ...] = (
    "class",
    "interface",
    "type",
    "enum",
    "function",
    "const",
    "var",
    "namespace",
)


@dataclass(frozen=True)
class LineSpan:
    start_line: int
    end_line: int

    def __contains__(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True)
class Declaration:
    kind: str
    name: str
    exported: bool
    span: LineSpan
    dependencies: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SourceFile:
    path: str
    content: str
    declarations: List[Declaration] = field(default_factory=list)
    import_targets: List[str] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return len(self.content.split("\n"))


class DependencyGraph:
    """Inverse import index: import target -> files that import it.

    Filled in by the indexer while it assembles a codebase; downstream
    consumers only read it.
    """

    def __init__(self) -> None:
        self._importers: Dict[str, List[str]] = {}

    def register(self, path: str, targets: List[str]) -> None:
        for target in targets:
            importers = self._importers.setdefault(target, [])
            if path not in importers:
                importers.append(path)

    def importers_of(self, target: str) -> List[str]:
        return list(self._importers.get(target, []))

    def as_dict(self) -> Dict[str, List[str]]:
        return {target: list(paths) for target, paths in self._importers.items()}

    def __contains__(self, target: object) -> bool:
        return target in self._importers

    def __iter__(self) -> Iterator[str]:
        return iter(self._importers)

    def __len__(self) -> int:
        return len(self._importers)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencyGraph):
            return NotImplemented
        return list(self._importers.items()) == list(other._importers.items())

    def __repr__(self) -> str:
        return f"DependencyGraph({self._importers!r})"


@dataclass
class FetchFailure:
    path: str
    operation: str
    reason: str


@dataclass
class IndexedCodebase:
    """Everything the review stage gets to know about the repository."""
    files: List[SourceFile] = field(default_factory=list)
    dependencies: DependencyGraph = field(default_factory=DependencyGraph)
    imports: Dict[str, List[str]] = field(default_factory=dict)
    failures: List[FetchFailure] = field(default_factory=list)

    def paths(self) -> List[str]:
        return [f.path for f in self.files]

    def get(self, path: str) -> Optional[SourceFile]:
        for source_file in self.files:
            if source_file.path == path:
                return source_file
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files": [asdict(f) for f in self.files],
            "dependencies": self.dependencies.as_dict(),
            "imports": {path: list(targets) for path, targets in self.imports.items()},
            "failures": [asdict(f) for f in self.failures],
        }


@dataclass
class RepoItem:
    name: str
    path: str
    type: str  # "file" | "dir"


@dataclass
class FileChange:
    filename: str
    status: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    patch: Optional[str] = None


@dataclass
class PullRequestInfo:
    owner: str
    repo: str
    number: int
    title: str
    body: str
    base_branch: str
    head_branch: str
    head_sha: str
    files: List[FileChange] = field(default_factory=list)

    @property
    def changed_paths(self) -> List[str]:
        return [f.filename for f in self.files]


@dataclass
class ReviewComment:
    """A reviewer's comment addressed by new-file line number."""
    path: str
    line: int
    body: str


@dataclass
class InlineComment:
    """A comment ready to be anchored in the pull request diff."""
    path: str
    position: int
    body: str
