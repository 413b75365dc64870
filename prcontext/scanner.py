"""Lightweight source scanner for TypeScript/JavaScript-style files.

Extracts top-level declarations (kind, name, exported flag, line span) and
import targets without a full parser:

- A small lexer state machine (code / line comment / block comment / string /
  template string) masks comments and string bodies so braces and keywords
  inside them never count.
- Declaration spans come from a brace-depth walk that starts on the line of
  the declaring keyword and stops on the first line where depth is back to
  zero and the line opens no brace.  The walk is bounded by the file length,
  so unbalanced input yields a best-effort span instead of an error.
"""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .models import DECLARATION_KINDS, Declaration, LineSpan, SourceFile

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------
DEFAULT_EXTENSIONS: Tuple[str, ...] = (".ts", ".tsx")

SKIP_DIRS: Set[str] = {
    "node_modules", "dist", "build", "coverage", ".git",
    "out", ".next", ".turbo", ".cache", "vendor", "bower_components",
}

GENERATED_SUFFIXES: Tuple[str, ...] = (".d.ts", ".d.mts", ".d.cts", ".min.js", ".bundle.js")

VENDORED_IMPORT_PREFIX = "node_modules"

# ---------------------------------------------------------------------------
# Patterns (run against masked text, see _Lexer)
# ---------------------------------------------------------------------------
_DECLARATION_RE = re.compile(
    r"(?<![\w$.])(?<!import\s)"
    r"(?P<export>export\s+(?:default\s+)?)?"
    r"(?:(?:declare|abstract|async)\s+)*"
    r"(?P<kind>" + "|".join(DECLARATION_KINDS) + r")\b"
    r"(?P<const_enum>\s+enum\b)?"
    r"\s*\*?\s*"
    r"(?P<name>[A-Za-z_$][\w$]*)"
)

_IMPORT_RE = re.compile(
    r"(?<![\w$.])"
    r"(?:"
    r"import\s+(?:type\s+)?(?:[\w$]+\s*,\s*)?(?:\{[^}]*\}|\*\s*as\s+[\w$]+|[\w$]+)\s*from\s*['\"](?P<from>[^'\"]+)['\"]"
    r"|import\s*['\"](?P<bare>[^'\"]+)['\"]"
    r"|export\s+(?:type\s+)?(?:\{[^}]*\}|\*(?:\s*as\s+[\w$]+)?)\s*from\s*['\"](?P<reexport>[^'\"]+)['\"]"
    r")"
)

_DYNAMIC_IMPORT_RE = re.compile(
    r"(?<![\w$.])(?:import|require)\s*\(\s*['\"](?P<path>[^'\"]+)['\"]\s*\)"
)


# ===================================================================
# Import path helpers
# ===================================================================

def resolve_import_path(import_path: str) -> str:
    """Reduce a raw import specifier to the identifier the graph is keyed by.

    Relative paths are kept verbatim, scoped packages keep ``@scope/name``
    and plain packages keep their first segment.
    """
    if import_path.startswith("."):
        return import_path
    parts = import_path.split("/")
    if parts[0].startswith("@"):
        return "/".join(parts[:2])
    return parts[0]


def is_vendored_import(import_path: str) -> bool:
    return import_path.startswith(VENDORED_IMPORT_PREFIX) or f"/{VENDORED_IMPORT_PREFIX}/" in import_path


def is_eligible_source(path: str, extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> bool:
    """Return True when *path* is a hand-written source file worth indexing."""
    lowered = path.lower()
    if not lowered.endswith(tuple(extensions)):
        return False
    if lowered.endswith(GENERATED_SUFFIXES):
        return False
    return not any(part in SKIP_DIRS for part in path.split("/")[:-1])


def resolve_relative_import(
    importer: str,
    target: str,
    candidates: Iterable[str],
    extensions: Sequence[str] = DEFAULT_EXTENSIONS,
) -> Optional[str]:
    """Map a relative import in *importer* onto one of *candidates*.

    Tries the literal path, then each source extension, then a directory
    ``index`` file.  ESM-style ``./x.js`` specifiers also match ``x.ts``.
    Non-relative targets never resolve.
    """
    if not target.startswith("."):
        return None

    known = set(candidates)
    base = posixpath.normpath(posixpath.join(posixpath.dirname(importer), target))
    if base.startswith("../") or base == "..":
        return None

    attempts: List[str] = [base]
    stem, ext = posixpath.splitext(base)
    if ext in (".js", ".jsx", ".mjs", ".cjs"):
        attempts.extend(stem + e for e in extensions)
    attempts.extend(base + e for e in extensions)
    attempts.extend(posixpath.join(base, "index" + e) for e in extensions)

    for attempt in attempts:
        if attempt in known:
            return attempt
    return None


# ===================================================================
# Lexer
# ===================================================================

_CODE = 0
_LINE_COMMENT = 1
_BLOCK_COMMENT = 2
_STRING = 3
_TEMPLATE = 4


@dataclass
class _Line:
    code: str        # comments blanked, strings intact
    bare: str        # comments and string bodies blanked
    opens: int
    closes: int
    comment_only: bool


class _Lexer:
    """Per-line view of a file with comments and strings masked out.

    Masking keeps every character position, so offsets into the masked
    text are offsets into the original content.
    """

    def __init__(self, content: str) -> None:
        self.raw_lines = content.split("\n")
        self.lines: List[_Line] = []
        self._tokenize()

    def _tokenize(self) -> None:
        state = _CODE
        quote = ""
        for raw in self.raw_lines:
            code: List[str] = []
            bare: List[str] = []
            opens = closes = 0
            saw_comment = False
            if state == _LINE_COMMENT:
                state = _CODE
            if state == _STRING:
                # unterminated single-line string ends with the line
                state = _CODE

            i = 0
            n = len(raw)
            while i < n:
                ch = raw[i]
                nxt = raw[i + 1] if i + 1 < n else ""

                if state == _CODE:
                    if ch == "/" and nxt == "/":
                        saw_comment = True
                        state = _LINE_COMMENT
                        code.append(" " * (n - i))
                        bare.append(" " * (n - i))
                        break
                    if ch == "/" and nxt == "*":
                        saw_comment = True
                        state = _BLOCK_COMMENT
                        code.append("  ")
                        bare.append("  ")
                        i += 2
                        continue
                    if ch in ("'", '"'):
                        state = _STRING
                        quote = ch
                    elif ch == "`":
                        state = _TEMPLATE
                    elif ch == "{":
                        opens += 1
                    elif ch == "}":
                        closes += 1
                    code.append(ch)
                    bare.append(ch)
                    i += 1
                    continue

                if state == _BLOCK_COMMENT:
                    saw_comment = True
                    if ch == "*" and nxt == "/":
                        state = _CODE
                        code.append("  ")
                        bare.append("  ")
                        i += 2
                        continue
                    code.append(" ")
                    bare.append(" ")
                    i += 1
                    continue

                # _STRING / _TEMPLATE
                if ch == "\\" and nxt:
                    code.append(ch + nxt)
                    bare.append("  ")
                    i += 2
                    continue
                closing = quote if state == _STRING else "`"
                if ch == closing:
                    state = _CODE
                    code.append(ch)
                    bare.append(ch)
                else:
                    code.append(ch)
                    bare.append(" ")
                i += 1

            code_text = "".join(code)
            self.lines.append(_Line(
                code=code_text,
                bare="".join(bare),
                opens=opens,
                closes=closes,
                comment_only=saw_comment and not code_text.strip(),
            ))

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def code_text(self) -> str:
        return "\n".join(line.code for line in self.lines)

    def bare_text(self) -> str:
        return "\n".join(line.bare for line in self.lines)

    def line_starts(self) -> List[int]:
        starts: List[int] = []
        offset = 0
        for line in self.lines:
            starts.append(offset)
            offset += len(line.bare) + 1
        return starts


# ===================================================================
# Scanner
# ===================================================================

class SourceScanner:
    """Extracts declarations and imports from a single file's text."""

    def __init__(self, extensions: Sequence[str] = DEFAULT_EXTENSIONS) -> None:
        self.extensions = tuple(extensions)

    def is_eligible(self, path: str) -> bool:
        return is_eligible_source(path, self.extensions)

    def scan(self, path: str, content: str) -> SourceFile:
        lexer = _Lexer(content)
        source_file = SourceFile(
            path=path,
            content=content,
            declarations=self._declarations(lexer),
            import_targets=self._imports(lexer.code_text()),
        )
        logger.debug(
            "Scanned %s: %d declarations, %d imports",
            path, len(source_file.declarations), len(source_file.import_targets),
        )
        return source_file

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def extract_imports(self, content: str) -> List[str]:
        return self._imports(_Lexer(content).code_text())

    @staticmethod
    def _imports(code_text: str) -> List[str]:
        targets: List[str] = []
        for match in _IMPORT_RE.finditer(code_text):
            raw = match.group("from") or match.group("bare") or match.group("reexport")
            if not raw or is_vendored_import(raw):
                continue
            resolved = resolve_import_path(raw)
            if resolved not in targets:
                targets.append(resolved)
        return targets

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def extract_declarations(self, content: str) -> List[Declaration]:
        return self._declarations(_Lexer(content))

    def _declarations(self, lexer: _Lexer) -> List[Declaration]:
        bare_text = lexer.bare_text()
        starts = lexer.line_starts()
        depth_before = self._depth_before_lines(lexer)

        declarations: List[Declaration] = []
        line_index = 0
        for match in _DECLARATION_RE.finditer(bare_text):
            offset = match.start()
            while line_index + 1 < len(starts) and starts[line_index + 1] <= offset:
                line_index += 1

            column = offset - starts[line_index]
            prefix = lexer.lines[line_index].bare[:column]
            depth = depth_before[line_index] + prefix.count("{") - prefix.count("}")
            if depth > 0:
                continue

            kind = "enum" if match.group("const_enum") else match.group("kind")
            span = self._find_span(lexer, line_index + 1)
            declarations.append(Declaration(
                kind=kind,
                name=match.group("name"),
                exported=match.group("export") is not None,
                span=span,
                dependencies=self._dependencies(lexer, span),
            ))
        return declarations

    @staticmethod
    def _depth_before_lines(lexer: _Lexer) -> List[int]:
        depths: List[int] = []
        depth = 0
        for line in lexer.lines:
            depths.append(depth)
            depth = max(0, depth + line.opens - line.closes)
        return depths

    @staticmethod
    def _find_span(lexer: _Lexer, start_line: int) -> LineSpan:
        depth = 0
        for index in range(start_line - 1, lexer.line_count):
            line = lexer.lines[index]
            if line.comment_only:
                continue
            depth += line.opens - line.closes
            if depth == 0 and line.opens == 0:
                return LineSpan(start_line, index + 1)
        return LineSpan(start_line, lexer.line_count)

    @staticmethod
    def _dependencies(lexer: _Lexer, span: LineSpan) -> List[str]:
        text = "\n".join(
            line.code for line in lexer.lines[span.start_line - 1:span.end_line]
        )
        found: List[str] = []
        for match in _IMPORT_RE.finditer(text):
            raw = match.group("from") or match.group("bare") or match.group("reexport")
            if raw and not is_vendored_import(raw):
                found.append(resolve_import_path(raw))
        for match in _DYNAMIC_IMPORT_RE.finditer(text):
            raw = match.group("path")
            if not is_vendored_import(raw):
                found.append(resolve_import_path(raw))
        return list(dict.fromkeys(found))


_default_scanner = SourceScanner()


def extract_declarations(content: str) -> List[Declaration]:
    return _default_scanner.extract_declarations(content)


def extract_imports(content: str) -> List[str]:
    return _default_scanner.extract_imports(content)
