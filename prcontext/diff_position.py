"""Translate new-file line numbers into GitHub diff positions.

A diff position is a 1-indexed count over every line of a file's unified
diff text, hunk headers included.  It is what the pull-request review API
expects when anchoring a single-line inline comment.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Mapping, Optional, Tuple

from .models import InlineComment, ReviewComment

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,\d+)? @@")


def calculate_diff_position(patch: Optional[str], target_line: int) -> Optional[int]:
    """Return the diff position of *target_line*, or None if it has no anchor.

    Args:
        patch: Unified diff text for one file.
        target_line: 1-indexed line number in the file's new version.
    """
    if not patch:
        return None

    current_line = 0
    diff_position = 0

    lines = patch.split("\n")
    if lines[-1] == "":
        # a final newline terminates the last line, it does not start a new one
        lines.pop()

    for line in lines:
        if line.startswith("@@"):
            header = HUNK_HEADER_RE.match(line)
            if header:
                current_line = int(header.group(1)) - 1
            diff_position += 1
            continue

        if not line.startswith("-"):
            current_line += 1
        diff_position += 1

        if current_line == target_line:
            return diff_position

    return None


def anchor_comments(
    comments: Iterable[ReviewComment],
    patches: Mapping[str, Optional[str]],
) -> Tuple[List[InlineComment], List[ReviewComment]]:
    """Split *comments* into anchorable inline comments and the rest.

    Comments on files outside the diff, or on lines the diff does not show,
    come back in the second list so the caller can fold them into a summary.
    """
    inline: List[InlineComment] = []
    unplaced: List[ReviewComment] = []

    for comment in comments:
        position = calculate_diff_position(patches.get(comment.path), comment.line)
        if position is None:
            logger.warning(
                "Skipping comment for %s:%s - position not found in diff", comment.path, comment.line,
            )
            unplaced.append(comment)
            continue
        inline.append(InlineComment(path=comment.path, position=position, body=comment.body))

    return inline, unplaced
