from __future__ import annotations

import logging
import re
from typing import Sequence
from uuid import uuid4

from casebuilder.models import Issue, IssueDraft

logger = logging.getLogger("casebuilder.codec")

# "## Name" with exactly two hashes; "###" lines belong to the description.
_HEADING_PATTERN = re.compile(r"^[ ]{0,3}##(?:[ \t]+(?P<name>.*?))?[ \t]*$")


def placeholder_issue_name(index: int) -> str:
    return f"Issue {index + 1}"


def _normalize_description(lines: list[str]) -> str:
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    return "\n".join(lines[start:]).rstrip()


def _heading_name(line: str) -> str | None:
    match = _HEADING_PATTERN.match(line)
    if not match:
        return None
    return (match.group("name") or "").strip()


def split_issue_blocks(text: str) -> list[IssueDraft]:
    """Split markdown into ordered name/description blocks.

    Text that has no heading at all, or stray text before the first heading,
    becomes a block with an empty name so nothing the user typed is dropped.
    """
    blocks: list[IssueDraft] = []
    current_name = ""
    current_lines: list[str] = []
    in_block = False

    def flush() -> None:
        description = _normalize_description(current_lines)
        if in_block or description:
            blocks.append(IssueDraft(name=current_name, description=description))

    for line in (text or "").splitlines():
        name = _heading_name(line)
        if name is None:
            current_lines.append(line)
            continue
        flush()
        current_name = name
        current_lines = []
        in_block = True
    flush()
    return blocks


def merge_issue_drafts(drafts: Sequence[IssueDraft], previous_issues: Sequence[Issue]) -> list[Issue]:
    """Resolve each draft against previous issues and carry user-owned fields forward.

    Resolution order per draft at position i: first unconsumed previous issue
    with the exact same name, then previous_issues[i] if still unconsumed.
    Boundaries and priority come from the match; name and description always
    come from the draft. An unmatched draft is a new issue and gets the next
    priority after the highest known one, not its block index, so priorities
    stay unique when issues are added between existing ones.
    """
    consumed: set[int] = set()
    next_priority = max((issue.priority for issue in previous_issues), default=-1) + 1
    merged: list[Issue] = []

    for index, draft in enumerate(drafts):
        name = draft.name.strip()
        if not name:
            name = placeholder_issue_name(index)
            logger.warning(
                "issue_name_missing",
                extra={"event": "issue_name_missing", "block_index": index, "placeholder": name},
            )

        match_index: int | None = None
        for candidate_index, candidate in enumerate(previous_issues):
            if candidate_index not in consumed and candidate.name == name:
                match_index = candidate_index
                break
        if match_index is None and index < len(previous_issues) and index not in consumed:
            match_index = index

        if match_index is None:
            merged.append(Issue(id=str(uuid4()), name=name, description=draft.description, priority=next_priority))
            next_priority += 1
            continue

        consumed.add(match_index)
        previous = previous_issues[match_index]
        merged.append(
            previous.model_copy(update={"name": name, "description": draft.description})
        )

    return merged


def decode_issues(text: str, previous_issues: Sequence[Issue] = ()) -> list[Issue]:
    blocks = split_issue_blocks(text)
    if text and text.strip() and not any(_heading_name(line) is not None for line in text.splitlines()):
        logger.warning(
            "issue_markdown_unsegmented",
            extra={"event": "issue_markdown_unsegmented", "chars": len(text)},
        )
    return merge_issue_drafts(blocks, previous_issues)


def encode_issues(issues: Sequence[Issue]) -> str:
    blocks: list[str] = []
    for issue in issues:
        name = " ".join(issue.name.splitlines()).strip()
        description = issue.description.rstrip()
        if description.strip():
            blocks.append(f"## {name}\n\n{description}")
        else:
            blocks.append(f"## {name}")
    return "\n\n".join(blocks)


def ordered_issues(issues: Sequence[Issue]) -> list[Issue]:
    indexed = list(enumerate(issues))
    indexed.sort(key=lambda item: (item[1].priority, item[0]))
    return [issue for _, issue in indexed]
