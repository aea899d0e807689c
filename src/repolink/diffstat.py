# src/repolink/diffstat.py: Parser for 'git show --stat' summaries.
# Converts the textual stat block of one commit into per-file added/removed
# counts and the commit's insertion/deletion totals. Pure and deterministic.
#
# Per-file numbers come from counting the '+' and '-' glyphs of the graph,
# which git scales down for files with many changed lines. They are an
# approximation; only the totals from the summary line are exact.

import re
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import FileChange

_SUMMARY_RE = re.compile(r"\d+\s+files?\s+changed")
_INSERTIONS_RE = re.compile(r"(\d+)\s+insertions?")
_DELETIONS_RE = re.compile(r"(\d+)\s+deletions?")
_FILE_LINE_RE = re.compile(r"^\s*(.+?)\s*\|\s*\d+\s*([+-]+)\s*$")


class ShowStat(BaseModel):
    changes: List[FileChange] = Field(default_factory=list)
    total_insertions: int = 0
    total_deletions: int = 0


def _find_summary_line(lines: List[str]) -> Optional[str]:
    # git prints the summary last; file lines always carry a '|'.
    for line in reversed(lines):
        if "|" not in line and _SUMMARY_RE.search(line):
            return line
    return None


def parse_show_stat(raw_text: str) -> ShowStat:
    """
    Parse a stat block such as::

         src/a.ts | 4 ++--
         1 file changed, 2 insertions(+), 2 deletions(-)

    Lines that are neither file lines nor the summary line are ignored.
    """
    lines = raw_text.splitlines()
    result = ShowStat()

    summary = _find_summary_line(lines)
    if summary:
        insertions = _INSERTIONS_RE.search(summary)
        deletions = _DELETIONS_RE.search(summary)
        result.total_insertions = int(insertions.group(1)) if insertions else 0
        result.total_deletions = int(deletions.group(1)) if deletions else 0

    for line in lines:
        if line is summary:
            continue
        match = _FILE_LINE_RE.match(line)
        if not match:
            continue
        glyphs = match.group(2)
        result.changes.append(FileChange(
            file_name=match.group(1).strip(),
            added=glyphs.count("+"),
            removed=glyphs.count("-"),
        ))

    return result
