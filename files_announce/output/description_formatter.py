"""Reflow free-form file descriptions for plain ASCII reports.

Descriptions arrive from uploaders in any shape: ANSI colour codes, long
unwrapped lines, mixed line endings, non-ASCII punctuation. The formatter
turns them into CRLF terminated ASCII lines that fit beside the
``{fileDesc}`` placeholder of the entry template.
"""

import re
import textwrap
import unicodedata
from typing import List, Optional

CRLF = "\r\n"
DESC_PLACEHOLDER = "{fileDesc}"
REPORT_COLUMNS = 79

# CSI sequences (colours, cursor movement) and lone ESC codes
_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def find_description_indent(entry_template: str) -> int:
    """Column at which ``{fileDesc}`` first appears on its line.

    Only the first occurrence is considered; further placeholders in the
    same template are not indented.

    Args:
        entry_template: Entry template text

    Returns:
        Zero based column, or 0 if the placeholder is absent
    """
    for line in _LINE_BREAK_RE.split(entry_template):
        pos = line.find(DESC_PLACEHOLDER)
        if pos > -1:
            return pos
    return 0


def description_columns(indent_columns: int) -> int:
    """Wrap width available to a description indented by ``indent_columns``"""
    return max(1, REPORT_COLUMNS - indent_columns)


def to_ascii(text: str) -> str:
    """Strip ANSI escapes and transliterate to printable ASCII"""
    text = _ANSI_ESCAPE_RE.sub("", text)
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    # Drop remaining control characters except tabs and line breaks
    return "".join(ch for ch in text if ch in "\t\r\n" or ch.isprintable())


def reflow(
    text: Optional[str],
    columns: int,
    indent_columns: int = 0,
) -> str:
    """Wrap a description to ``columns`` and indent continuation lines.

    The first line is not indented: it is substituted at the placeholder
    column, so it already starts there. Every following line is prefixed
    with ``indent_columns`` spaces. Lines are not padded, blank lines
    between paragraphs are kept, and the result always ends with CRLF.

    Args:
        text: Raw description (None or empty yields "")
        columns: Maximum width of the wrapped text
        indent_columns: Spaces before each continuation line

    Returns:
        CRLF separated ASCII text
    """
    if not text:
        return ""
    if columns < 1:
        raise ValueError(f"columns must be positive, got {columns}")

    clean = to_ascii(text).expandtabs(4)
    paragraphs = _LINE_BREAK_RE.split(clean.strip("\r\n"))

    lines: List[str] = []
    for paragraph in paragraphs:
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(
            textwrap.wrap(
                paragraph.rstrip(),
                width=columns,
                break_long_words=True,
                break_on_hyphens=True,
                drop_whitespace=True,
            )
        )

    if not lines or not any(lines):
        return ""

    indent = " " * indent_columns
    out = [lines[0]] + [indent + line if line else "" for line in lines[1:]]
    return CRLF.join(out) + CRLF
