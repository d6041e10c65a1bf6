"""Structural text formatting and transcript search.

``format_blocks`` turns line-oriented text into heading, list and paragraph
blocks. Inline spans inside blocks are either ``**bold**`` emphasis or, when a
search query is active, case-insensitive query highlights. The two never
combine within one message: an active query replaces emphasis parsing.

Text may be a partially revealed prefix, so half-formed blocks and unclosed
``**`` pairs are normal input, not errors.
"""

import re
from typing import Any, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field

HEADING_RE = re.compile(r"^(#{1,3})(?:[ \t]+(.*?))?[ \t]*$")
EMPHASIS_RE = re.compile(r"\*\*(.+?)\*\*", re.DOTALL)
LIST_RE = re.compile(r"^-[ \t]+(.*)$")


class Span(BaseModel):
    kind: Literal["text", "bold", "highlight"] = "text"
    text: str


class HeadingBlock(BaseModel):
    type: Literal["heading"] = "heading"
    level: int
    text: str
    spans: List[Span] = Field(default_factory=list)


class ListBlock(BaseModel):
    type: Literal["list"] = "list"
    items: List[str]
    item_spans: List[List[Span]] = Field(default_factory=list)


class ParagraphBlock(BaseModel):
    type: Literal["paragraph"] = "paragraph"
    text: str
    spans: List[Span] = Field(default_factory=list)


Block = Union[HeadingBlock, ListBlock, ParagraphBlock]


class SearchMatch(BaseModel):
    index: int
    message_id: Optional[str] = None
    message: Any = None


def search_active(query: Optional[str]) -> bool:
    return bool(query and query.strip())


def parse_emphasis(text: str) -> List[Span]:
    """Splits ``text`` into plain and ``**bold**`` spans.

    Only complete, non-empty pairs become bold; a dangling ``**`` stays in
    the plain text.
    """
    spans: List[Span] = []
    cursor = 0
    for match in EMPHASIS_RE.finditer(text):
        if match.start() > cursor:
            spans.append(Span(text=text[cursor : match.start()]))
        spans.append(Span(kind="bold", text=match.group(1)))
        cursor = match.end()
    if cursor < len(text):
        spans.append(Span(text=text[cursor:]))
    return spans


def highlight_query(text: str, query: Optional[str]) -> List[Span]:
    """Marks every case-insensitive occurrence of ``query`` in ``text``.

    An empty or whitespace-only query returns the text unchanged, wrapped
    as a single plain span (no spans at all for empty text).
    """
    if not search_active(query):
        return [Span(text=text)] if text else []
    pattern = re.compile(re.escape(query), re.IGNORECASE)
    spans: List[Span] = []
    cursor = 0
    for match in pattern.finditer(text):
        if match.start() > cursor:
            spans.append(Span(text=text[cursor : match.start()]))
        spans.append(Span(kind="highlight", text=match.group(0)))
        cursor = match.end()
    if cursor < len(text):
        spans.append(Span(text=text[cursor:]))
    return spans


def inline_spans(text: str, query: Optional[str] = None) -> List[Span]:
    if search_active(query):
        return highlight_query(text, query)
    return parse_emphasis(text)


def format_blocks(text: str, query: Optional[str] = None) -> List[Block]:
    """Converts text into an ordered list of heading, list and paragraph blocks.

    - ``#``, ``##`` or ``###`` followed by whitespace starts a heading line.
      Leading indentation before a heading or list marker is ignored.
    - Consecutive ``- `` lines form one list (the dash and the whitespace after
      it are dropped from each item); a blank or other line closes it.
    - Other non-empty lines form paragraphs, joined by their line breaks and
      closed by a blank line or a heading/list line.
    """
    blocks: List[Block] = []
    paragraph: List[str] = []
    items: List[str] = []

    def flush_paragraph() -> None:
        if paragraph:
            joined = "\n".join(paragraph)
            blocks.append(ParagraphBlock(text=joined, spans=inline_spans(joined, query)))
            paragraph.clear()

    def flush_list() -> None:
        if items:
            blocks.append(
                ListBlock(
                    items=list(items),
                    item_spans=[inline_spans(item, query) for item in items],
                )
            )
            items.clear()

    for line in text.replace("\r\n", "\n").split("\n"):
        if not line.strip():
            flush_paragraph()
            flush_list()
            continue

        # Markers are recognised on the stripped line, so indented ones count.
        stripped = line.strip()
        heading = HEADING_RE.match(stripped)
        list_item = LIST_RE.match(stripped)
        if heading:
            flush_paragraph()
            flush_list()
            heading_text = (heading.group(2) or "").strip()
            # Headings never carry emphasis; they only take search highlights.
            spans = highlight_query(heading_text, query)
            blocks.append(
                HeadingBlock(level=len(heading.group(1)), text=heading_text, spans=spans)
            )
        elif list_item:
            flush_paragraph()
            items.append(list_item.group(1))
        else:
            flush_list()
            paragraph.append(line)

    flush_paragraph()
    flush_list()
    return blocks


def _content(message: Any) -> str:
    if isinstance(message, dict):
        return message.get("content") or ""
    return getattr(message, "content", "") or ""


def _message_id(message: Any) -> Optional[str]:
    if isinstance(message, dict):
        return message.get("id")
    return getattr(message, "id", None)


def find_first_match(messages: Sequence[Any], query: Optional[str]) -> Optional[SearchMatch]:
    """First message, in display order, whose raw content contains ``query``.

    Returns None when the query is inactive or nothing matches, which tells
    the view to clear its scroll target.
    """
    if not search_active(query):
        return None
    pattern = re.compile(re.escape(query), re.IGNORECASE)
    for index, message in enumerate(messages):
        if pattern.search(_content(message)):
            return SearchMatch(index=index, message_id=_message_id(message), message=message)
    return None
