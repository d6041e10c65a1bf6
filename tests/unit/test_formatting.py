"""Tests for structural formatting, emphasis and search highlighting."""

import pytest
from polychat.formatting import (
    HeadingBlock,
    ListBlock,
    ParagraphBlock,
    Span,
    find_first_match,
    format_blocks,
    highlight_query,
    parse_emphasis,
    search_active,
)
from polychat.models import Message


def shape(blocks):
    """Reduce blocks to comparable tuples."""
    result = []
    for block in blocks:
        if isinstance(block, HeadingBlock):
            result.append(("heading", block.level, block.text))
        elif isinstance(block, ListBlock):
            result.append(("list", block.items))
        else:
            result.append(("paragraph", block.text))
    return result


class TestFormatBlocks:
    def test_heading_then_paragraph(self):
        assert shape(format_blocks("# Title\n\nBody text")) == [
            ("heading", 1, "Title"),
            ("paragraph", "Body text"),
        ]

    def test_list_then_paragraph(self):
        assert shape(format_blocks("- a\n- b\n\nc")) == [("list", ["a", "b"]), ("paragraph", "c")]

    @pytest.mark.parametrize("marker, level", [("#", 1), ("##", 2), ("###", 3)])
    def test_heading_levels(self, marker, level):
        assert shape(format_blocks(f"{marker} Heading")) == [("heading", level, "Heading")]

    def test_four_hashes_is_paragraph(self):
        assert shape(format_blocks("#### Too deep")) == [("paragraph", "#### Too deep")]

    def test_hash_without_space_is_paragraph(self):
        assert shape(format_blocks("#hashtag")) == [("paragraph", "#hashtag")]

    def test_lone_hash_is_empty_heading(self):
        assert shape(format_blocks("#")) == [("heading", 1, "")]

    def test_paragraph_keeps_line_breaks(self):
        assert shape(format_blocks("line one\nline two")) == [("paragraph", "line one\nline two")]

    def test_list_closed_by_non_list_line(self):
        assert shape(format_blocks("- a\nplain")) == [("list", ["a"]), ("paragraph", "plain")]

    def test_indented_markers(self):
        assert shape(format_blocks("  # Title\n  - a\n-   b")) == [
            ("heading", 1, "Title"),
            ("list", ["a", "b"]),
        ]

    def test_indented_paragraph_line_kept_as_is(self):
        assert shape(format_blocks("  plain")) == [("paragraph", "  plain")]

    def test_heading_closes_paragraph_and_list(self):
        assert shape(format_blocks("intro\n## Part\n- x\n### Next")) == [
            ("paragraph", "intro"),
            ("heading", 2, "Part"),
            ("list", ["x"]),
            ("heading", 3, "Next"),
        ]

    def test_crlf_and_blank_lines(self):
        assert shape(format_blocks("a\r\n\r\n\r\nb")) == [("paragraph", "a"), ("paragraph", "b")]

    def test_empty_text(self):
        assert format_blocks("") == []

    def test_partial_reveal_prefix(self):
        # a half-revealed "## Heading" and an unclosed emphasis pair
        assert shape(format_blocks("##")) == [("heading", 2, "")]
        blocks = format_blocks("so **bol")
        assert blocks[0].spans == [Span(text="so **bol")]


class TestEmphasis:
    def test_bold_spans(self):
        assert parse_emphasis("a **b** c") == [
            Span(text="a "),
            Span(kind="bold", text="b"),
            Span(text=" c"),
        ]

    def test_empty_pair_stays_plain(self):
        assert parse_emphasis("****") == [Span(text="****")]

    def test_paragraph_uses_emphasis(self):
        block = format_blocks("very **important**")[0]
        assert isinstance(block, ParagraphBlock)
        assert [s.kind for s in block.spans] == ["text", "bold"]

    def test_list_items_use_emphasis(self):
        block = format_blocks("- **x** y")[0]
        assert block.item_spans[0][0] == Span(kind="bold", text="x")

    def test_heading_never_bold(self):
        block = format_blocks("# **Loud**")[0]
        assert block.spans == [Span(text="**Loud**")]


class TestHighlightQuery:
    def test_marks_case_insensitive_match(self):
        assert highlight_query("Hello World", "world") == [
            Span(text="Hello "),
            Span(kind="highlight", text="World"),
        ]

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_inactive_query_leaves_text_unchanged(self, query):
        assert highlight_query("Hello World", query) == [Span(text="Hello World")]

    def test_inactive_query_on_empty_text(self):
        assert highlight_query("", "") == []

    def test_all_occurrences(self):
        spans = highlight_query("ab AB ab", "ab")
        assert [s.text for s in spans if s.kind == "highlight"] == ["ab", "AB", "ab"]

    def test_regex_characters_are_literal(self):
        spans = highlight_query("cost: $5 (approx.)", "(approx.)")
        assert spans[-1] == Span(kind="highlight", text="(approx.)")

    def test_query_replaces_emphasis(self):
        block = format_blocks("**bold** word", query="word")[0]
        assert block.spans == [Span(text="**bold** "), Span(kind="highlight", text="word")]

    def test_headings_take_highlights(self):
        block = format_blocks("# Quantum Physics", query="physics")[0]
        assert block.spans[-1] == Span(kind="highlight", text="Physics")


class TestSearch:
    def test_search_active(self):
        assert search_active("x")
        assert not search_active(" ")
        assert not search_active(None)

    def test_first_match_in_display_order(self):
        messages = [
            Message(session_id="s", role="user", content="nothing here"),
            Message(session_id="s", role="assistant", content="Quantum stuff"),
            Message(session_id="s", role="user", content="more quantum"),
        ]
        match = find_first_match(messages, "QUANTUM")
        assert match.index == 1
        assert match.message_id == messages[1].id

    def test_matches_raw_content(self):
        messages = [{"id": "m1", "content": "a **bold** claim"}]
        assert find_first_match(messages, "**bold**").message_id == "m1"

    def test_no_match_or_inactive(self):
        messages = [{"id": "m1", "content": "hello"}]
        assert find_first_match(messages, "absent") is None
        assert find_first_match(messages, "") is None
