"""Concrete implementations for message formatters."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from dash import html
from dash.development.base_component import Component as DashComponent

from .errors import PolyChatError
from .formatting import Block, HeadingBlock, ListBlock, Span, format_blocks
from .models import SYSTEM_ROLE, USER_ROLE, Message

HEADING_TAGS = {1: html.H1, 2: html.H2, 3: html.H3}


def message_dom_id(message_id: str) -> str:
    return f"message-{message_id}"


def notice(text: str, session_id: str = "") -> Message:
    """A transient system-style message shown inline. Never stored."""
    return Message(session_id=session_id, role=SYSTEM_ROLE, content=f"⚠️ {text}")


def error_notice(error: PolyChatError, session_id: str = "") -> Message:
    return notice(error.message, session_id)


class MessageFormatter(ABC):
    """Interface for converting message data into Dash components."""

    @abstractmethod
    def format_messages(
        self,
        messages: List[Message],
        reveal_texts: Optional[Dict[str, str]] = None,
        query: Optional[str] = None,
    ) -> List[DashComponent]:
        """Converts messages into renderable Dash components.

        ``reveal_texts`` maps message ids to their revealed prefix; messages
        without an entry render in full. ``query`` enables search highlights.
        """
        pass


class Default(MessageFormatter):
    """The default formatter, rendering messages as styled bubbles of blocks."""

    def format_messages(self, messages, reveal_texts=None, query=None):
        if not messages:
            return []
        reveal_texts = reveal_texts or {}
        return [
            self.format_message(msg, reveal_texts.get(msg.id, msg.content), query)
            for msg in messages
        ]

    def format_message(
        self, message: Message, display_text: Optional[str] = None, query: Optional[str] = None
    ) -> DashComponent:
        """Formats a single message."""
        text = message.content if display_text is None else display_text
        style = {
            "padding": "10px",
            "borderRadius": "15px",
            "marginBottom": "10px",
            "maxWidth": "70%",
            "width": "fit-content",
        }
        if message.role == USER_ROLE:
            style["marginLeft"] = "auto"
            style["backgroundColor"] = "#dcf8c6"
        elif message.role == SYSTEM_ROLE:
            style["marginLeft"] = "auto"
            style["marginRight"] = "auto"
            style["backgroundColor"] = "#fdecea"
            style["fontStyle"] = "italic"
        else:
            style["marginRight"] = "auto"
            style["backgroundColor"] = "#ffffff"
            style["border"] = "1px solid #eee"

        children = self.render_blocks(format_blocks(text, query))
        if message.model_name:
            children.append(html.Small(message.model_name, className="text-muted"))
        return html.Div(
            children,
            id=message_dom_id(message.id),
            className=f"message message-{message.role}",
            style=style,
        )

    def render_blocks(self, blocks: List[Block]) -> List[DashComponent]:
        rendered = []
        for block in blocks:
            if isinstance(block, HeadingBlock):
                rendered.append(HEADING_TAGS[block.level](self.render_spans(block.spans)))
            elif isinstance(block, ListBlock):
                rendered.append(
                    html.Ul([html.Li(self.render_spans(spans)) for spans in block.item_spans])
                )
            else:
                rendered.append(
                    html.P(self.render_spans(block.spans), style={"whiteSpace": "pre-wrap"})
                )
        return rendered

    def render_spans(self, spans: List[Span]) -> list:
        children = []
        for span in spans:
            if span.kind == "bold":
                children.append(html.Strong(span.text))
            elif span.kind == "highlight":
                children.append(html.Mark(span.text, className="search-highlight"))
            else:
                children.append(span.text)
        return children
