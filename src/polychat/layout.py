"""Layout builders for the Dash component tree.

Callbacks are bound to fixed component ids, so every layout must contain all
of ``REQUIRED_IDS``. ``validate_layout`` checks that before the app starts.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import dash_bootstrap_components as dbc
from dash import dcc, html
from dash.development.base_component import Component as DashComponent

from .message_formatters import Default as DefaultFormatter
from .message_formatters import MessageFormatter
from .models import DEFAULT_TITLE, Message, ModelDescriptor

REQUIRED_IDS = (
    "title_input",
    "model_dropdown",
    "search_input",
    "new_conversation_button",
    "archive_button",
    "messages_container",
    "status_indicator",
    "attachment_upload",
    "attachments_list",
    "input_textarea",
    "submit_button",
    "reveal_interval",
    "notices_store",
    "attachments_store",
    "scroll_target",
)


def collect_ids(component) -> List[str]:
    """All string ids in a component tree, depth first."""
    found = []
    stack = [component]
    while stack:
        node = stack.pop()
        if node is None or isinstance(node, (str, int, float)):
            continue
        if isinstance(node, (list, tuple)):
            stack.extend(reversed(node))
            continue
        node_id = getattr(node, "id", None)
        if isinstance(node_id, str):
            found.append(node_id)
        stack.append(getattr(node, "children", None))
    return found


class Layout(ABC):
    """Interface for building the Dash component layout."""

    def __init__(self, formatter: Optional[MessageFormatter] = None, reveal_interval_ms: int = 50):
        self.formatter = formatter or DefaultFormatter()
        self.reveal_interval_ms = reveal_interval_ms

    @abstractmethod
    def build_layout(
        self,
        models: Optional[List[ModelDescriptor]] = None,
        current_model: Optional[str] = None,
        title: str = DEFAULT_TITLE,
        messages: Optional[List[DashComponent]] = None,
    ) -> DashComponent:
        """Constructs and returns the entire Dash component tree for the UI."""
        pass

    @abstractmethod
    def build_messages(
        self,
        messages: List[Message],
        reveal_texts: Optional[Dict[str, str]] = None,
        query: Optional[str] = None,
    ) -> List[DashComponent]:
        """Renders the transcript."""
        pass

    @abstractmethod
    def get_external_stylesheets(self) -> List:
        pass

    def get_external_scripts(self) -> List:
        return []

    def build_stores(self) -> List[DashComponent]:
        return [
            dcc.Interval(id="reveal_interval", interval=self.reveal_interval_ms, disabled=True),
            dcc.Store(id="notices_store", data=[]),
            dcc.Store(id="attachments_store", data=[]),
            dcc.Store(id="scroll_target", data=None),
        ]

    def validate_layout(self, layout: DashComponent) -> None:
        present = set(collect_ids(layout))
        missing = [i for i in REQUIRED_IDS if i not in present]
        if missing:
            raise ValueError(f"Layout is missing required component IDs: {', '.join(missing)}")

    @staticmethod
    def model_options(models: Optional[List[ModelDescriptor]]) -> List[Dict[str, str]]:
        return [{"label": m.display_name, "value": m.model_id} for m in models or []]


class Bootstrap(Layout):
    """The default layout, built with dash-bootstrap-components."""

    def get_external_stylesheets(self) -> List:
        return [dbc.themes.BOOTSTRAP, dbc.icons.BOOTSTRAP]

    def build_messages(self, messages, reveal_texts=None, query=None):
        return self.formatter.format_messages(messages, reveal_texts, query)

    def build_layout(self, models=None, current_model=None, title=DEFAULT_TITLE, messages=None):
        return html.Div(
            className="d-flex flex-column vh-100",
            children=[
                self.build_header(models, current_model, title),
                self.build_chat_area(messages),
                self.build_input_area(),
                *self.build_stores(),
            ],
        )

    def build_header(self, models, current_model, title) -> DashComponent:
        return html.Header(
            className="p-2 bg-light border-bottom",
            children=[
                dbc.Container(
                    fluid=True,
                    children=[
                        dbc.Row(
                            align="center",
                            className="g-2",
                            children=[
                                dbc.Col(html.H4("PolyChat", className="m-0"), width="auto"),
                                dbc.Col(
                                    dbc.Input(
                                        id="title_input",
                                        value=title,
                                        debounce=True,
                                        size="sm",
                                    ),
                                    width=3,
                                ),
                                dbc.Col(
                                    dcc.Dropdown(
                                        id="model_dropdown",
                                        options=self.model_options(models),
                                        value=current_model,
                                        clearable=False,
                                    ),
                                    width=3,
                                ),
                                dbc.Col(
                                    dbc.Input(
                                        id="search_input",
                                        type="search",
                                        placeholder="Search messages...",
                                        size="sm",
                                    ),
                                ),
                                dbc.Col(
                                    dbc.Button(
                                        "New Chat", id="new_conversation_button", color="primary", size="sm"
                                    ),
                                    width="auto",
                                ),
                                dbc.Col(
                                    dbc.Button(
                                        "Archive", id="archive_button", color="secondary", size="sm"
                                    ),
                                    width="auto",
                                ),
                            ],
                        )
                    ],
                )
            ],
        )

    def build_chat_area(self, messages) -> DashComponent:
        return html.Main(
            className="flex-grow-1 p-3",
            style={"overflowY": "auto"},
            children=[
                html.Div(id="messages_container", children=messages or []),
                html.Div(
                    id="status_indicator",
                    hidden=True,
                    className="text-muted fst-italic",
                    children=[dbc.Spinner(size="sm"), " AI is thinking..."],
                ),
            ],
        )

    def build_input_area(self) -> DashComponent:
        return html.Footer(
            className="p-3 bg-light border-top",
            children=[
                html.Div(id="attachments_list", className="small text-muted mb-1"),
                dbc.InputGroup(
                    [
                        dcc.Upload(
                            id="attachment_upload",
                            multiple=True,
                            children=dbc.Button(html.I(className="bi bi-paperclip"), color="light"),
                        ),
                        dbc.Textarea(id="input_textarea", placeholder="Type a message..."),
                        dbc.Button("Send", id="submit_button", color="primary"),
                    ]
                ),
            ],
        )


class Minimal(Layout):
    """A plain-HTML layout with no external stylesheets."""

    def get_external_stylesheets(self) -> List:
        return []

    def build_messages(self, messages, reveal_texts=None, query=None):
        return self.formatter.format_messages(messages, reveal_texts, query)

    def build_layout(self, models=None, current_model=None, title=DEFAULT_TITLE, messages=None):
        return html.Div(
            [
                dcc.Input(id="title_input", value=title, debounce=True),
                dcc.Dropdown(
                    id="model_dropdown",
                    options=self.model_options(models),
                    value=current_model,
                    clearable=False,
                ),
                dcc.Input(id="search_input", type="search", placeholder="Search messages..."),
                html.Button("New Chat", id="new_conversation_button"),
                html.Button("Archive", id="archive_button"),
                html.Div(id="messages_container", children=messages or []),
                html.Div("AI is thinking...", id="status_indicator", hidden=True),
                dcc.Upload(id="attachment_upload", multiple=True, children=html.Button("Attach")),
                html.Div(id="attachments_list"),
                dcc.Textarea(id="input_textarea", placeholder="Type a message..."),
                html.Button("Send", id="submit_button"),
                *self.build_stores(),
            ]
        )
