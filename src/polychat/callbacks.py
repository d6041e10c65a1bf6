"""Callbacks wiring the Dash UI to the orchestrator.

Callbacks run on Dash worker threads. Anything that touches the store, the
orchestrator or the reveal scheduler is submitted to ``app.runtime`` so it
executes on the single event-loop thread.
"""

import logging

from dash import Input, Output, State, html, no_update

from .attachments import Attachment, attachment_from_upload, compose_message, validate_attachments
from .errors import PolyChatError
from .formatting import find_first_match, search_active
from .message_formatters import error_notice, message_dom_id, notice
from .models import Message

logger = logging.getLogger(__name__)

REJECTED_FILES_NOTICE = (
    "Some files were rejected. Only text, PDF, Word, HTML, JSON, and Markdown files "
    "under 10MB are allowed."
)


def load_notices(data):
    return [Message.model_validate(n) for n in data or []]


def dump_notices(notices):
    return [n.model_dump(mode="json") for n in notices]


def transcript(app, notices):
    """Committed messages of the current session merged with transient notices."""
    messages = []
    if app.orchestrator.current_session is not None:
        messages = app.runtime.run(app.orchestrator.get_conversation_history())
    return sorted([*messages, *notices], key=lambda m: m.created_at)


def render(app, notices, query=None):
    """Returns (rendered transcript, whether the reveal interval should stop)."""
    messages = transcript(app, notices)
    reveal_texts = app.runtime.call(app.reveal.display_texts, messages)
    active = app.runtime.call(app.reveal.active_slots)
    return app.layout_builder.build_messages(messages, reveal_texts, query), not active


def register_callbacks(app):
    @app.callback(
        [
            Output("messages_container", "children"),
            Output("input_textarea", "value"),
            Output("attachments_store", "data"),
            Output("attachments_list", "children"),
            Output("notices_store", "data"),
            Output("reveal_interval", "disabled"),
        ],
        [Input("submit_button", "n_clicks")],
        [
            State("input_textarea", "value"),
            State("attachments_store", "data"),
            State("notices_store", "data"),
            State("search_input", "value"),
        ],
        running=[
            (Output("status_indicator", "hidden"), False, True),
            (Output("submit_button", "disabled"), True, False),
        ],
        prevent_initial_call=True,
    )
    def send_message(n_clicks, user_input, attachments, notices_data, query):
        attachments = [Attachment.model_validate(a) for a in attachments or []]
        content = compose_message(user_input or "", attachments)
        if not n_clicks or not content:
            return no_update, no_update, no_update, no_update, no_update, no_update

        notices = load_notices(notices_data)
        try:
            result = app.runtime.run(app.orchestrator.send_message(content))
            assistant = result.assistant_message
            app.runtime.call(app.reveal.start_reveal, assistant.id, assistant.content)
        except PolyChatError as e:
            session = app.orchestrator.current_session
            notices.append(error_notice(e, session.id if session else ""))

        children, reveal_done = render(app, notices, query)
        return children, "", [], [], dump_notices(notices), reveal_done

    @app.callback(
        [
            Output("messages_container", "children", allow_duplicate=True),
            Output("reveal_interval", "disabled", allow_duplicate=True),
        ],
        [Input("reveal_interval", "n_intervals")],
        [State("notices_store", "data"), State("search_input", "value")],
        prevent_initial_call=True,
    )
    def reveal_tick(n_intervals, notices_data, query):
        return render(app, load_notices(notices_data), query)

    @app.callback(
        [
            Output("messages_container", "children", allow_duplicate=True),
            Output("scroll_target", "data"),
        ],
        [Input("search_input", "value")],
        [State("notices_store", "data")],
        prevent_initial_call=True,
    )
    def search(query, notices_data):
        notices = load_notices(notices_data)
        children, _ = render(app, notices, query)
        match = find_first_match(transcript(app, notices), query) if search_active(query) else None
        return children, message_dom_id(match.message_id) if match else None

    @app.callback(
        [
            Output("messages_container", "children", allow_duplicate=True),
            Output("notices_store", "data", allow_duplicate=True),
            Output("title_input", "value"),
            Output("search_input", "value"),
        ],
        [Input("new_conversation_button", "n_clicks")],
        prevent_initial_call=True,
    )
    def new_chat(n_clicks):
        if not n_clicks:
            return no_update, no_update, no_update, no_update
        app.runtime.call(app.reveal.clear)
        session = app.runtime.run(app.orchestrator.create_session(app.orchestrator.current_model))
        return [], [], session.title, ""

    @app.callback(
        [
            Output("messages_container", "children", allow_duplicate=True),
            Output("notices_store", "data", allow_duplicate=True),
            Output("title_input", "value", allow_duplicate=True),
        ],
        [Input("archive_button", "n_clicks")],
        prevent_initial_call=True,
    )
    def archive(n_clicks):
        if not n_clicks or app.orchestrator.current_session is None:
            return no_update, no_update, no_update
        app.runtime.call(app.reveal.clear)
        app.runtime.run(app.orchestrator.archive_session())
        return [], [], ""

    @app.callback(
        Output("title_input", "value", allow_duplicate=True),
        [Input("model_dropdown", "value")],
        prevent_initial_call=True,
    )
    def switch_model(model_id):
        if not model_id or (model_id == app.orchestrator.current_model and app.orchestrator.current_session):
            return no_update
        try:
            session = app.runtime.run(app.orchestrator.switch_model(model_id))
        except PolyChatError as e:
            logger.error("Failed to switch model: %s", e.message)
            return no_update
        return session.title

    @app.callback(
        Output("title_input", "value", allow_duplicate=True),
        [Input("title_input", "value")],
        prevent_initial_call=True,
    )
    def update_title(title):
        session = app.orchestrator.current_session
        if session is None or not title or title == session.title:
            return no_update
        try:
            app.runtime.run(app.orchestrator.update_title(title))
        except PolyChatError as e:
            logger.warning("Failed to update title: %s", e.message)
            return session.title
        return no_update

    @app.callback(
        [
            Output("attachments_store", "data", allow_duplicate=True),
            Output("attachments_list", "children", allow_duplicate=True),
            Output("notices_store", "data", allow_duplicate=True),
        ],
        [Input("attachment_upload", "contents")],
        [
            State("attachment_upload", "filename"),
            State("attachments_store", "data"),
            State("notices_store", "data"),
        ],
        prevent_initial_call=True,
    )
    def attach_files(contents, filenames, current, notices_data):
        if not contents:
            return no_update, no_update, no_update
        uploads = [attachment_from_upload(c, f) for c, f in zip(contents, filenames)]
        accepted, rejected = validate_attachments(uploads)
        attachments = [Attachment.model_validate(a) for a in current or []] + accepted

        notices = load_notices(notices_data)
        if rejected:
            session = app.orchestrator.current_session
            notices.append(notice(REJECTED_FILES_NOTICE, session.id if session else ""))
        listing = [html.Div(a.describe()) for a in attachments]
        return [a.model_dump() for a in attachments], listing, dump_notices(notices)

    _register_clientside_callbacks(app)


def _register_clientside_callbacks(app):
    app.clientside_callback(
        """
        function(pathname) {
            setTimeout(function() {
                const textarea = document.getElementById('input_textarea');
                const submitButton = document.getElementById('submit_button');

                if (textarea && submitButton && !window.enterListenerSetup) {
                    window.enterListenerSetup = true;
                    textarea.addEventListener('keydown', function(e) {
                        // Shift+Enter keeps the newline
                        if (e.key === 'Enter' && !e.shiftKey) {
                            e.preventDefault();
                            if (textarea.value.trim()) {
                                submitButton.click();
                            }
                        }
                    });
                }
            }, 100);
            return window.dash_clientside.no_update;
        }
        """,
        Output("submit_button", "n_clicks", allow_duplicate=True),
        [Input("input_textarea", "id")],
        prevent_initial_call="initial_duplicate",
    )

    # Follow the newest message unless a search is pinning the view
    app.clientside_callback(
        """
        function(messages_content, query) {
            if (messages_content && messages_content.length > 0 && !(query && query.trim())) {
                setTimeout(function() {
                    const last = document.getElementById('messages_container').lastElementChild;
                    if (last) {
                        last.scrollIntoView({behavior: 'smooth', block: 'end'});
                    }
                }, 100);
            }
            return window.dash_clientside.no_update;
        }
        """,
        Output("messages_container", "data-scroll-trigger", allow_duplicate=True),
        [Input("messages_container", "children")],
        [State("search_input", "value")],
        prevent_initial_call=True,
    )

    # Center the first search match
    app.clientside_callback(
        """
        function(target) {
            if (target) {
                setTimeout(function() {
                    const el = document.getElementById(target);
                    if (el) {
                        el.scrollIntoView({behavior: 'smooth', block: 'center'});
                    }
                }, 100);
            }
            return window.dash_clientside.no_update;
        }
        """,
        Output("messages_container", "data-search-trigger", allow_duplicate=True),
        [Input("scroll_target", "data")],
        prevent_initial_call=True,
    )
