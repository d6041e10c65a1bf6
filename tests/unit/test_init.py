"""Unit tests for PolyChat initialization and configuration."""

from unittest.mock import Mock, patch

import pytest
from dash import html
from polychat import PolyChat
from polychat.config import Settings
from polychat.layout import Bootstrap, Layout, Minimal
from polychat.llm import Echo
from polychat.models import USER_ROLE
from polychat.storage import File
from polychat.store import Store


@pytest.fixture
def settings():
    return Settings(api_key="", storage_dir=None, log_level="WARNING")


class TestPolyChatInit:
    """Test PolyChat initialization and pillar wiring."""

    def test_default_initialization(self, settings):
        with patch("polychat.llm.OpenRouter") as openrouter:
            app = PolyChat(settings=settings)

        assert app.llm is openrouter.return_value
        assert isinstance(app.layout_builder, Bootstrap)
        assert isinstance(app.store, Store)
        assert app.orchestrator.store is app.store
        assert app.dispatcher.llm is app.llm
        assert app.orchestrator.dispatcher is app.dispatcher
        assert openrouter.call_args.kwargs["base_url"] == settings.base_url
        app.shutdown()

    def test_settings_drive_components(self):
        settings = Settings(
            api_key="",
            storage_dir=None,
            retry_attempts=5,
            retry_base_delay=0.5,
            history_limit=7,
            reveal_delay=0.1,
            default_model="meta-llama/llama-3.3-70b-instruct",
        )
        app = PolyChat(llm=Echo(delay=0), settings=settings)

        assert app.dispatcher.retry.attempts == 5
        assert app.dispatcher.retry.base_delay == 0.5
        assert app.orchestrator.history_limit == 7
        assert app.orchestrator.current_model == "meta-llama/llama-3.3-70b-instruct"
        assert app.reveal.delay == 0.1
        assert app.layout_builder.reveal_interval_ms == 100
        app.shutdown()

    def test_storage_dir_selects_file_backend(self, temp_dir):
        settings = Settings(api_key="", storage_dir=str(temp_dir))
        app = PolyChat(llm=Echo(delay=0), settings=settings)
        assert isinstance(app.store.storage, File)
        app.shutdown()

    def test_custom_llm_and_store(self, settings):
        llm = Mock()
        store = Store()
        app = PolyChat(llm=llm, store=store, settings=settings)
        assert app.llm is llm
        assert app.store is store
        app.shutdown()

    def test_custom_layout(self, settings, mock_layout):
        app = PolyChat(layout=mock_layout, llm=Echo(delay=0), settings=settings)
        assert app.layout_builder is mock_layout
        mock_layout.validate_layout.assert_called_once()
        app.shutdown()

    def test_minimal_layout_has_no_stylesheets(self, settings):
        app = PolyChat(layout=Minimal(), llm=Echo(delay=0), settings=settings)
        assert app.config.external_stylesheets == []
        app.shutdown()

    def test_page_title(self, settings):
        app = PolyChat(llm=Echo(delay=0), settings=settings)
        assert app.title == settings.app_title
        app.shutdown()

    def test_layout_missing_ids_raises(self, settings):
        class Broken(Layout):
            def build_layout(self, models=None, current_model=None, title="", messages=None):
                return html.Div(id="only-this")

            def build_messages(self, messages, reveal_texts=None, query=None):
                return []

            def get_external_stylesheets(self):
                return []

        with pytest.raises(ValueError, match="missing required component IDs"):
            PolyChat(layout=Broken(), llm=Echo(delay=0), settings=settings)


class TestServeLayout:
    def test_layout_is_served_per_request(self, test_app):
        assert callable(test_app.layout)

    def test_restores_current_session(self, settings):
        store = Store()
        session = store.create_session(title="Earlier chat")
        store.add_message(session.id, USER_ROLE, "still here")

        app = PolyChat(llm=Echo(delay=0), store=store, settings=settings)
        try:
            tree = app.serve_layout()
            titles = [c for c in _walk(tree) if getattr(c, "id", None) == "title_input"]
            assert titles[0].value == "Earlier chat"
            container = next(c for c in _walk(tree) if getattr(c, "id", None) == "messages_container")
            assert len(container.children) == 1
        finally:
            app.shutdown()


def _walk(component):
    stack = [component]
    while stack:
        node = stack.pop()
        if isinstance(node, (list, tuple)):
            stack.extend(node)
            continue
        if node is None or isinstance(node, str):
            continue
        yield node
        stack.append(getattr(node, "children", None))
