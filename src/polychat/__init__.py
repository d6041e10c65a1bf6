"""
The main entrypoint for the PolyChat package.

This module contains the PolyChat application class, which wires the store,
the LLM provider, the dispatcher, the orchestrator, the reveal scheduler and
the layout together. Each of them can be replaced by injection.
"""

from typing import Optional

from dash import Dash

from . import config, dispatcher, layout, llm, orchestrator, reveal, runtime, storage, store


class PolyChat(Dash):
    """
    The PolyChat multi-model chat application.

    Core state (store writes, dispatches, reveal ticks) lives on a single
    background event loop owned by ``self.runtime``; Dash callbacks submit
    work to it.
    """

    def __init__(
        self,
        layout: Optional["layout.Layout"] = None,
        llm: Optional["llm.LLM"] = None,
        store: Optional["store.Store"] = None,
        settings: Optional[config.Settings] = None,
        reveal: Optional["reveal.RevealScheduler"] = None,
        runtime: Optional["runtime.EventLoopThread"] = None,
        **kwargs,
    ) -> None:
        """
        Initialize PolyChat with configurable pillars.

        Parameters
        ----------
        layout : layout.Layout, optional
            Layout builder. Defaults to ``layout.Bootstrap()``.
        llm : llm.LLM, optional
            Model provider. Defaults to ``llm.OpenRouter()`` configured from
            settings.
        store : store.Store, optional
            Persistence store. Defaults to an in-memory blob, or a file blob
            when ``settings.storage_dir`` is set.
        settings : config.Settings, optional
            Defaults to ``config.get_settings()`` (environment and ``.env``).
        reveal : reveal.RevealScheduler, optional
            Defaults to a scheduler using ``settings.reveal_delay``.
        runtime : runtime.EventLoopThread, optional
            The loop thread hosting core state.
        **kwargs
            Additional arguments passed to the Dash constructor.

        Raises
        ------
        ValueError
            If the layout is missing component IDs the callbacks need.

        Examples
        --------
        >>> app = PolyChat()
        >>> app = PolyChat(llm=llm.Ollama(), store=store.Store(storage.File("./chats")))
        """
        layout_module = globals()["layout"]
        llm_module = globals()["llm"]
        store_module = globals()["store"]
        reveal_module = globals()["reveal"]
        runtime_module = globals()["runtime"]

        self.settings = settings if settings is not None else config.get_settings()
        config.setup_logging(self.settings.log_level)

        self.layout_builder = (
            layout if layout is not None else layout_module.Bootstrap(
                reveal_interval_ms=max(int(self.settings.reveal_delay * 1000), 20)
            )
        )
        self.llm = (
            llm
            if llm is not None
            else llm_module.OpenRouter(
                default_model=self.settings.default_model,
                api_key=self.settings.api_key,
                base_url=self.settings.base_url,
                timeout=self.settings.request_timeout,
                referer=self.settings.referer,
                title=self.settings.app_title,
            )
        )
        if store is not None:
            self.store = store
        elif self.settings.storage_dir:
            self.store = store_module.Store(storage.File(self.settings.storage_dir))
        else:
            self.store = store_module.Store()

        self.dispatcher = dispatcher.Dispatcher(
            self.llm,
            models=self.store.get_available_models(),
            retry=dispatcher.RetryPolicy(
                attempts=self.settings.retry_attempts,
                base_delay=self.settings.retry_base_delay,
            ),
        )
        self.orchestrator = orchestrator.Orchestrator(
            self.store,
            self.dispatcher,
            default_model=self.settings.default_model,
            history_limit=self.settings.history_limit,
        )
        self.reveal = reveal if reveal is not None else reveal_module.RevealScheduler(
            delay=self.settings.reveal_delay
        )
        self.runtime = runtime if runtime is not None else runtime_module.EventLoopThread()

        kwargs.setdefault("title", self.settings.app_title)
        kwargs.setdefault("external_stylesheets", [])
        kwargs["external_stylesheets"].extend(self.layout_builder.get_external_stylesheets())
        kwargs.setdefault("external_scripts", [])
        kwargs["external_scripts"].extend(self.layout_builder.get_external_scripts())

        super().__init__(**kwargs)

        self.layout_builder.validate_layout(self.serve_layout())
        self.layout = self.serve_layout
        self._register_callbacks()

    def serve_layout(self):
        """Builds the page for the current session on every page load."""
        session = self.orchestrator.current_session
        messages = []
        if session is not None:
            history = self.runtime.run(self.orchestrator.get_conversation_history())
            messages = self.layout_builder.build_messages(history)
        return self.layout_builder.build_layout(
            models=self.store.get_available_models(),
            current_model=self.orchestrator.current_model,
            title=session.title if session else "",
            messages=messages,
        )

    def shutdown(self) -> None:
        """Stops reveals and the loop thread."""
        if self.runtime.running:
            self.runtime.call(self.reveal.cancel_all)
        self.runtime.stop()

    def _register_callbacks(self) -> None:
        """Registers all the callbacks that orchestrate the pillars."""
        from .callbacks import register_callbacks

        register_callbacks(self)
