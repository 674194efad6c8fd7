"""
Pattern Relay - Pattern Flow
Action-token state machine behind the pattern menus.

The controller turns new input and button tokens into FlowView objects.
It knows nothing about any transport: the Telegram listener and the
console both render the same views.
"""

import html
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Tuple

from concurrency.locks import OperationGuard, get_operation_guard
from core.errors import PatternRelayError, PatternCatalogError, SessionStateMissing, describe_failure
from core.file_export import ExportArtifact, FileExporter, get_file_exporter
from core.logger import log_info, log_warning
from engine import chunker
from engine.batch import BatchProcessor, record_outcome
from engine.executor import PatternExecutor
from engine.navigation import Direction, navigate_input, navigate_output, ensure_input_chunks, ensure_output_chunks
from engine.session import PatternResult, PatternSessions, SessionState, get_session_store
from interface import menus
from interface.menus import Menu
from patterns.catalog import PatternCatalog, PatternCategory, get_pattern_catalog
from patterns.suggester import PatternSuggester

PREVIEW_LENGTH = 1000


class FlowState(Enum):
    """Where the user is in the pattern flow."""
    SHOWING_INPUT_CHUNK = "showing_input_chunk"
    SHOWING_OUTPUT_CHUNK = "showing_output_chunk"
    SHOWING_CATEGORY_MENU = "showing_category_menu"
    SHOWING_PATTERN_MENU = "showing_pattern_menu"
    PROCESSING = "processing"
    SHOWING_RESULT = "showing_result"
    ERROR = "error"
    DONE = "done"


@dataclass
class FlowView:
    """
    What to show the user next.

    Attributes:
        state: Flow state this view represents
        text: Message body (Telegram-safe HTML)
        menu: Buttons to attach, if any
        document: Exported file to send, if any
        terminal: True when the pattern flow has ended
        cursor: Chunk index for chunk views
        pattern: Result key for output views
    """
    state: FlowState
    text: str
    menu: Optional[Menu] = None
    document: Optional[ExportArtifact] = None
    terminal: bool = False
    cursor: Optional[int] = None
    pattern: Optional[str] = None


def parse_token(token: str) -> Tuple[str, List[str]]:
    """
    Split an action token into action and parameters.

    "pattern_chunk:summarize:next" -> ("chunk", ["summarize", "next"])

    Raises:
        ValueError: If the token does not carry the pattern prefix
    """
    head, *params = token.split(":")
    if not head.startswith(menus.TOKEN_PREFIX) or head == menus.TOKEN_PREFIX:
        raise ValueError(f"Not a pattern action: {token}")
    return head[len(menus.TOKEN_PREFIX):], params


def _int_param(params: List[str], index: int, default: int = 0) -> int:
    try:
        return int(params[index])
    except (IndexError, ValueError):
        return default


class PatternFlowController:
    """
    Drives the pattern flow for every user.

    Pattern runs (suggestion, single pattern, batch) hold the user's
    single-flight slot. Their result is written into a freshly re-read
    session state so navigation done meanwhile is kept.
    """

    def __init__(
        self,
        catalog: PatternCatalog,
        executor: PatternExecutor,
        batch: BatchProcessor,
        sessions: PatternSessions,
        guard: Optional[OperationGuard] = None,
        suggester: Optional[PatternSuggester] = None,
        exporter: Optional[FileExporter] = None
    ):
        import config

        self.catalog = catalog
        self.executor = executor
        self.batch = batch
        self.sessions = sessions
        self.guard = guard or get_operation_guard()
        self.suggester = suggester
        self._exporter = exporter
        self.chunk_max_size = getattr(config, 'CHUNK_MAX_SIZE', chunker.DEFAULT_MAX_SIZE)
        self.display_max_size = getattr(config, 'DISPLAY_MAX_SIZE', chunker.DEFAULT_DISPLAY_SIZE)
        self.per_page = getattr(config, 'PATTERNS_PER_PAGE', 8)

        self._handlers = {
            "use": self._on_use,
            "more": self._on_categories,
            "categories": self._on_categories,
            "back": self._on_categories,
            "category": self._on_category,
            "next_page": self._on_next_page,
            "prev_page": self._on_prev_page,
            "back_to_menu": self._on_back_to_menu,
            "chunk": self._on_output_chunk,
            "browse_input": self._on_browse_input,
            "input_chunk": self._on_input_chunk,
            "select_chunk": self._on_select_chunk,
            "select_all_chunks": self._on_select_all_chunks,
            "process_all": self._on_process_all,
            "apply_to_chunk": self._on_apply_to_chunk,
            "choose_output": self._on_choose_output,
            "advanced": self._on_advanced,
            "select_output": self._on_select_output,
            "use_full_input": self._on_use_full_input,
            "download": self._on_download,
            "view_batch": self._on_view_batch,
            "view_batch_summary": self._on_view_batch_summary,
        }

    @property
    def exporter(self) -> FileExporter:
        if self._exporter is None:
            self._exporter = get_file_exporter()
        return self._exporter

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def start(self, user_id: str, text: str) -> FlowView:
        """
        Begin a pattern session for new input.

        An explicit request ("summarize this: ...") is executed right away;
        otherwise the pattern menu is shown with the suggested pattern.
        """
        user_id = str(user_id)
        if not self.catalog.is_loaded():
            return self._error_view(PatternCatalogError("catalog not loaded"), terminal=True)

        try:
            # New input replaces the session, so it waits for any run in flight
            with self.guard.hold(user_id, "start"):
                state = self.sessions.start(user_id, text)
                suggestion = None
                if self.suggester is not None:
                    suggestion = self.suggester.suggest(text)

                if suggestion is not None and suggestion.executed:
                    result = PatternResult(output=suggestion.result, pattern_name=suggestion.pattern)
                    fresh = self._merge_result(state, suggestion.pattern, result)
                    return self._result_view(fresh, suggestion.pattern)

                if suggestion is not None:
                    state, _ = self._latest_state(state)
                    state.suggested_pattern = suggestion.pattern
                    state.alternative_patterns = list(suggestion.alternative_patterns)
                    self.sessions.save(state)
                    intro = (
                        f"💡 Suggested pattern: <b>{html.escape(suggestion.pattern)}</b> "
                        f"({suggestion.confidence:.0%})\n{html.escape(suggestion.description)}\n\n"
                        f"<i>{html.escape(suggestion.reasoning)}</i>"
                    )
                    return self._pattern_menu_view(state, intro)
        except PatternRelayError as e:
            return self._error_view(e)

        return self._pattern_menu_view(state)

    def handle(self, user_id: str, token: str) -> Optional[FlowView]:
        """
        Handle one action token.

        Returns:
            The next view, or None for tokens with nothing to show (noop)
        """
        user_id = str(user_id)
        try:
            action, params = parse_token(token)
        except ValueError:
            log_warning(f"Ignoring malformed action token: {token}")
            return self._message_view(FlowState.ERROR, "Unknown pattern action.")

        if action == "noop":
            return None
        if action == "skip":
            return self._on_skip(None, params)

        handler = self._handlers.get(action)
        if handler is None:
            log_warning(f"Unknown pattern action: {action}")
            return self._message_view(FlowState.ERROR, "Unknown pattern action.")

        try:
            state = self.sessions.load(user_id)
            return handler(state, params)
        except SessionStateMissing as e:
            return self._error_view(e, terminal=True)
        except PatternRelayError as e:
            return self._error_view(e)
        except (KeyError, IndexError, ValueError) as e:
            log_warning(f"Stale selection for {user_id} ({action}): {e}")
            return self._message_view(FlowState.ERROR, "That selection is no longer available.", menus.start_over_menu())

    # =========================================================================
    # PATTERN RUNS
    # =========================================================================

    def _latest_state(self, state: SessionState) -> Tuple[SessionState, bool]:
        """
        Re-read the session a run started from.

        Returns:
            Tuple of (state to update, whether it may be written back).
            An expired session falls back to the pre-run copy; a session
            replaced by new input is never written with the old run's result.
        """
        fresh = self.sessions.find(state.user_id)
        if fresh is None:
            return state, True
        if fresh.session_id != state.session_id:
            log_warning(f"Session for {state.user_id} was replaced during a run; result not stored")
            return state, False
        return fresh, True

    def _merge_result(self, state: SessionState, key: str, result: PatternResult) -> SessionState:
        """Store a result into the latest state of the same session."""
        fresh, writable = self._latest_state(state)
        if len(result.output) > self.display_max_size:
            ensure_output_chunks(result, self.display_max_size)
        fresh.store_result(key, result)
        if writable:
            self.sessions.save(fresh)
        return fresh

    def _run_pattern(self, state: SessionState, pattern_name: str) -> FlowView:
        content, label = state.selected_content()
        selection = state.selection
        source_name = selection.use_processed_output
        source_chunk = selection.selected_output_chunk if source_name else selection.selected_input_chunk

        with self.guard.hold(state.user_id, f"pattern:{pattern_name}"):
            pattern, _ = self.catalog.resolve(pattern_name)
            log_info(f"Applying {pattern.name} to {label} for {state.user_id}", prefix="🧩")
            output = self.executor.run_with_retry(lambda: self.executor.apply_large(pattern.name, content))

        result = PatternResult(
            output=output,
            pattern_name=pattern.name,
            source_name=source_name,
            source_chunk_index=source_chunk
        )
        fresh = self._merge_result(state, pattern.name, result)
        return self._result_view(fresh, pattern.name)

    def _run_batch(self, state: SessionState, pattern_name: str) -> FlowView:
        chunk_set = ensure_input_chunks(state, self.chunk_max_size)
        chunks = list(chunk_set.chunks)

        with self.guard.hold(state.user_id, f"batch:{pattern_name}"):
            outcome = self.batch.process_all(chunks, pattern_name)

        fresh, writable = self._latest_state(state)
        if fresh.chunk_set is None:
            fresh.chunk_set = chunk_set
        record_outcome(fresh, outcome)
        if writable:
            self.sessions.save(fresh)
        return self._batch_summary_view(fresh, outcome.key)

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _on_use(self, state: SessionState, params: List[str]) -> FlowView:
        if not params:
            return self._pattern_menu_view(state)
        return self._run_pattern(state, params[0])

    def _on_categories(self, state: SessionState, params: List[str]) -> FlowView:
        return FlowView(
            state=FlowState.SHOWING_CATEGORY_MENU,
            text="📋 <b>Select a Pattern Category</b>",
            menu=menus.categories_menu(self.catalog)
        )

    def _category_view(self, category_value: str, page: int) -> FlowView:
        category = PatternCategory(category_value)
        patterns = self.catalog.by_category(category)
        pages = max(1, (len(patterns) + self.per_page - 1) // self.per_page)
        page = min(max(page, 0), pages - 1)
        return FlowView(
            state=FlowState.SHOWING_PATTERN_MENU,
            text=f"{category.emoji} <b>{category.display_name} Patterns</b> (page {page + 1}/{pages})",
            menu=menus.category_patterns_menu(self.catalog, category, page, self.per_page),
            cursor=page
        )

    def _on_category(self, state: SessionState, params: List[str]) -> FlowView:
        if not params:
            return self._on_categories(state, params)
        try:
            return self._category_view(params[0], 0)
        except ValueError:
            return self._message_view(FlowState.ERROR, "Unknown pattern category.", menus.categories_menu(self.catalog))

    def _on_next_page(self, state: SessionState, params: List[str]) -> FlowView:
        try:
            return self._category_view(params[0], _int_param(params, 1) + 1)
        except (IndexError, ValueError):
            return self._on_categories(state, params)

    def _on_prev_page(self, state: SessionState, params: List[str]) -> FlowView:
        try:
            return self._category_view(params[0], _int_param(params, 1) - 1)
        except (IndexError, ValueError):
            return self._on_categories(state, params)

    def _on_back_to_menu(self, state: SessionState, params: List[str]) -> FlowView:
        return self._pattern_menu_view(state)

    def _on_skip(self, state: Optional[SessionState], params: List[str]) -> FlowView:
        return FlowView(state=FlowState.DONE, text="✅ Done with patterns.", terminal=True)

    def _on_output_chunk(self, state: SessionState, params: List[str]) -> FlowView:
        key = params[0]
        direction = Direction(params[1]) if len(params) > 1 else Direction.NEXT
        result, _ = navigate_output(state.results[key], direction, self.display_max_size)
        self.sessions.save(state)
        return self._output_chunk_view(key, result)

    def _on_browse_input(self, state: SessionState, params: List[str]) -> FlowView:
        chunk_set, _ = navigate_input(state, Direction.FIRST, self.chunk_max_size)
        self.sessions.save(state)
        return self._input_chunk_view(chunk_set.chunks, chunk_set.cursor)

    def _on_input_chunk(self, state: SessionState, params: List[str]) -> FlowView:
        try:
            direction = Direction(params[0]) if params else Direction.NEXT
        except ValueError:
            direction = Direction.NEXT
        chunk_set, _ = navigate_input(state, direction, self.chunk_max_size)
        self.sessions.save(state)
        return self._input_chunk_view(chunk_set.chunks, chunk_set.cursor)

    def _on_select_chunk(self, state: SessionState, params: List[str]) -> FlowView:
        ensure_input_chunks(state, self.chunk_max_size)
        state.select_input_chunk(_int_param(params, 0))
        self.sessions.save(state)
        return self._pattern_menu_view(state)

    def _on_select_all_chunks(self, state: SessionState, params: List[str]) -> FlowView:
        chunk_set = ensure_input_chunks(state, self.chunk_max_size)
        self.sessions.save(state)
        return FlowView(
            state=FlowState.SHOWING_PATTERN_MENU,
            text=f"🔄 <b>Process all {len(chunk_set)} chunks</b>\n\nChoose a pattern to apply to every chunk:",
            menu=menus.batch_processing_menu(self.catalog)
        )

    def _on_process_all(self, state: SessionState, params: List[str]) -> FlowView:
        if not params:
            return self._on_select_all_chunks(state, params)
        return self._run_batch(state, params[0])

    def _on_apply_to_chunk(self, state: SessionState, params: List[str]) -> FlowView:
        state.select_output(params[0], _int_param(params, 1))
        self.sessions.save(state)
        return self._pattern_menu_view(state)

    def _on_choose_output(self, state: SessionState, params: List[str]) -> FlowView:
        names = state.single_results()
        if not names:
            return self._on_advanced(state, params)
        return FlowView(
            state=FlowState.SHOWING_PATTERN_MENU,
            text="📝 <b>Choose a processed result</b> to use as input:",
            menu=menus.processed_outputs_menu(names)
        )

    def _on_advanced(self, state: SessionState, params: List[str]) -> FlowView:
        _, label = state.selected_content()
        return FlowView(
            state=FlowState.SHOWING_PATTERN_MENU,
            text=f"🧩 <b>Advanced Options</b>\n\nCurrent input: {html.escape(label)}",
            menu=menus.advanced_menu(self.catalog, bool(state.single_results()))
        )

    def _on_select_output(self, state: SessionState, params: List[str]) -> FlowView:
        key = params[0]
        result = state.results[key]
        if result.chunks and len(result.chunks) > 1:
            result, _ = navigate_output(result, Direction.FIRST, self.display_max_size)
            self.sessions.save(state)
            return self._output_chunk_view(key, result)
        state.select_output(key)
        self.sessions.save(state)
        return self._pattern_menu_view(state)

    def _on_use_full_input(self, state: SessionState, params: List[str]) -> FlowView:
        state.use_full_input()
        self.sessions.save(state)
        return self._pattern_menu_view(state)

    def _on_download(self, state: SessionState, params: List[str]) -> FlowView:
        key = params[0]
        artifact = self.exporter.export(state.results[key].output, key)
        return FlowView(
            state=FlowState.SHOWING_RESULT,
            text=f"📤 Result of <b>{html.escape(key)}</b> saved as {html.escape(artifact.filename)}",
            document=artifact,
            terminal=True,
            pattern=key
        )

    def _on_view_batch(self, state: SessionState, params: List[str]) -> FlowView:
        key = params[0]
        batch = state.results[key]
        results = batch.batch_results or []
        index = _int_param(params, 1)
        if not 0 <= index < len(results):
            raise IndexError(f"Batch result {index} out of range")
        body = results[index]
        if len(body) > self.display_max_size:
            if len(results) == 1:
                # Combined output: page through it like any long result
                batch, _ = navigate_output(batch, Direction.FIRST, self.display_max_size)
                self.sessions.save(state)
                return self._output_chunk_view(key, batch)
            body = chunker.split_for_display(body, self.display_max_size)[0]
            body += "\n\n<i>Continued in the full output (📖 Read Full Output or 📤 Download).</i>"
        return FlowView(
            state=FlowState.SHOWING_OUTPUT_CHUNK,
            text=f"<b>Chunk {index + 1} Result:</b>\n\n{body}",
            menu=menus.batch_result_menu(key, index, len(results)),
            cursor=index,
            pattern=key
        )

    def _on_view_batch_summary(self, state: SessionState, params: List[str]) -> FlowView:
        return self._batch_summary_view(state, params[0])

    # =========================================================================
    # VIEWS
    # =========================================================================

    def _message_view(self, flow_state: FlowState, text: str, menu: Optional[Menu] = None) -> FlowView:
        return FlowView(state=flow_state, text=text, menu=menu)

    def _error_view(self, error: Exception, terminal: bool = False) -> FlowView:
        text = describe_failure(error)
        if isinstance(error, SessionStateMissing):
            return FlowView(state=FlowState.ERROR, text=text, terminal=True)
        menu = None if terminal else menus.Menu().add_row(
            menus.Button("📋 Back to Patterns", menus.token("back_to_menu")),
            menus.Button("❌ Cancel", menus.token("skip"))
        )
        return FlowView(state=FlowState.ERROR, text=f"❌ {text}", menu=menu, terminal=terminal)

    def _pattern_menu_view(self, state: SessionState, intro: Optional[str] = None) -> FlowView:
        content, label = state.selected_content()
        lines = [intro] if intro else []
        lines.append(f"Choose a pattern to apply to the {html.escape(label)} ({len(content):,} chars).")
        if len(state.original_input) > self.chunk_max_size and state.selection.selected_input_chunk is None:
            lines.append("This input is long: use 🧩 Advanced to browse or batch-process its chunks.")
        return FlowView(
            state=FlowState.SHOWING_PATTERN_MENU,
            text="\n\n".join(lines),
            menu=menus.suggestion_menu(self.catalog, state.suggested_pattern, state.alternative_patterns)
        )

    def _result_view(self, state: SessionState, key: str) -> FlowView:
        result = state.results[key]
        if result.chunks and len(result.chunks) > 1:
            return self._output_chunk_view(key, result)
        return FlowView(
            state=FlowState.SHOWING_RESULT,
            text=result.output,
            menu=menus.output_actions_menu(key),
            pattern=key
        )

    def _output_chunk_view(self, key: str, result: PatternResult) -> FlowView:
        cursor = result.cursor or 0
        total = len(result.chunks)
        return FlowView(
            state=FlowState.SHOWING_OUTPUT_CHUNK,
            text=f"<b>{html.escape(key)}</b> (part {cursor + 1}/{total})\n\n{result.chunks[cursor]}",
            menu=menus.output_chunk_menu(key, cursor, total),
            cursor=cursor,
            pattern=key
        )

    def _input_chunk_view(self, chunks: List[str], cursor: int) -> FlowView:
        return FlowView(
            state=FlowState.SHOWING_INPUT_CHUNK,
            text=f"<b>Input chunk {cursor + 1}/{len(chunks)}</b>\n\n{html.escape(chunks[cursor])}",
            menu=menus.input_chunk_menu(cursor, len(chunks)),
            cursor=cursor
        )

    def _batch_summary_view(self, state: SessionState, key: str) -> FlowView:
        result = state.results[key]
        preview = result.output
        if len(preview) > PREVIEW_LENGTH:
            preview = preview[:PREVIEW_LENGTH] + "..."
        return FlowView(
            state=FlowState.SHOWING_RESULT,
            text=(
                f"✅ <b>{html.escape(result.pattern_name or key)}</b> applied to all chunks: "
                f"{result.processed}/{result.total} processed\n\n{preview}"
            ),
            menu=menus.batch_complete_menu(key, chunked=bool(result.chunks) and len(result.chunks) > 1),
            pattern=key
        )


# Global controller instance
_pattern_flow: Optional[PatternFlowController] = None


def get_pattern_flow() -> Optional[PatternFlowController]:
    """Get the global pattern flow controller (None until initialized)."""
    return _pattern_flow


def init_pattern_flow() -> PatternFlowController:
    """
    Initialize the global pattern flow controller from the global
    catalog, session store, guard and exporter.

    Suggestion is only wired in when the catalog loaded.
    """
    global _pattern_flow

    catalog = get_pattern_catalog()
    executor = PatternExecutor(catalog)
    _pattern_flow = PatternFlowController(
        catalog=catalog,
        executor=executor,
        batch=BatchProcessor(executor),
        sessions=PatternSessions(get_session_store()),
        guard=get_operation_guard(),
        suggester=PatternSuggester(catalog, executor) if catalog.is_loaded() else None,
        exporter=get_file_exporter()
    )
    return _pattern_flow
