"""
Pattern Relay - Pattern Executor
Runs one pattern against one piece of text through the generation backend.
"""

import time
from typing import Optional, List, Dict, Callable, TypeVar

from concurrency.retry import RetryPolicy, orchestration_policy, chunk_policy
from core.errors import BackendError
from core.formatting import strip_think_tags, clean_html_for_telegram
from core.logger import log_info, log_warning
from engine import chunker
from engine.combiner import combine
from llm.router import LLMRouter, InvokeOptions, get_llm_router
from patterns.catalog import PatternCatalog, Pattern

T = TypeVar('T')

SECTION_ERROR_PLACEHOLDER = "[Error processing this section]"


def build_messages(pattern: Pattern, text: str) -> List[Dict[str, str]]:
    """Ordered messages: system prompt, optional seed prompt, then the text."""
    messages = [{"role": "system", "content": pattern.system_prompt}]
    if pattern.user_prompt:
        messages.append({"role": "user", "content": pattern.user_prompt})
    messages.append({"role": "user", "content": text})
    return messages


class PatternExecutor:
    """
    Executes patterns via the LLM router.

    apply() is a single pattern call; apply_large() splits very large
    text first and recombines. Neither retries beyond the router's own
    call policy; wrap calls in run_with_retry() for orchestration retry.
    """

    def __init__(
        self,
        catalog: PatternCatalog,
        router: Optional[LLMRouter] = None,
        options: Optional[InvokeOptions] = None,
        sleep: Callable[[float], None] = time.sleep,
        large_input_threshold: Optional[int] = None,
        chunk_max_size: Optional[int] = None
    ):
        """
        Initialize the executor.

        Args:
            catalog: Pattern catalog
            router: LLM router (global instance if None)
            options: Backend timeout/retry options (config defaults if None)
            sleep: Sleep function used between retries (injectable for tests)
            large_input_threshold: Above this length, apply_large splits
            chunk_max_size: Slice size used by apply_large
        """
        import config

        self.catalog = catalog
        self._router = router
        self.options = options or InvokeOptions.from_config()
        self.sleep = sleep
        self.large_input_threshold = large_input_threshold or getattr(config, 'LARGE_INPUT_THRESHOLD', 100_000)
        self.chunk_max_size = chunk_max_size or getattr(config, 'CHUNK_MAX_SIZE', chunker.DEFAULT_MAX_SIZE)
        self.orchestration_policy: RetryPolicy = orchestration_policy()
        self.chunk_policy: RetryPolicy = chunk_policy()

    @property
    def router(self) -> LLMRouter:
        if self._router is None:
            self._router = get_llm_router()
        return self._router

    def apply(self, pattern_name: str, text: str) -> str:
        """
        Apply a pattern to text with a single backend invocation.

        Args:
            pattern_name: Name of the pattern (same-family fallback is logged)
            text: Content to transform

        Returns:
            Cleaned pattern output

        Raises:
            PatternNotFoundError: If no pattern or fallback exists
            BackendError: Typed transient or fatal backend failure
        """
        pattern, _ = self.catalog.resolve(pattern_name)

        reply = self.router.invoke(build_messages(pattern, text), self.options)
        log_info(
            f"Pattern {pattern.name} applied via {reply.tier.value} tier "
            f"({len(text)} chars in, {len(reply.content)} out)",
            prefix="🧩"
        )
        return clean_html_for_telegram(strip_think_tags(reply.content))

    def apply_with_chunk_retry(self, pattern_name: str, text: str) -> str:
        """Apply under the per-chunk policy (one retry)."""
        return self.chunk_policy.run(lambda attempt: self.apply(pattern_name, text), sleep=self.sleep)

    def apply_large(self, pattern_name: str, text: str) -> str:
        """
        Apply a pattern to text of any size.

        Text above the large-input threshold is split into slices; each
        slice is applied with its own retry, and a slice that still fails
        becomes a placeholder instead of aborting the run.

        Returns:
            Output, combined by the pattern's category when split
        """
        if len(text) <= self.large_input_threshold:
            return self.apply(pattern_name, text)

        pattern, _ = self.catalog.resolve(pattern_name)
        slices = chunker.split(text, self.chunk_max_size)
        log_info(f"Large input ({len(text)} chars) split into {len(slices)} slices for {pattern.name}")

        results = []
        for index, piece in enumerate(slices, start=1):
            try:
                results.append(self.apply_with_chunk_retry(pattern.name, piece))
            except BackendError as e:
                log_warning(f"Slice {index}/{len(slices)} failed ({e.reason.value}), using placeholder")
                results.append(SECTION_ERROR_PLACEHOLDER)

        return combine(pattern.category, results)

    def run_with_retry(self, operation: Callable[[], T]) -> T:
        """
        Run an operation under the orchestration retry policy.

        Only transient failures (reset, abort, timeout, rate limit) are
        retried; anything else propagates on the first failure.
        """
        return self.orchestration_policy.run(lambda attempt: operation(), sleep=self.sleep)
