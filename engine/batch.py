"""
Pattern Relay - Batch Processor
Applies one pattern to a whole chunk set: one combined call first,
falling back to per-chunk calls with inline placeholders for failures.
"""

import time
from dataclasses import dataclass, field
from typing import Optional, List, Callable

from core.errors import PatternRelayError, PatternNotFoundError, describe_failure, classify_failure
from core.logger import log_info, log_warning, log_success
from engine import chunker
from engine.combiner import combine
from engine.executor import PatternExecutor
from engine.session import PatternResult, SessionState

MODE_COMBINED = "combined"
MODE_EACH = "batch"


def chunk_placeholder(index: int, error: Exception) -> str:
    """Inline stand-in for a chunk that could not be processed."""
    return f"[Error processing chunk {index + 1}: {describe_failure(error)}]"


@dataclass
class ChunkOutcome:
    """Result of processing one chunk."""
    index: int
    result: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BatchOutcome:
    """Result of processing a whole chunk set."""
    key: str
    pattern_name: str
    mode: str
    output: str
    outcomes: List[ChunkOutcome] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def results(self) -> List[str]:
        return [o.result if o.ok else o.error for o in self.outcomes]

    def summary(self) -> str:
        return f"{self.succeeded}/{self.total} processed"

    def to_result(self, chunks: Optional[List[str]] = None) -> PatternResult:
        """Convert to a storable batch PatternResult."""
        return PatternResult(
            output=self.output,
            timestamp=self.timestamp,
            chunks=chunks,
            cursor=0 if chunks else None,
            batch_results=[self.output] if self.mode == MODE_COMBINED else self.results,
            pattern_name=self.pattern_name,
            is_batch=True,
            processed=self.succeeded,
            total=self.total
        )


def batch_key(pattern_name: str, mode: str, timestamp: float) -> str:
    """Synthesized key that never collides with a single-shot result."""
    return f"{pattern_name}_{mode}_{int(timestamp * 1000)}"


def record_outcome(state: SessionState, outcome: BatchOutcome) -> PatternResult:
    """Store a batch outcome in session state under its batch key."""
    display = chunker.split_for_display(outcome.output)
    result = outcome.to_result(display if len(display) > 1 else None)
    state.store_result(outcome.key, result)
    return result


class BatchProcessor:
    """Orchestrates applying one pattern to every chunk in a set."""

    def __init__(
        self,
        executor: PatternExecutor,
        delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the batch processor.

        Args:
            executor: Pattern executor
            delay: Seconds between sequential per-chunk calls
            sleep: Sleep function (injectable for tests)
            clock: Wall clock used for batch keys
        """
        if delay is None:
            import config
            delay = getattr(config, 'BATCH_CHUNK_DELAY', 0.5)
        self.executor = executor
        self.delay = delay
        self.sleep = sleep
        self.clock = clock

    def _combined_input(self, chunks: List[str]) -> str:
        sections = chunker.strip_continuation_markers(chunks)
        return "\n\n".join(f"# Section {i}\n\n{section}" for i, section in enumerate(sections, start=1))

    def process_all(
        self,
        chunks: List[str],
        pattern_name: str,
        state: Optional[SessionState] = None
    ) -> BatchOutcome:
        """
        Apply a pattern to all chunks.

        Args:
            chunks: Ordered chunk texts
            pattern_name: Pattern to apply
            state: If given, the outcome is stored in it under the batch key

        Returns:
            BatchOutcome with per-chunk results and a success count

        Raises:
            PatternNotFoundError: If the pattern does not exist
        """
        pattern, _ = self.executor.catalog.resolve(pattern_name)

        try:
            output = self.executor.apply(pattern.name, self._combined_input(chunks))
        except PatternRelayError as e:
            if isinstance(e, PatternNotFoundError):
                raise
            log_warning(
                f"Combined batch call for {pattern.name} failed ({classify_failure(e).value}), "
                "processing chunks individually"
            )
            outcome = self.process_each(chunks, pattern.name)
        else:
            timestamp = self.clock()
            # One output covers every chunk
            outcome = BatchOutcome(
                key=batch_key(pattern.name, MODE_COMBINED, timestamp),
                pattern_name=pattern.name,
                mode=MODE_COMBINED,
                output=output,
                outcomes=[ChunkOutcome(index=i, result=output) for i in range(len(chunks))],
                timestamp=timestamp
            )

        if state is not None:
            record_outcome(state, outcome)

        log_success(f"Batch {outcome.key}: {outcome.summary()}")
        return outcome

    def process_each(self, chunks: List[str], pattern_name: str) -> BatchOutcome:
        """
        Apply a pattern to each chunk independently.

        Each chunk gets one retry; a chunk that still fails becomes an
        inline placeholder and the batch continues.
        """
        pattern, _ = self.executor.catalog.resolve(pattern_name)
        outcomes: List[ChunkOutcome] = []

        for index, chunk in enumerate(chunks):
            if index > 0 and self.delay > 0:
                self.sleep(self.delay)

            log_info(f"Processing chunk {index + 1}/{len(chunks)} with {pattern.name}")
            try:
                result = self.executor.apply_with_chunk_retry(pattern.name, chunk)
                outcomes.append(ChunkOutcome(index=index, result=result))
            except PatternRelayError as e:
                log_warning(f"Chunk {index + 1}/{len(chunks)} failed: {e}")
                outcomes.append(ChunkOutcome(index=index, error=chunk_placeholder(index, e)))

        timestamp = self.clock()
        texts = [o.result if o.ok else o.error for o in outcomes]
        return BatchOutcome(
            key=batch_key(pattern.name, MODE_EACH, timestamp),
            pattern_name=pattern.name,
            mode=MODE_EACH,
            output=combine(pattern.category, texts),
            outcomes=outcomes,
            timestamp=timestamp
        )
