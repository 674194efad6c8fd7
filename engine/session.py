"""
Pattern Relay - Session State
Per-user TTL key-value store and the pattern session records kept in it.

The store is the only place session state lives. Components read a
copy, mutate it, and write it back with set(); every write refreshes
the TTL, and an expired entry simply reads as absent.
"""

import copy
import time
import uuid
from dataclasses import dataclass, field
from threading import Lock
from typing import Optional, List, Dict, Any, Callable, Tuple

from core.errors import SessionStateMissing
from core.logger import log_info

# (purpose, user_id)
StoreKey = Tuple[str, str]

PATTERN_STATE_PURPOSE = "pattern_data"


class SessionStore:
    """
    In-memory TTL key-value store.

    Values are deep-copied on set and get, so callers never share
    mutable state with the store or with each other.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the store.

        Args:
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self._clock = clock
        self._entries: Dict[StoreKey, Tuple[Any, float]] = {}
        self._lock = Lock()

    def get(self, key: StoreKey) -> Optional[Any]:
        """
        Read a value.

        Returns:
            A copy of the value, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: StoreKey, value: Any, ttl_seconds: float) -> None:
        """Write a value, replacing any previous one and refreshing its TTL."""
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), self._clock() + ttl_seconds)

    def delete(self, key: StoreKey) -> None:
        """Remove a value; absent keys are ignored."""
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """
        Drop expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class ChunkSet:
    """Ordered non-empty chunks with a cursor."""
    chunks: List[str]
    cursor: int = 0
    last_accessed_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.chunks:
            raise ValueError("ChunkSet requires at least one chunk")
        if not 0 <= self.cursor < len(self.chunks):
            raise ValueError(f"Cursor {self.cursor} out of range for {len(self.chunks)} chunks")

    @property
    def current(self) -> str:
        return self.chunks[self.cursor]

    def __len__(self) -> int:
        return len(self.chunks)


@dataclass
class PatternResult:
    """Output of one pattern run, with optional display chunking."""
    output: str
    timestamp: float = field(default_factory=time.time)
    chunks: Optional[List[str]] = None
    cursor: Optional[int] = None
    batch_results: Optional[List[str]] = None
    source_name: Optional[str] = None
    source_chunk_index: Optional[int] = None
    pattern_name: Optional[str] = None
    is_batch: bool = False
    processed: Optional[int] = None  # Batch only: chunks processed successfully
    total: Optional[int] = None

    @property
    def current_chunk(self) -> str:
        if not self.chunks:
            return self.output
        return self.chunks[self.cursor or 0]


@dataclass
class Selection:
    """Which content the next pattern run applies to."""
    use_processed_output: Optional[str] = None
    selected_output_chunk: Optional[int] = None  # Only with use_processed_output
    selected_input_chunk: Optional[int] = None
    last_processed_pattern: Optional[str] = None


@dataclass
class SessionState:
    """Everything remembered about one user's pattern session."""
    user_id: str
    original_input: str
    chunk_set: Optional[ChunkSet] = None
    results: Dict[str, PatternResult] = field(default_factory=dict)
    selection: Selection = field(default_factory=Selection)
    suggested_pattern: Optional[str] = None
    alternative_patterns: List[str] = field(default_factory=list)
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)  # Changes whenever new input replaces the session

    def store_result(self, key: str, result: PatternResult) -> None:
        """Store a result, overwriting any previous result under the same key."""
        self.results[key] = result
        if not result.is_batch:
            self.selection.last_processed_pattern = key

    def select_output(self, key: str, chunk_index: Optional[int] = None) -> None:
        """
        Use a stored result, or one display chunk of it, as the input
        for the next run.

        Raises:
            KeyError: If no result is stored under key
            IndexError: If chunk_index is outside the result's chunks
        """
        if key not in self.results:
            raise KeyError(f"No processed output named {key}")
        if chunk_index is not None:
            chunks = self.results[key].chunks or []
            if not 0 <= chunk_index < len(chunks):
                raise IndexError(f"Output chunk {chunk_index} of {key} does not exist")
        self.selection.use_processed_output = key
        self.selection.selected_output_chunk = chunk_index
        self.selection.selected_input_chunk = None

    def select_input_chunk(self, index: int) -> None:
        """Use one input chunk as the input for the next run."""
        if self.chunk_set is None or not 0 <= index < len(self.chunk_set):
            raise IndexError(f"Input chunk {index} does not exist")
        self.chunk_set.cursor = index
        self.selection.selected_input_chunk = index
        self.selection.use_processed_output = None
        self.selection.selected_output_chunk = None

    def use_full_input(self) -> None:
        """Go back to applying patterns to the original input."""
        self.selection.use_processed_output = None
        self.selection.selected_output_chunk = None
        self.selection.selected_input_chunk = None

    def selected_content(self) -> Tuple[str, str]:
        """
        Resolve the current selection to text.

        Returns:
            Tuple of (text, label describing the source)
        """
        selection = self.selection
        if selection.use_processed_output and selection.use_processed_output in self.results:
            name = selection.use_processed_output
            result = self.results[name]
            index = selection.selected_output_chunk
            if index is not None and result.chunks and 0 <= index < len(result.chunks):
                return result.chunks[index], f"chunk {index + 1}/{len(result.chunks)} of {name}"
            return result.output, f"output of {name}"
        if selection.selected_input_chunk is not None and self.chunk_set is not None:
            index = selection.selected_input_chunk
            if 0 <= index < len(self.chunk_set):
                return self.chunk_set.chunks[index], f"input chunk {index + 1}/{len(self.chunk_set)}"
        return self.original_input, "original input"

    def single_results(self) -> List[str]:
        """Names of non-batch results, oldest first."""
        return [
            name for name, result in sorted(self.results.items(), key=lambda item: item[1].timestamp)
            if not result.is_batch
        ]


class PatternSessions:
    """
    Typed access to pattern session state in a SessionStore.

    Absence is reported as SessionStateMissing so callers can offer to
    start over instead of treating it as a failure.
    """

    def __init__(self, store: SessionStore, ttl_seconds: Optional[float] = None):
        if ttl_seconds is None:
            import config
            ttl_seconds = getattr(config, 'PATTERN_STATE_TTL', 7200)
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(user_id: str) -> StoreKey:
        return (PATTERN_STATE_PURPOSE, str(user_id))

    def find(self, user_id: str) -> Optional[SessionState]:
        return self.store.get(self.key(user_id))

    def load(self, user_id: str) -> SessionState:
        """
        Load a user's state.

        Raises:
            SessionStateMissing: If the state expired or was never created
        """
        state = self.find(user_id)
        if state is None:
            raise SessionStateMissing(str(user_id))
        return state

    def start(self, user_id: str, original_input: str) -> SessionState:
        """Create a fresh state for new input, replacing any previous one."""
        state = SessionState(user_id=str(user_id), original_input=original_input)
        self.save(state)
        log_info(f"Started pattern session for {user_id} ({len(original_input)} chars)")
        return state

    def load_or_create(self, user_id: str, original_input: str) -> SessionState:
        """Load existing state or lazily create it around the given input."""
        state = self.find(user_id)
        if state is None:
            state = self.start(user_id, original_input)
        return state

    def save(self, state: SessionState) -> None:
        """Write state back, refreshing its TTL."""
        self.store.set(self.key(state.user_id), state, self.ttl_seconds)

    def clear(self, user_id: str) -> None:
        self.store.delete(self.key(user_id))


# Global store instance
_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get the global session store instance."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store
