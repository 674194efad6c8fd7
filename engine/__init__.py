"""
Pattern Relay - Engine Module
Chunking, execution, recombination, batching, session state and navigation.
"""

from engine.chunker import split, split_for_display, strip_continuation_markers, find_boundary
from engine.combiner import combine
from engine.session import (
    SessionStore, ChunkSet, PatternResult, Selection, SessionState,
    PatternSessions, get_session_store
)
from engine.navigation import Direction, move, navigate_input, navigate_output
from engine.executor import PatternExecutor
from engine.batch import BatchProcessor, BatchOutcome, ChunkOutcome


__all__ = [
    # Chunker
    'split',
    'split_for_display',
    'strip_continuation_markers',
    'find_boundary',
    # Combiner
    'combine',
    # Session state
    'SessionStore',
    'ChunkSet',
    'PatternResult',
    'Selection',
    'SessionState',
    'PatternSessions',
    'get_session_store',
    # Navigation
    'Direction',
    'move',
    'navigate_input',
    'navigate_output',
    # Execution
    'PatternExecutor',
    'BatchProcessor',
    'BatchOutcome',
    'ChunkOutcome',
]
