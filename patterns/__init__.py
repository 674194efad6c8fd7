"""
Pattern Relay - Patterns Module
Pattern catalog and suggestion.
"""

from patterns.catalog import (
    Pattern, PatternCategory, PatternCatalog,
    get_pattern_catalog, init_pattern_catalog
)
from patterns.suggester import PatternSuggester, Suggestion, InteractionType


__all__ = [
    # Catalog
    'Pattern',
    'PatternCategory',
    'PatternCatalog',
    'get_pattern_catalog',
    'init_pattern_catalog',
    # Suggestion
    'PatternSuggester',
    'Suggestion',
    'InteractionType',
]
