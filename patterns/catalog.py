"""
Pattern Relay - Pattern Catalog
Loads named prompt templates from disk and resolves names to patterns.

Layout on disk:
    <patterns_dir>/<name>/system.md   (required)
    <patterns_dir>/<name>/user.md     (optional seed message)
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Set, Tuple

from core.errors import PatternCatalogError, PatternNotFoundError
from core.logger import log_info, log_warning, log_success


class PatternCategory(Enum):
    """Closed set of pattern categories, resolved once at load time."""
    ANALYSIS = "analysis"
    SUMMARIZATION = "summarization"
    EXTRACTION = "extraction"
    CREATION = "creation"
    EXPLANATION = "explanation"
    GENERAL = "general"

    @classmethod
    def from_pattern_name(cls, name: str) -> "PatternCategory":
        """Derive the category from the name's prefix token."""
        return _PREFIX_CATEGORIES.get(name.split("_", 1)[0].lower(), cls.GENERAL)

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def emoji(self) -> str:
        return _CATEGORY_EMOJIS.get(self, "📋")


_PREFIX_CATEGORIES = {
    "analyze": PatternCategory.ANALYSIS,
    "create": PatternCategory.CREATION,
    "extract": PatternCategory.EXTRACTION,
    "summarize": PatternCategory.SUMMARIZATION,
    "explain": PatternCategory.EXPLANATION,
}

_CATEGORY_EMOJIS = {
    PatternCategory.ANALYSIS: "🔍",
    PatternCategory.SUMMARIZATION: "📝",
    PatternCategory.EXTRACTION: "🔎",
    PatternCategory.CREATION: "✨",
    PatternCategory.EXPLANATION: "📚",
    PatternCategory.GENERAL: "🧩",
}


@dataclass(frozen=True)
class Pattern:
    """A named prompt template."""
    name: str
    category: PatternCategory
    system_prompt: str
    description: str
    user_prompt: Optional[str] = None


def extract_description(system_content: str) -> str:
    """
    Pull a one-line description out of a system prompt.

    Uses the first line unless it is overly long or an all-caps header,
    in which case a "description:/purpose:/about:" line is preferred.
    """
    lines = system_content.strip().split("\n")
    description = re.sub(r"^#+\s*", "", lines[0]).strip() if lines else ""

    if len(description) > 100 or re.fullmatch(r"[A-Z\s]+", description):
        match = re.search(r"(?:description|purpose|about):\s*([^\n]+)", system_content, re.IGNORECASE)
        if match:
            description = match.group(1).strip()

    return description


class PatternCatalog:
    """
    In-memory catalog of patterns keyed by name.

    Loaded once from a directory. A failed load leaves the catalog
    empty and marked unloaded, which disables suggestion downstream.
    """

    def __init__(self, patterns: Optional[Dict[str, Pattern]] = None):
        self._patterns: Dict[str, Pattern] = dict(patterns or {})
        self._loaded = bool(self._patterns)

    @classmethod
    def from_patterns(cls, patterns: List[Pattern]) -> "PatternCatalog":
        """Build a catalog from already-constructed patterns."""
        return cls({p.name: p for p in patterns})

    def load(self, patterns_dir: Path) -> int:
        """
        Load every pattern directory under patterns_dir.

        Args:
            patterns_dir: Directory containing one subdirectory per pattern

        Returns:
            Number of patterns loaded

        Raises:
            PatternCatalogError: If the directory is missing or holds no patterns
        """
        patterns_dir = Path(patterns_dir)
        if not patterns_dir.is_dir():
            raise PatternCatalogError(f"Pattern directory not found: {patterns_dir}")

        loaded: Dict[str, Pattern] = {}
        for pattern_path in sorted(patterns_dir.iterdir()):
            if not pattern_path.is_dir():
                continue

            system_path = pattern_path / "system.md"
            if not system_path.is_file():
                log_warning(f"Skipping pattern {pattern_path.name}: no system.md")
                continue

            try:
                system_content = system_path.read_text(encoding="utf-8")
                user_path = pattern_path / "user.md"
                user_content = user_path.read_text(encoding="utf-8") if user_path.is_file() else None
            except (OSError, UnicodeDecodeError) as e:
                log_warning(f"Error loading pattern {pattern_path.name}: {e}")
                continue

            name = pattern_path.name
            loaded[name] = Pattern(
                name=name,
                category=PatternCategory.from_pattern_name(name),
                system_prompt=system_content,
                description=extract_description(system_content),
                user_prompt=user_content or None
            )

        if not loaded:
            raise PatternCatalogError(f"No patterns found in {patterns_dir}")

        self._patterns = loaded
        self._loaded = True
        log_success(f"Loaded {len(loaded)} patterns in {len(self.categories())} categories")
        return len(loaded)

    def is_loaded(self) -> bool:
        """Check if the catalog holds any patterns."""
        return self._loaded

    def get(self, name: str) -> Optional[Pattern]:
        """Get a pattern by exact name."""
        return self._patterns.get(name)

    def has(self, name: str) -> bool:
        return name in self._patterns

    def names(self) -> List[str]:
        """All pattern names, sorted."""
        return sorted(self._patterns)

    def categories(self) -> List[PatternCategory]:
        """Categories present in the catalog, in enum order."""
        present: Set[PatternCategory] = {p.category for p in self._patterns.values()}
        return [c for c in PatternCategory if c in present]

    def by_category(self, category: PatternCategory) -> List[Pattern]:
        """Patterns in a category, sorted by name."""
        return sorted(
            (p for p in self._patterns.values() if p.category == category),
            key=lambda p: p.name
        )

    def find_similar(self, name: str) -> Optional[str]:
        """
        Find a same-family pattern by the name's prefix token.

        Returns:
            First pattern name sharing the prefix, or None
        """
        prefix = name.split("_", 1)[0]
        for candidate in self.names():
            if candidate.startswith(f"{prefix}_"):
                return candidate
        return None

    def resolve(self, name: str) -> Tuple[Pattern, bool]:
        """
        Resolve a name, falling back to a same-family pattern.

        A fallback is always logged so a different pattern never runs
        silently in place of the requested one.

        Returns:
            Tuple of (pattern, used_fallback)

        Raises:
            PatternNotFoundError: If neither the name nor a similar pattern exists
        """
        pattern = self._patterns.get(name)
        if pattern is not None:
            return pattern, False

        similar = self.find_similar(name)
        if similar is None:
            raise PatternNotFoundError(name)

        log_warning(f"Pattern '{name}' not in catalog, falling back to '{similar}'")
        return self._patterns[similar], True

    def require(self, name: str) -> Pattern:
        """Get a pattern by exact name or raise PatternNotFoundError."""
        pattern = self._patterns.get(name)
        if pattern is None:
            raise PatternNotFoundError(name)
        return pattern

    def __len__(self) -> int:
        return len(self._patterns)


# Global catalog instance
_pattern_catalog: Optional[PatternCatalog] = None


def get_pattern_catalog() -> PatternCatalog:
    """Get the global pattern catalog instance."""
    global _pattern_catalog
    if _pattern_catalog is None:
        _pattern_catalog = PatternCatalog()
    return _pattern_catalog


def init_pattern_catalog(patterns_dir: Optional[Path] = None) -> PatternCatalog:
    """
    Initialize the global catalog, loading from disk.

    A load failure is logged and leaves an empty catalog so the rest of
    the system keeps running with suggestion disabled.
    """
    global _pattern_catalog
    import config

    _pattern_catalog = PatternCatalog()
    directory = patterns_dir or config.PATTERNS_DIR
    try:
        _pattern_catalog.load(directory)
    except PatternCatalogError as e:
        log_warning(f"Pattern catalog unavailable, suggestions disabled: {e}")
    else:
        log_info(f"Pattern directory: {directory}")
    return _pattern_catalog
