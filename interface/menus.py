"""
Pattern Relay - Menus
Transport-agnostic button layouts for the pattern flow.

Every button carries an action token of the form pattern_<action>[:<param>...].
Adapters render a Menu as an inline keyboard (Telegram) or a numbered
list (console).
"""

from dataclasses import dataclass, field
from typing import Optional, List

from patterns.catalog import PatternCatalog, PatternCategory

TOKEN_PREFIX = "pattern_"
NOOP = "pattern_noop"
SEPARATOR = "━━━━━━━━━━━━━━━"

COMMON_PATTERNS = [
    ("📝 Summarize", "summarize"),
    ("🔍 Extract Insights", "extract_wisdom"),
    ("✍️ Improve Writing", "improve_writing"),
    ("📚 Create Essay", "write_essay"),
]

BATCH_PATTERNS = [
    ("📝", "summarize"),
    ("🔍", "extract_wisdom"),
    ("✍️", "improve_writing"),
]

MAX_ALTERNATIVES = 4


def token(action: str, *params) -> str:
    """Build an action token."""
    return ":".join([f"{TOKEN_PREFIX}{action}"] + [str(p) for p in params])


@dataclass
class Button:
    text: str
    action: str

    @property
    def is_noop(self) -> bool:
        return self.action == NOOP


@dataclass
class Menu:
    """Rows of buttons."""
    rows: List[List[Button]] = field(default_factory=list)

    def add_row(self, *buttons: Button) -> "Menu":
        if buttons:
            self.rows.append(list(buttons))
        return self

    def buttons(self) -> List[Button]:
        """Actionable buttons in display order."""
        return [b for row in self.rows for b in row if not b.is_noop]


def _pairs(buttons: List[Button]) -> List[List[Button]]:
    return [buttons[i:i + 2] for i in range(0, len(buttons), 2)]


def _done() -> Button:
    return Button("✅ Done", token("skip"))


def _cancel() -> Button:
    return Button("❌ Cancel", token("skip"))


def _common_buttons(catalog: PatternCatalog) -> List[Button]:
    return [Button(text, token("use", name)) for text, name in COMMON_PATTERNS if catalog.has(name)]


def suggestion_menu(
    catalog: PatternCatalog,
    pattern: Optional[str] = None,
    alternatives: Optional[List[str]] = None
) -> Menu:
    """Pattern selection menu shown for new input."""
    menu = Menu()
    if pattern:
        menu.add_row(Button(f"✨ Use {pattern}", token("use", pattern)))

    alt_buttons = [Button(f"🔄 {alt}", token("use", alt)) for alt in (alternatives or [])[:MAX_ALTERNATIVES]]
    for row in _pairs(alt_buttons):
        menu.add_row(*row)

    if pattern or alt_buttons:
        menu.add_row(Button(SEPARATOR, NOOP))

    for row in _pairs(_common_buttons(catalog)):
        menu.add_row(*row)

    more_row = [Button("📋 More Patterns", token("more"))]
    if pattern:
        more_row.append(Button("🧩 Advanced", token("advanced")))
    menu.add_row(*more_row)
    menu.add_row(_cancel())
    return menu


def categories_menu(catalog: PatternCatalog) -> Menu:
    menu = Menu()
    menu.add_row(Button("📋 Pattern Categories", NOOP))
    category_buttons = [
        Button(f"{c.emoji} {c.display_name}", token("category", c.value))
        for c in catalog.categories()
    ]
    for row in _pairs(category_buttons):
        menu.add_row(*row)
    menu.add_row(Button("⬅️ Back", token("back_to_menu")), _cancel())
    return menu


def category_patterns_menu(
    catalog: PatternCatalog,
    category: PatternCategory,
    page: int = 0,
    per_page: int = 8
) -> Menu:
    """One page of a category's patterns."""
    patterns = catalog.by_category(category)
    pages = max(1, (len(patterns) + per_page - 1) // per_page)
    page = min(max(page, 0), pages - 1)
    visible = patterns[page * per_page:(page + 1) * per_page]

    menu = Menu()
    for row in _pairs([Button(p.name, token("use", p.name)) for p in visible]):
        menu.add_row(*row)

    nav = [Button("« Back", token("categories"))]
    if page > 0:
        nav.append(Button("◀️", token("prev_page", category.value, page)))
    if page < pages - 1:
        nav.append(Button("▶️", token("next_page", category.value, page)))
    menu.add_row(*nav)
    menu.add_row(_cancel())
    return menu


def input_chunk_menu(cursor: int, total: int) -> Menu:
    """Navigation over the chunked original input."""
    menu = Menu()
    if cursor > 0:
        start = [Button("⏮️ First", token("input_chunk", "first")), Button("◀️ Prev", token("input_chunk", "prev"))]
    else:
        start = [Button("⏮️", NOOP)]
    if cursor < total - 1:
        end = [Button("▶️ Next", token("input_chunk", "next")), Button("⏭️ Last", token("input_chunk", "last"))]
    else:
        end = [Button("⏭️", NOOP)]
    menu.add_row(*start, Button(f"{cursor + 1}/{total}", NOOP), *end)

    menu.add_row(Button("✨ Process This Chunk", token("select_chunk", cursor)))
    menu.add_row(Button("🔄 Process All Chunks", token("select_all_chunks")))
    menu.add_row(Button("🔙 Back", token("back_to_menu")), _done())
    return menu


def output_chunk_menu(pattern: str, cursor: int, total: int) -> Menu:
    """Navigation over a chunked pattern result."""
    menu = Menu()
    nav = []
    if cursor > 0:
        nav.append(Button("⬅️ Previous", token("chunk", pattern, "prev")))
    nav.append(Button(f"{cursor + 1}/{total}", NOOP))
    if cursor < total - 1:
        nav.append(Button("Next ➡️", token("chunk", pattern, "next")))
    menu.add_row(*nav)

    menu.add_row(Button("🔍 Apply Pattern to This Chunk", token("apply_to_chunk", pattern, cursor)))
    menu.add_row(Button("📤 Download", token("download", pattern)))
    menu.add_row(Button("📋 Apply Another Pattern", token("back_to_menu")), _done())
    return menu


def output_actions_menu(pattern: str) -> Menu:
    """Actions after a single-message result."""
    menu = Menu()
    menu.add_row(Button(f"✅ Processed with {pattern}", NOOP))
    menu.add_row(
        Button("📋 Apply Another Pattern", token("back_to_menu")),
        Button("💾 Save Result", token("download", pattern))
    )
    menu.add_row(
        Button("🔄 Use Original Input", token("use_full_input")),
        Button("🧩 Advanced Options", token("advanced"))
    )
    menu.add_row(Button("📋 More Patterns", token("more")), _done())
    return menu


def advanced_menu(catalog: PatternCatalog, has_outputs: bool) -> Menu:
    menu = Menu()
    menu.add_row(
        Button("🔍 Browse Input Chunks", token("browse_input")),
        Button("🔄 Use Original Input", token("use_full_input"))
    )
    if has_outputs:
        menu.add_row(Button("📝 Choose from Processed Results", token("choose_output")))
    menu.add_row(*_common_buttons(catalog)[:2])
    menu.add_row(Button("📋 More Patterns", token("more")), Button("📋 Back to Patterns", token("back_to_menu")))
    menu.add_row(Button("⏭️ Process Normally", token("skip")))
    return menu


def processed_outputs_menu(names: List[str]) -> Menu:
    menu = Menu()
    for row in _pairs([Button(name, token("select_output", name)) for name in names]):
        menu.add_row(*row)
    menu.add_row(Button("🔙 Back", token("advanced")), Button("📋 Back to Patterns", token("back_to_menu")))
    menu.add_row(_done())
    return menu


def batch_processing_menu(catalog: PatternCatalog) -> Menu:
    """Patterns offered for processing every input chunk."""
    menu = Menu()
    for emoji, name in BATCH_PATTERNS:
        if catalog.has(name):
            menu.add_row(Button(f"{emoji} {name} all chunks", token("process_all", name)))
    menu.add_row(Button("🔙 Back", token("browse_input")), _done())
    return menu


def batch_complete_menu(key: str, chunked: bool = False) -> Menu:
    """Actions after a batch; chunked output gets a reader over its display parts."""
    menu = Menu()
    menu.add_row(Button("🔍 View Results", token("view_batch", key, 0)))
    if chunked:
        menu.add_row(Button("📖 Read Full Output", token("chunk", key, "first")))
    menu.add_row(Button("📤 Download", token("download", key)))
    menu.add_row(Button("🔙 Back", token("select_all_chunks")), Button("📋 Back to Patterns", token("back_to_menu")))
    menu.add_row(_done())
    return menu


def batch_result_menu(key: str, index: int, total: int) -> Menu:
    """Navigation over per-chunk results of a batch."""
    menu = Menu()
    nav = []
    if index > 0:
        nav.append(Button("⬅️ Previous", token("view_batch", key, index - 1)))
    nav.append(Button(f"{index + 1}/{total}", NOOP))
    if index < total - 1:
        nav.append(Button("Next ➡️", token("view_batch", key, index + 1)))
    menu.add_row(*nav)
    menu.add_row(
        Button("📖 Read Full Output", token("chunk", key, "first")),
        Button("📤 Download", token("download", key))
    )
    menu.add_row(Button("🔙 Back to Summary", token("view_batch_summary", key)), _done())
    return menu


def start_over_menu() -> Menu:
    return Menu().add_row(_cancel())
