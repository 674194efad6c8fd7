"""
Pattern Relay - Result Combiner
Merges per-chunk pattern results into one, by pattern category.
"""

from typing import List

from patterns.catalog import PatternCategory

SECTION_SEPARATOR = "\n\n---\n\n"
SYNTHESIS_TEXT = (
    "The above sections analyze different parts of the content. "
    "The complete analysis provides a comprehensive understanding of the material."
)

# Above this many parts, summaries become a key-point digest
SUMMARY_DIGEST_THRESHOLD = 3


def _first_paragraph(text: str) -> str:
    return text.split("\n\n", 1)[0]


def combine_summaries(summaries: List[str]) -> str:
    if len(summaries) <= SUMMARY_DIGEST_THRESHOLD:
        return SECTION_SEPARATOR.join(summaries)

    key_points = "\n\n".join(
        f"## Key Points from Part {i}:\n\n{_first_paragraph(summary)}\n"
        for i, summary in enumerate(summaries, start=1)
    )
    return "# Combined Summary\n\n" + key_points


def combine_extractions(extractions: List[str]) -> str:
    return SECTION_SEPARATOR.join(
        f"# Section {i} Insights\n\n{extraction}"
        for i, extraction in enumerate(extractions, start=1)
    )


def combine_analyses(analyses: List[str]) -> str:
    sections = SECTION_SEPARATOR.join(
        f"## Section {i} Analysis\n\n{analysis}"
        for i, analysis in enumerate(analyses, start=1)
    )
    return (
        "# Combined Analysis\n\n"
        + sections
        + SECTION_SEPARATOR
        + "## Overall Synthesis\n\n"
        + SYNTHESIS_TEXT
    )


def combine_parts(parts: List[str]) -> str:
    return SECTION_SEPARATOR.join(
        f"## Part {i}\n\n{part}"
        for i, part in enumerate(parts, start=1)
    )


_STRATEGIES = {
    PatternCategory.SUMMARIZATION: combine_summaries,
    PatternCategory.EXTRACTION: combine_extractions,
    PatternCategory.ANALYSIS: combine_analyses,
}


def combine(category: PatternCategory, results: List[str]) -> str:
    """
    Merge partial results into one.

    Args:
        category: Category of the pattern that produced the results
        results: Ordered per-chunk results

    Returns:
        Combined text; a single result is returned unchanged
    """
    if not results:
        return ""
    if len(results) == 1:
        return results[0]
    strategy = _STRATEGIES.get(category, combine_parts)
    return strategy(list(results))
