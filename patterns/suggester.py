"""
Pattern Relay - Pattern Suggester
Picks a pattern for a piece of input.

Explicit requests ("summarize this: ...", "use extract_wisdom") run
immediately. Everything else goes through two backend calls: one that
characterizes the input and one that reasons about which pattern fits.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, TYPE_CHECKING

from core.errors import PatternRelayError
from core.formatting import strip_think_tags
from core.logger import log_info, log_warning, log_error
from llm.router import LLMRouter, InvokeOptions, get_llm_router
from patterns.catalog import PatternCatalog, PatternCategory

if TYPE_CHECKING:
    from engine.executor import PatternExecutor


class InteractionType(Enum):
    """Coarse type of a user message, passed to the reasoning call."""
    GREETING = "greeting"
    COMMAND = "command"
    FACTUAL_QUESTION = "factual_question"
    EXPLANATORY_QUESTION = "explanatory_question"
    GENERAL_QUESTION = "general_question"
    STATEMENT = "statement"
    CONTINUATION = "continuation"
    SHORT_INPUT = "short_input"
    GENERAL_INPUT = "general_input"

    @classmethod
    def classify(cls, text: str) -> "InteractionType":
        """Keyword heuristic over the lowercased message."""
        lowered = text.lower().strip()
        words = lowered.split()

        if _GREETING.match(lowered):
            return cls.GREETING
        if lowered.startswith("/"):
            return cls.COMMAND
        if (words and words[0] in _QUESTION_STARTERS) or lowered.endswith("?"):
            terms = set(re.findall(r"[a-z]+", lowered))
            if terms & {"what", "who", "where"}:
                return cls.FACTUAL_QUESTION
            if terms & {"how", "why"}:
                return cls.EXPLANATORY_QUESTION
            return cls.GENERAL_QUESTION
        if any(lowered.startswith(c) for c in _COMMAND_STARTERS):
            return cls.COMMAND
        if any(lowered.startswith(s) for s in _STATEMENT_STARTERS):
            return cls.STATEMENT
        if any(p in words for p in _CONTINUATION_WORDS):
            return cls.CONTINUATION
        if len(words) < 3:
            return cls.SHORT_INPUT
        return cls.GENERAL_INPUT


_GREETING = re.compile(r"(hello|hi|hey|good (morning|afternoon|evening))\b")
_QUESTION_STARTERS = (
    "what", "why", "how", "when", "where", "who", "which",
    "can", "could", "would", "is", "are", "do", "does"
)
_COMMAND_STARTERS = ("please", "could you", "would you", "can you")
_STATEMENT_STARTERS = ("i think", "i believe", "in my opinion", "i feel")
_CONTINUATION_WORDS = ("and", "also", "additionally", "moreover", "furthermore", "besides")

# Phrases searched for in the first 100 characters
PHRASE_PATTERNS = [
    (("summarize", "summary", "summarization", "tldr", "summary of"), "summarize"),
    (("extract wisdom", "extract insights", "extract key points", "wisdom from"), "extract_wisdom"),
    (("extract main idea", "core message", "main point"), "extract_main_idea"),
    (("extract recommendations", "recommendations from", "what should i do"), "extract_recommendations"),
    (("analyze paper", "paper analysis", "analyze this paper", "analyze article"), "analyze_paper"),
    (("analyze code", "code analysis", "review code"), "explain_code"),
    (("improve writing", "enhance writing", "edit text", "make this better"), "improve_writing"),
    (("write essay", "create essay", "essay about"), "write_essay"),
    (("write latex", "latex format", "in latex"), "write_latex"),
    (("explain code", "code explanation", "how does this code work"), "explain_code"),
    (("explain math", "math explanation", "explain this formula"), "explain_math"),
]

INTENT_PATTERNS = [
    (re.compile(r"can you .{0,20}(summarize|summary)", re.I), "summarize"),
    (re.compile(r"please .{0,20}(summarize|summary)", re.I), "summarize"),
    (re.compile(r"i need .{0,20}(a summary|summarize)", re.I), "summarize"),
    (re.compile(r"could you .{0,20}(summarize|summary)", re.I), "summarize"),
    (re.compile(r"(extract|pull out|identify) .{0,20}(wisdom|insights|key points)", re.I), "extract_wisdom"),
    (re.compile(r"(extract|pull out|identify) .{0,20}(main idea|main point|core message)", re.I), "extract_main_idea"),
    (re.compile(r"(analyze|review|assess) .{0,20}(paper|article|document)", re.I), "analyze_paper"),
    (re.compile(r"(analyze|review|check) .{0,20}(code|program|script)", re.I), "explain_code"),
    (re.compile(r"(improve|enhance|fix|edit) .{0,20}(writing|text|document)", re.I), "improve_writing"),
    (re.compile(r"(write|create) .{0,20}(essay|paper|article)", re.I), "write_essay"),
    (re.compile(r"(explain|describe|clarify) .{0,20}(code|program|script)", re.I), "explain_code"),
    (re.compile(r"(explain|describe|clarify) .{0,20}(math|formula|equation)", re.I), "explain_math"),
]

EXPLICIT_CONFIDENCE = 0.98
SHORT_CIRCUIT_CONFIDENCE = 0.95
FALLBACK_CONFIDENCE_FACTOR = 0.8
MAX_ALTERNATIVES = 3

ANALYZE_SYSTEM_PROMPT = """Analyze the provided input and determine its characteristics.
Consider:
- Content type (text, code, documentation, question, etc.)
- Complexity (1-10 scale)
- Format and structure
- Special features or requirements
- Apparent user intent
- Topic category
- Technical depth
- Presence of special elements (code, URLs, technical terms)

Provide analysis in JSON format with detailed reasoning for each characteristic."""

REASON_SYSTEM_PROMPT = """You are an expert system for selecting the most effective processing pattern for content analysis and transformation.

Your task is to thoroughly analyze the provided input along with its detailed characteristics and then determine which pattern is most suitable. Compare at least two alternative patterns, discuss their trade-offs, and explain why the selected pattern is the most useful for the given input.

Consider the following factors:
- Input content type, format, and complexity
- User intent and needs
- Whether the user explicitly requested a specific pattern
- Interaction type ({interaction_type})
- Any special requirements (e.g., extraction, summarization, explanation, creation)
- The typical use cases of different pattern categories

Available pattern categories are:
{categories}

Respond in JSON format with the following structure:
{{
    "pattern": "selected_pattern_name",
    "confidence": number between 0 and 1,
    "reasoning": "A concise explanation comparing alternative patterns and discussing trade-offs",
    "alternativePatterns": ["pattern1", "pattern2"]
}}"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class Suggestion:
    """A suggested pattern, or an already-executed explicit request."""
    pattern: str
    description: str
    confidence: float
    reasoning: str
    category: PatternCategory
    alternative_patterns: List[str] = field(default_factory=list)
    result: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.result is not None


def heuristic_characteristics(text: str) -> Dict[str, Any]:
    """Basic input characteristics used when the analysis call fails."""
    return {
        "contentType": "text",
        "length": len(text),
        "complexity": 5,
        "hasCode": "```" in text or bool(re.search(r"[{};()]", text)),
        "hasUrls": bool(re.search(r"https?://\S+", text)),
        "hasTechnicalTerms": False,
        "isQuestion": "?" in text,
        "topicCategory": "general",
        "format": "plain",
        "intent": "unknown",
    }


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse the first {...} span of a model reply.

    Raises:
        ValueError: If there is no JSON object or it does not parse
    """
    match = _JSON_OBJECT.search(strip_think_tags(text))
    if not match:
        raise ValueError("JSON not found in response")
    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("Expected a JSON object")
    return parsed


class PatternSuggester:
    """Chooses patterns for input, executing explicit requests directly."""

    def __init__(
        self,
        catalog: PatternCatalog,
        executor: "PatternExecutor",
        router: Optional[LLMRouter] = None,
        options: Optional[InvokeOptions] = None
    ):
        self.catalog = catalog
        self.executor = executor
        self._router = router
        self.options = options or InvokeOptions.from_config()

    @property
    def router(self) -> LLMRouter:
        if self._router is None:
            self._router = get_llm_router()
        return self._router

    def detect_explicit_pattern(self, text: str) -> Optional[str]:
        """
        Find a pattern the user asked for by name or by phrase.

        Returns:
            Pattern name (possibly not in the catalog) or None
        """
        normalized = text.lower().strip()

        for name in self.catalog.names():
            if any(f"{verb} {name}" in normalized for verb in ("use", "using", "with")):
                return name
            if normalized.startswith(name):
                return name

        start = normalized[:100]
        for phrases, name in PHRASE_PATTERNS:
            if any(phrase in start for phrase in phrases):
                return name

        for regex, name in INTENT_PATTERNS:
            if regex.search(start):
                return name

        return None

    @staticmethod
    def extract_content_after_pattern(text: str, pattern_name: str) -> Optional[str]:
        """
        Pull the content out of a request like "summarize: <content>".

        Returns:
            The content, or None to use the whole input
        """
        name = re.escape(pattern_name)
        spaced = re.escape(pattern_name.replace("_", " "))
        candidates = [
            rf"{name}\s*[:;-]\s*(.+)",
            rf"{spaced}\s*[:;-]\s*(.+)",
            rf"(?:please|can you)\s+{spaced}\s+(?:this|the following|these)\s*[:;.-]?\s*(.+)",
            rf"I\s+need\s+a\s+{spaced}\s+of\s*[:;.-]?\s*(.+)",
        ]
        for candidate in candidates:
            match = re.search(candidate, text, re.DOTALL | re.IGNORECASE)
            if match and match.group(1).strip():
                return match.group(1).strip()
        return None

    def suggest(
        self,
        text: str,
        context: str = "",
        interaction_type: Optional[InteractionType] = None
    ) -> Optional[Suggestion]:
        """
        Suggest (or directly run) a pattern for the input.

        Args:
            text: User input
            context: Recent conversation context, passed to reasoning
            interaction_type: Message type (classified from text if None)

        Returns:
            Suggestion, or None if suggestion is disabled or nothing fits
        """
        if not self.catalog.is_loaded():
            return None

        interaction_type = interaction_type or InteractionType.classify(text)
        explicit = self.detect_explicit_pattern(text)

        if explicit and self.catalog.has(explicit):
            log_info(f"Explicit pattern request detected: {explicit}", prefix="🧩")
            pattern = self.catalog.require(explicit)
            content = self.extract_content_after_pattern(text, explicit) or text
            try:
                result = self.executor.run_with_retry(lambda: self.executor.apply_large(explicit, content))
            except PatternRelayError as e:
                log_error(f"Explicit pattern {explicit} failed, falling back to reasoning: {e}")
            else:
                return Suggestion(
                    pattern=explicit,
                    description=pattern.description,
                    confidence=EXPLICIT_CONFIDENCE,
                    reasoning="This pattern was explicitly requested and has been processed immediately.",
                    category=pattern.category,
                    result=result
                )
            return self.reason_about_pattern(text, {}, interaction_type, explicit, context)

        analysis = self.analyze_input(text)
        return self.reason_about_pattern(text, analysis, interaction_type, explicit, context)

    def analyze_input(self, text: str) -> Dict[str, Any]:
        """
        Characterize the input with a backend call.

        Returns:
            Characteristics dict; heuristic values if the call fails
        """
        messages = [
            {"role": "system", "content": ANALYZE_SYSTEM_PROMPT},
            {"role": "user", "content": text},
        ]
        try:
            reply = self.router.invoke(messages, self.options)
            parsed = parse_json_object(reply.content)
        except (PatternRelayError, ValueError) as e:
            log_warning(f"Input analysis failed, using heuristics: {e}")
            return heuristic_characteristics(text)
        return parsed.get("characteristics", parsed)

    def reason_about_pattern(
        self,
        text: str,
        analysis: Dict[str, Any],
        interaction_type: InteractionType,
        explicit: Optional[str] = None,
        context: str = ""
    ) -> Optional[Suggestion]:
        """
        Ask the backend which pattern fits the input best.

        An explicit request for a known pattern short-circuits without
        a backend call. An unknown suggested name falls back to a
        same-family pattern at reduced confidence.

        Returns:
            Suggestion or None
        """
        if explicit and self.catalog.has(explicit):
            pattern = self.catalog.require(explicit)
            return Suggestion(
                pattern=explicit,
                description=pattern.description,
                confidence=SHORT_CIRCUIT_CONFIDENCE,
                reasoning=(
                    f'The "{explicit}" pattern was explicitly requested and is designed '
                    f"for {pattern.category.value} tasks."
                ),
                category=pattern.category
            )

        system_prompt = REASON_SYSTEM_PROMPT.format(
            interaction_type=interaction_type.value,
            categories="\n".join(f"- {c.value}" for c in self.catalog.categories())
        )
        payload = {
            "input": {
                "content": text[:500],
                "length": len(text),
                "type": analysis.get("contentType"),
                "format": analysis.get("format"),
            },
            "analysis": analysis,
            "context": context[:1000],
            "interactionType": interaction_type.value,
            "availablePatterns": [
                {"name": p, "category": self.catalog.require(p).category.value,
                 "description": self.catalog.require(p).description}
                for p in self.catalog.names()
            ],
        }
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": json.dumps(payload, indent=2)},
        ]

        try:
            reply = self.router.invoke(messages, self.options)
            result = parse_json_object(reply.content)
        except (PatternRelayError, ValueError) as e:
            log_error(f"Pattern reasoning failed: {e}")
            return None

        name = str(result.get("pattern", ""))
        try:
            confidence = float(result.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0

        if not self.catalog.has(name):
            similar = self.catalog.find_similar(name)
            if similar is None:
                log_warning(f"Suggested pattern '{name}' does not exist and has no similar pattern")
                return None
            log_warning(f"Suggested pattern '{name}' does not exist, using similar pattern '{similar}'")
            name = similar
            confidence *= FALLBACK_CONFIDENCE_FACTOR

        alternatives = result.get("alternativePatterns") or []
        alternatives = [a for a in alternatives if isinstance(a, str) and self.catalog.has(a)][:MAX_ALTERNATIVES]

        pattern = self.catalog.require(name)
        log_info(f"Suggested {name} ({confidence:.2f})", prefix="🧩")
        return Suggestion(
            pattern=name,
            description=pattern.description,
            confidence=confidence,
            reasoning=str(result.get("reasoning", "")),
            category=pattern.category,
            alternative_patterns=alternatives
        )
