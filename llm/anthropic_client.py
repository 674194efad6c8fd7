"""
Pattern Relay - Anthropic Claude Client
Client for Claude API (utility, primary and failover tiers)
"""

from typing import Optional, List, Dict, Any
from dataclasses import dataclass

from core.errors import FailureReason
from core.logger import log_info, log_warning


@dataclass
class AnthropicResponse:
    """Response from Anthropic API."""
    text: str
    input_tokens: int
    output_tokens: int
    success: bool
    model: str = ""
    error: Optional[str] = None
    error_type: Optional[FailureReason] = None
    stop_reason: Optional[str] = None
    thinking_text: str = ""  # Extended thinking blocks, never shown to the user


def merge_consecutive_roles(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """
    Merge adjacent messages with the same role.

    The Messages API requires alternating roles, while pattern prompts
    may send the seed prompt and the content as two user turns.
    """
    merged: List[Dict[str, str]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1] = {
                "role": msg["role"],
                "content": f"{merged[-1]['content']}\n\n{msg['content']}"
            }
        else:
            merged.append({"role": msg["role"], "content": msg["content"]})
    return merged


class AnthropicClient:
    """
    Client for Anthropic Claude API.

    Calls are single-shot: retries and failover belong to the router,
    so every failure comes back as a classified AnthropicResponse.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        max_tokens: int = 8192,
        timeout: float = 120.0
    ):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key
            model: Default model
            max_tokens: Maximum tokens to generate
            timeout: Default request timeout in seconds
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Lazy-load the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0  # Retries are owned by the router
            )
        return self._client

    def is_available(self) -> bool:
        """Check if Anthropic API is configured."""
        return bool(self.api_key)

    def _classify_error(self, error: Exception) -> tuple:
        """
        Classify an API error for retry/failover decisions.

        Returns:
            Tuple of (FailureReason, error_message)
        """
        import anthropic

        error_msg = str(error)
        error_lower = error_msg.lower()

        # Check specific anthropic SDK exception types
        if isinstance(error, anthropic.APITimeoutError):
            return (FailureReason.TIMEOUT, "Request timed out")
        elif isinstance(error, anthropic.APIConnectionError):
            if "reset" in error_lower:
                return (FailureReason.CONNECTION_RESET, "Connection reset")
            return (FailureReason.UNAVAILABLE, "Connection failed")
        elif isinstance(error, anthropic.RateLimitError):
            return (FailureReason.RATE_LIMITED, "Rate limit exceeded")
        elif isinstance(error, anthropic.APIStatusError):
            status = error.status_code
            if status == 529:
                return (FailureReason.OVERLOADED, "API overloaded")
            elif status in (500, 502, 503, 504):
                return (FailureReason.SERVER_ERROR, f"Server error ({status})")
            elif status in (401, 403):
                return (FailureReason.AUTH, "Authentication failed")
            elif status == 413:
                return (FailureReason.CONTEXT_LENGTH, "Request too large")
            elif status == 400:
                if "prompt is too long" in error_lower or "context" in error_lower:
                    return (FailureReason.CONTEXT_LENGTH, error_msg)
                return (FailureReason.BAD_REQUEST, error_msg)

        return (FailureReason.UNKNOWN, error_msg)

    def chat(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7
    ) -> AnthropicResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "user"|"assistant", "content": "..."}
            system_prompt: Optional system prompt
            model: Optional model override (uses instance model if None)
            timeout: Per-request timeout in seconds
            max_tokens: Maximum tokens to generate (uses default if None)
            temperature: Sampling temperature

        Returns:
            AnthropicResponse with generated text, or a classified failure
        """
        active_model = model or self.model

        if not self.api_key:
            return AnthropicResponse(
                text="",
                input_tokens=0,
                output_tokens=0,
                success=False,
                model=active_model,
                error="API key not configured",
                error_type=FailureReason.UNAVAILABLE
            )

        request_params: Dict[str, Any] = {
            "model": active_model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature,
            "messages": merge_consecutive_roles(messages),
            "timeout": timeout or self.timeout,
        }
        if system_prompt:
            request_params["system"] = system_prompt

        try:
            response = self._get_client().messages.create(**request_params)
        except Exception as e:
            error_type, error_msg = self._classify_error(e)
            log_warning(f"Anthropic call failed ({active_model}): {error_type.value} - {error_msg}")
            return AnthropicResponse(
                text="",
                input_tokens=0,
                output_tokens=0,
                success=False,
                model=active_model,
                error=error_msg,
                error_type=error_type
            )

        text = ""
        thinking_text = ""
        for block in getattr(response, "content", None) or []:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text += getattr(block, "text", "") or ""
            elif block_type == "thinking":
                thinking_text += getattr(block, "thinking", "") or ""

        usage = getattr(response, "usage", None)
        stop_reason = getattr(response, "stop_reason", None)
        if stop_reason == "max_tokens":
            log_info(f"Reply from {active_model} hit max_tokens, output may be cut short")

        return AnthropicResponse(
            text=text,
            input_tokens=getattr(usage, "input_tokens", 0) if usage else 0,
            output_tokens=getattr(usage, "output_tokens", 0) if usage else 0,
            success=True,
            model=active_model,
            stop_reason=stop_reason,
            thinking_text=thinking_text
        )


# Global client instance
_anthropic_client: Optional[AnthropicClient] = None


def get_anthropic_client() -> AnthropicClient:
    """Get the global Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        from config import ANTHROPIC_API_KEY, ANTHROPIC_MODEL, ANTHROPIC_MAX_TOKENS
        _anthropic_client = AnthropicClient(
            api_key=ANTHROPIC_API_KEY,
            model=ANTHROPIC_MODEL,
            max_tokens=ANTHROPIC_MAX_TOKENS
        )
    return _anthropic_client

