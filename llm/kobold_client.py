"""
Pattern Relay - KoboldCpp Client
HTTP client for local LLM via KoboldCpp API (optional fallback tier)
"""

import requests
from typing import Optional, List, Dict
from dataclasses import dataclass

from core.errors import FailureReason


@dataclass
class KoboldResponse:
    """Response from KoboldCpp API."""
    text: str
    tokens_generated: int
    success: bool
    error: Optional[str] = None
    error_type: Optional[FailureReason] = None


class KoboldClient:
    """
    Client for KoboldCpp API.

    KoboldCpp provides a local LLM inference server compatible with
    the KoboldAI generate API.
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001",
        max_context: int = 8192,
        max_length: int = 1024,
        timeout: float = 120.0
    ):
        """
        Initialize the KoboldCpp client.

        Args:
            api_url: Base URL for KoboldCpp API
            max_context: Maximum context length
            max_length: Maximum generation length
            timeout: Default request timeout in seconds
        """
        self.api_url = api_url.rstrip("/")
        self.max_context = max_context
        self.max_length = max_length
        self.timeout = timeout
        self._model_name: Optional[str] = None

    def is_available(self) -> bool:
        """Check if KoboldCpp is available and responding."""
        try:
            response = requests.get(f"{self.api_url}/api/v1/model", timeout=5)
        except requests.RequestException:
            return False

        if response.status_code == 200:
            self._model_name = response.json().get("result", "Unknown")
            return True
        return False

    @property
    def model_label(self) -> str:
        """Cached model name for logs, without a network round-trip."""
        return self._model_name or "koboldcpp"

    def _failure(self, error: str, error_type: FailureReason) -> KoboldResponse:
        return KoboldResponse(
            text="",
            tokens_generated=0,
            success=False,
            error=error,
            error_type=error_type
        )

    def generate(
        self,
        prompt: str,
        max_length: Optional[int] = None,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
        stop_sequences: Optional[List[str]] = None
    ) -> KoboldResponse:
        """
        Generate text completion.

        Args:
            prompt: The prompt to complete
            max_length: Maximum tokens to generate (uses default if None)
            temperature: Sampling temperature
            timeout: Per-request timeout in seconds
            stop_sequences: List of sequences to stop generation

        Returns:
            KoboldResponse with generated text, or a classified failure
        """
        payload = {
            "prompt": prompt,
            "max_length": max_length or self.max_length,
            "temperature": temperature,
            "top_p": 0.9,
            "top_k": 40,
            "rep_pen": 1.1,
            "max_context_length": self.max_context
        }
        if stop_sequences:
            payload["stop_sequence"] = stop_sequences

        try:
            response = requests.post(
                f"{self.api_url}/api/v1/generate",
                json=payload,
                timeout=timeout or self.timeout
            )
        except requests.Timeout:
            return self._failure("Request timed out", FailureReason.TIMEOUT)
        except requests.ConnectionError as e:
            if "reset" in str(e).lower():
                return self._failure("Connection reset", FailureReason.CONNECTION_RESET)
            return self._failure("Connection failed - is KoboldCpp running?", FailureReason.UNAVAILABLE)
        except requests.RequestException as e:
            return self._failure(str(e), FailureReason.UNKNOWN)

        if response.status_code != 200:
            if response.status_code == 413:
                return self._failure("Prompt exceeds context", FailureReason.CONTEXT_LENGTH)
            if response.status_code == 503:
                return self._failure("KoboldCpp busy", FailureReason.OVERLOADED)
            return self._failure(
                f"HTTP {response.status_code}: {response.text}",
                FailureReason.SERVER_ERROR if response.status_code >= 500 else FailureReason.BAD_REQUEST
            )

        results = response.json().get("results", [])
        if not results:
            return self._failure("No results in response", FailureReason.SERVER_ERROR)

        text = results[0].get("text", "")
        return KoboldResponse(
            text=text.strip(),
            tokens_generated=len(text.split()),  # Approximate
            success=True
        )

    def chat(
        self,
        messages: List[Dict[str, str]],
        system_prompt: Optional[str] = None,
        timeout: Optional[float] = None,
        max_length: Optional[int] = None,
        temperature: float = 0.7
    ) -> KoboldResponse:
        """
        Chat-style completion with message history.

        Formats messages into a Llama-3 instruct prompt.

        Args:
            messages: List of {"role": "user"|"assistant", "content": "..."}
            system_prompt: Optional system prompt
            timeout: Per-request timeout in seconds
            max_length: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            KoboldResponse with generated text
        """
        prompt_parts = []

        if system_prompt:
            prompt_parts.append(f"<|begin_of_text|><|start_header_id|>system<|end_header_id|>\n\n{system_prompt}<|eot_id|>")
        else:
            prompt_parts.append("<|begin_of_text|>")

        for msg in messages:
            role = msg["role"]
            if role in ("user", "assistant"):
                prompt_parts.append(f"<|start_header_id|>{role}<|end_header_id|>\n\n{msg['content']}<|eot_id|>")

        # Add the assistant header for the response
        prompt_parts.append("<|start_header_id|>assistant<|end_header_id|>\n\n")

        return self.generate(
            prompt="".join(prompt_parts),
            max_length=max_length,
            temperature=temperature,
            timeout=timeout,
            stop_sequences=["<|eot_id|>", "<|end_of_text|>"]
        )


# Global client instance
_kobold_client: Optional[KoboldClient] = None


def get_kobold_client() -> KoboldClient:
    """Get the global KoboldCpp client instance."""
    global _kobold_client
    if _kobold_client is None:
        from config import KOBOLD_API_URL, KOBOLD_MAX_CONTEXT, KOBOLD_MAX_LENGTH
        _kobold_client = KoboldClient(
            api_url=KOBOLD_API_URL,
            max_context=KOBOLD_MAX_CONTEXT,
            max_length=KOBOLD_MAX_LENGTH
        )
    return _kobold_client
