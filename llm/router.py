"""
Pattern Relay - LLM Router
Invokes the generation backend through a chain of model tiers:
utility (fast, first try), primary (timeout escalation), fallback.
"""

from enum import Enum
from typing import Optional, List, Dict, Tuple
from dataclasses import dataclass

from core.errors import (
    FailureReason, FATAL_REASONS, FAILOVER_REASONS, backend_error_for
)
from core.logger import log_info, log_warning, log_error, log_success
from core.prompt_logger import log_api_request
from llm.kobold_client import KoboldClient, get_kobold_client
from llm.anthropic_client import AnthropicClient, get_anthropic_client


class LLMProvider(Enum):
    """Available LLM providers."""
    ANTHROPIC = "anthropic"
    KOBOLD = "kobold"


class ModelTier(Enum):
    """Position of a model in the fallback chain."""
    UTILITY = "utility"
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass
class InvokeOptions:
    """Timeout and retry settings for one backend invocation."""
    initial_timeout: float = 60.0
    max_timeout: float = 120.0
    retries: int = 2
    skip_utility: bool = False

    @classmethod
    def from_config(cls) -> "InvokeOptions":
        """Build options from config defaults."""
        import config
        return cls(
            initial_timeout=getattr(config, 'INVOKE_INITIAL_TIMEOUT', 60.0),
            max_timeout=getattr(config, 'INVOKE_MAX_TIMEOUT', 120.0),
            retries=getattr(config, 'INVOKE_RETRIES', 2),
        )


@dataclass
class LLMResponse:
    """Unified response from any LLM provider."""
    text: str
    success: bool
    provider: LLMProvider
    model: str = ""
    tokens_in: int = 0
    tokens_out: int = 0
    error: Optional[str] = None
    error_type: Optional[FailureReason] = None


@dataclass
class BackendReply:
    """Successful result of an invocation."""
    content: str
    provider: LLMProvider
    model: str
    tier: ModelTier


def split_system(messages: List[Dict[str, str]]) -> Tuple[Optional[str], List[Dict[str, str]]]:
    """
    Separate system messages from the conversational turns.

    Returns:
        Tuple of (joined system prompt or None, remaining messages)
    """
    system_parts = [m["content"] for m in messages if m["role"] == "system"]
    rest = [m for m in messages if m["role"] != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), rest


class LLMRouter:
    """
    Routes generation requests across model tiers.

    Handles:
    - Utility tier first, falling through on any failure
    - Primary tier with timeout escalation and bounded retries
    - Fallback tier (Anthropic failover model or local KoboldCpp)
    """

    def __init__(
        self,
        anthropic: Optional[AnthropicClient] = None,
        kobold: Optional[KoboldClient] = None,
        primary_model: Optional[str] = None,
        utility_model: Optional[str] = None,
        fallback_provider: LLMProvider = LLMProvider.ANTHROPIC,
        fallback_enabled: bool = True
    ):
        """
        Initialize the router.

        Args:
            anthropic: Anthropic client (global instance if None)
            kobold: KoboldCpp client (global instance if None)
            primary_model: Primary tier model (client default if None)
            utility_model: Utility tier model (tier skipped if None)
            fallback_provider: Provider for the fallback tier
            fallback_enabled: Whether to use the fallback tier at all
        """
        self._anthropic = anthropic
        self._kobold = kobold
        self.primary_model = primary_model
        self.utility_model = utility_model
        self.fallback_provider = fallback_provider
        self.fallback_enabled = fallback_enabled
        self._provider_status: Dict[LLMProvider, bool] = {}

    def _get_anthropic(self) -> AnthropicClient:
        """Get or create Anthropic client."""
        if self._anthropic is None:
            self._anthropic = get_anthropic_client()
        return self._anthropic

    def _get_kobold(self) -> KoboldClient:
        """Get or create Kobold client."""
        if self._kobold is None:
            self._kobold = get_kobold_client()
        return self._kobold

    def _primary(self) -> str:
        return self.primary_model or self._get_anthropic().model

    def _get_failover_model(self, current_model: str) -> Optional[str]:
        """
        Get the failover model for a given model.

        Returns:
            The failover model name, or None if no failover configured.
        """
        import config
        failover_map = getattr(config, 'ANTHROPIC_MODEL_FAILOVER', {})
        return failover_map.get(current_model)

    def check_providers(self) -> Dict[LLMProvider, bool]:
        """
        Check availability of all providers.

        Returns:
            Dict mapping provider to availability status
        """
        self._provider_status[LLMProvider.ANTHROPIC] = self._get_anthropic().is_available()
        if self.fallback_provider == LLMProvider.KOBOLD:
            self._provider_status[LLMProvider.KOBOLD] = self._get_kobold().is_available()
        return dict(self._provider_status)

    def _send(
        self,
        tier: ModelTier,
        system_prompt: Optional[str],
        messages: List[Dict[str, str]],
        timeout: float
    ) -> LLMResponse:
        """Send one request to the provider serving a tier."""
        if tier == ModelTier.FALLBACK and self.fallback_provider == LLMProvider.KOBOLD:
            kobold = self._get_kobold()
            result = kobold.chat(messages, system_prompt=system_prompt, timeout=timeout)
            response = LLMResponse(
                text=result.text,
                success=result.success,
                provider=LLMProvider.KOBOLD,
                model=kobold.model_label,
                tokens_out=result.tokens_generated,
                error=result.error,
                error_type=result.error_type
            )
        else:
            if tier == ModelTier.UTILITY:
                model = self.utility_model
            elif tier == ModelTier.FALLBACK:
                model = self._get_failover_model(self._primary())
            else:
                model = self._primary()

            result = self._get_anthropic().chat(
                messages=messages,
                system_prompt=system_prompt,
                model=model,
                timeout=timeout
            )
            response = LLMResponse(
                text=result.text,
                success=result.success,
                provider=LLMProvider.ANTHROPIC,
                model=result.model or model or "",
                tokens_in=result.input_tokens,
                tokens_out=result.output_tokens,
                error=result.error,
                error_type=result.error_type
            )

        log_api_request(
            provider=response.provider.value,
            model=response.model,
            tier=tier.value,
            system_prompt=system_prompt,
            messages=messages,
            settings={"timeout": timeout},
            response_text=response.text,
            success=response.success,
            error=response.error,
            error_type=response.error_type.value if response.error_type else None
        )
        return response

    def _has_fallback(self) -> bool:
        if not self.fallback_enabled:
            return False
        if self.fallback_provider == LLMProvider.KOBOLD:
            return True
        return self._get_failover_model(self._primary()) is not None

    def invoke(
        self,
        messages: List[Dict[str, str]],
        options: Optional[InvokeOptions] = None
    ) -> BackendReply:
        """
        Invoke the generation backend through the tier chain.

        Args:
            messages: Ordered list of {"role": "system"|"user"|"assistant", "content": "..."}
            options: Timeout/retry settings (config defaults if None)

        Returns:
            BackendReply with the generated content

        Raises:
            BackendError subclass describing the last failure
        """
        if options is None:
            options = InvokeOptions.from_config()

        system_prompt, chat_messages = split_system(messages)

        # Utility tier: one attempt, any failure falls through
        if self.utility_model and not options.skip_utility:
            response = self._send(ModelTier.UTILITY, system_prompt, chat_messages, options.initial_timeout)
            if response.success:
                return BackendReply(response.text, response.provider, response.model, ModelTier.UTILITY)
            log_warning(
                f"Utility model failed ({(response.error_type or FailureReason.UNKNOWN).value}), "
                "falling back to primary model"
            )

        # Primary tier: timeouts double the next timeout, fatal errors stop immediately
        attempts = options.retries + 1
        timeout = options.initial_timeout
        last: Optional[LLMResponse] = None

        for attempt in range(attempts):
            response = self._send(ModelTier.PRIMARY, system_prompt, chat_messages, timeout)
            if response.success:
                return BackendReply(response.text, response.provider, response.model, ModelTier.PRIMARY)

            last = response
            reason = response.error_type or FailureReason.UNKNOWN
            if reason in FATAL_REASONS:
                log_error(f"Primary model failed with {reason.value}: {response.error}")
                raise backend_error_for(reason, response.error or "", response.provider.value)

            log_warning(
                f"Primary model {reason.value} after {timeout:.0f}s. "
                f"Attempt {attempt + 1}/{attempts}"
            )
            if reason == FailureReason.TIMEOUT:
                timeout = min(timeout * 2, options.max_timeout)

        # Fallback tier
        reason = last.error_type or FailureReason.UNKNOWN
        if reason in FAILOVER_REASONS and self._has_fallback():
            log_info(f"Switching to fallback model ({self.fallback_provider.value})")
            response = self._send(ModelTier.FALLBACK, system_prompt, chat_messages, options.max_timeout)
            if response.success:
                log_success(f"Fallback model {response.model} succeeded")
                return BackendReply(response.text, response.provider, response.model, ModelTier.FALLBACK)
            last = response
            reason = response.error_type or FailureReason.UNKNOWN

        log_error(f"All model tiers failed: {reason.value} - {last.error}")
        raise backend_error_for(reason, last.error or "", last.provider.value)


# Global router instance
_llm_router: Optional[LLMRouter] = None


def get_llm_router() -> LLMRouter:
    """Get the global LLM router instance."""
    global _llm_router
    if _llm_router is None:
        _llm_router = init_llm_router()
    return _llm_router


def init_llm_router(
    primary_model: Optional[str] = None,
    utility_model: Optional[str] = None,
    fallback_provider: Optional[LLMProvider] = None,
    fallback_enabled: Optional[bool] = None
) -> LLMRouter:
    """Initialize the global LLM router from config defaults."""
    global _llm_router
    import config

    if utility_model is None and getattr(config, 'UTILITY_TIER_ENABLED', True):
        utility_model = getattr(config, 'ANTHROPIC_MODEL_UTILITY', None)
    if fallback_provider is None:
        fallback_provider = LLMProvider(getattr(config, 'LLM_FALLBACK_PROVIDER', 'anthropic'))
    if fallback_enabled is None:
        fallback_enabled = getattr(config, 'LLM_FALLBACK_ENABLED', True)

    _llm_router = LLMRouter(
        primary_model=primary_model or getattr(config, 'ANTHROPIC_MODEL', None),
        utility_model=utility_model or None,
        fallback_provider=fallback_provider,
        fallback_enabled=fallback_enabled
    )
    return _llm_router
