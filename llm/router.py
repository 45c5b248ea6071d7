"""
LitBook - LLM Router
Routes requests to the configured LLM provider, with optional fallback
"""

from enum import Enum
from typing import Optional, Dict
from dataclasses import dataclass

from core.logger import log_info, log_warning
from llm.kobold_client import KoboldClient, get_kobold_client
from llm.anthropic_client import AnthropicClient, get_anthropic_client


class LLMProvider(Enum):
    """Available LLM providers."""
    ANTHROPIC = "anthropic"
    KOBOLD = "kobold"


class TaskType(Enum):
    """Types of LLM tasks."""
    SEGMENTATION = "segmentation"  # Split chapter text into verses
    ANNOTATION = "annotation"      # Explain a selected verse


@dataclass
class LLMResponse:
    """Unified response from any LLM provider."""
    text: str
    success: bool
    provider: LLMProvider
    tokens_in: int = 0
    tokens_out: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None  # "timeout", "server_error", "auth_error", etc.


class LLMRouter:
    """
    Routes LLM requests to providers.

    Handles:
    - Primary provider selection
    - Fallback to the other provider on failure (when enabled)
    - Provider health reporting
    """

    def __init__(
        self,
        primary_provider: LLMProvider = LLMProvider.ANTHROPIC,
        fallback_enabled: bool = False
    ):
        """
        Initialize the router.

        Args:
            primary_provider: Provider tried first for every task
            fallback_enabled: Whether to try the other provider on failure
        """
        self.primary_provider = primary_provider
        self.fallback_enabled = fallback_enabled
        self._anthropic: Optional[AnthropicClient] = None
        self._kobold: Optional[KoboldClient] = None

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

    def check_providers(self) -> Dict[LLMProvider, tuple]:
        """
        Check status of all providers.

        Returns:
            Dict mapping provider to (is_available, status_message)
        """
        status = {}

        anthropic_client = self._get_anthropic()
        if anthropic_client.is_available():
            status[LLMProvider.ANTHROPIC] = (True, f"Configured ({anthropic_client.model})")
        else:
            status[LLMProvider.ANTHROPIC] = (False, "API key not configured")

        kobold_client = self._get_kobold()
        if kobold_client.is_available():
            model = kobold_client.get_model_name() or "Unknown model"
            status[LLMProvider.KOBOLD] = (True, f"Available ({model})")
        else:
            status[LLMProvider.KOBOLD] = (False, "Not responding")

        return status

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        task_type: TaskType = TaskType.SEGMENTATION,
        max_tokens: Optional[int] = None,
        temperature: float = 0.0,
        timeout: Optional[float] = None
    ) -> LLMResponse:
        """
        Send a single-prompt request to the primary provider.

        Args:
            prompt: The user prompt
            system_prompt: Optional system prompt
            task_type: Type of task (for logging)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            timeout: Per-request timeout in seconds, applied to each provider tried

        Returns:
            LLMResponse; never raises for provider failures
        """
        response = self._send_to_provider(
            provider=self.primary_provider,
            prompt=prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout
        )

        if response.success or not self.fallback_enabled:
            return response

        fallback_provider = (
            LLMProvider.KOBOLD if self.primary_provider == LLMProvider.ANTHROPIC
            else LLMProvider.ANTHROPIC
        )
        log_warning(
            f"{self.primary_provider.value} failed for {task_type.value} "
            f"({response.error_type}), falling back to {fallback_provider.value}"
        )
        return self._send_to_provider(
            provider=fallback_provider,
            prompt=prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout
        )

    def _send_to_provider(
        self,
        provider: LLMProvider,
        prompt: str,
        system_prompt: Optional[str],
        max_tokens: Optional[int],
        temperature: float,
        timeout: Optional[float]
    ) -> LLMResponse:
        """Send a request to a specific provider and normalise the response."""
        if provider == LLMProvider.ANTHROPIC:
            result = self._get_anthropic().generate(
                prompt=prompt,
                system_prompt=system_prompt,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=timeout
            )
            return LLMResponse(
                text=result.text,
                success=result.success,
                provider=provider,
                tokens_in=result.input_tokens,
                tokens_out=result.output_tokens,
                error=result.error,
                error_type=result.error_type
            )

        result = self._get_kobold().generate(
            prompt=prompt,
            system_prompt=system_prompt,
            max_length=max_tokens,
            temperature=temperature,
            timeout=timeout
        )
        return LLMResponse(
            text=result.text,
            success=result.success,
            provider=provider,
            tokens_out=result.tokens_generated,
            error=result.error,
            error_type=result.error_type
        )


# Global router instance
_router: Optional[LLMRouter] = None


def get_llm_router() -> LLMRouter:
    """Get the global LLM router instance."""
    global _router
    if _router is None:
        from config import LLM_PRIMARY_PROVIDER, LLM_FALLBACK_ENABLED
        _router = LLMRouter(
            primary_provider=LLMProvider(LLM_PRIMARY_PROVIDER),
            fallback_enabled=LLM_FALLBACK_ENABLED
        )
    return _router


def init_llm_router(
    primary_provider: str = "anthropic",
    fallback_enabled: bool = False
) -> LLMRouter:
    """Initialize the global LLM router."""
    global _router
    _router = LLMRouter(
        primary_provider=LLMProvider(primary_provider),
        fallback_enabled=fallback_enabled
    )
    log_info(
        f"LLM router ready (primary={primary_provider}, "
        f"fallback={'on' if fallback_enabled else 'off'})",
        prefix="🤖"
    )
    return _router
