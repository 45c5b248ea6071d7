"""
LitBook - KoboldCpp Client
HTTP client for a local LLM via the KoboldCpp API
"""

import requests
from typing import Optional, List
from dataclasses import dataclass


@dataclass
class KoboldResponse:
    """Response from KoboldCpp API."""
    text: str
    tokens_generated: int
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None


def _extract_text(data) -> Optional[str]:
    """Text of the first result in a /api/v1/generate reply, or None if the reply has another shape."""
    if not isinstance(data, dict):
        return None
    results = data.get("results")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        return None
    text = results[0].get("text")
    return text if isinstance(text, str) else None


class KoboldClient:
    """
    Client for KoboldCpp API.

    Used as the local provider when no Anthropic key is configured, or as
    the fallback when the router is set up for it.
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001",
        max_context: int = 8192,
        max_length: int = 2048,
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
            response = requests.get(
                f"{self.api_url}/api/v1/model",
                timeout=5
            )
            if response.status_code == 200:
                data = response.json()
                self._model_name = data.get("result", "Unknown") if isinstance(data, dict) else "Unknown"
                return True
            return False
        except requests.RequestException:
            return False

    def get_model_name(self) -> Optional[str]:
        """Get the currently loaded model name."""
        if self._model_name is None:
            self.is_available()
        return self._model_name

    def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_length: Optional[int] = None,
        temperature: float = 0.2,
        timeout: Optional[float] = None,
        stop_sequences: Optional[List[str]] = None
    ) -> KoboldResponse:
        """
        Generate a completion for a single instruction.

        The prompt is wrapped in the Llama-3 instruct template.

        Args:
            prompt: The user instruction
            system_prompt: Optional system prompt
            max_length: Maximum tokens to generate (uses default if None)
            temperature: Sampling temperature
            timeout: Per-request timeout override in seconds
            stop_sequences: Extra sequences to stop generation

        Returns:
            KoboldResponse with generated text
        """
        parts = ["<|begin_of_text|>"]
        if system_prompt:
            parts.append(f"<|start_header_id|>system<|end_header_id|>\n\n{system_prompt}<|eot_id|>")
        parts.append(f"<|start_header_id|>user<|end_header_id|>\n\n{prompt}<|eot_id|>")
        parts.append("<|start_header_id|>assistant<|end_header_id|>\n\n")

        payload = {
            "prompt": "".join(parts),
            "max_length": max_length or self.max_length,
            "temperature": temperature,
            "max_context_length": self.max_context,
            "stop_sequence": ["<|eot_id|>", "<|end_of_text|>"] + list(stop_sequences or [])
        }

        try:
            response = requests.post(
                f"{self.api_url}/api/v1/generate",
                json=payload,
                timeout=timeout or self.timeout
            )

            if response.status_code == 200:
                text = _extract_text(response.json())
                if text is not None:
                    return KoboldResponse(
                        text=text.strip(),
                        tokens_generated=len(text.split()),  # Approximate
                        success=True
                    )

                return KoboldResponse(
                    text="",
                    tokens_generated=0,
                    success=False,
                    error="No text in response",
                    error_type="bad_response"
                )

            return KoboldResponse(
                text="",
                tokens_generated=0,
                success=False,
                error=f"HTTP {response.status_code}: {response.text[:200]}",
                error_type="server_error"
            )

        except requests.Timeout:
            return KoboldResponse(
                text="",
                tokens_generated=0,
                success=False,
                error="Request timed out",
                error_type="timeout"
            )
        except requests.ConnectionError:
            return KoboldResponse(
                text="",
                tokens_generated=0,
                success=False,
                error="Connection failed - is KoboldCpp running?",
                error_type="connection_error"
            )
        except (requests.RequestException, ValueError) as e:
            return KoboldResponse(
                text="",
                tokens_generated=0,
                success=False,
                error=str(e),
                error_type="unknown"
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
