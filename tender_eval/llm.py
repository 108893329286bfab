# tender_eval/llm.py
"""OpenAI-backed scoring oracle."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from openai import OpenAI, OpenAIError

from tender_eval.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class ScoringOracle(Protocol):
    """Stateless text-completion boundary used by the AI scoring pipeline."""

    def generate(self, prompt: str, *, task: str | None = None) -> str: ...


def get_model_for_task(settings: dict, task: str) -> str:
    """Get the appropriate model for a specific task.

    Args:
        settings: Configuration settings dictionary
        task: Task name to look up

    Returns:
        Model name to use for the task
    """
    task_models = settings.get("OPENAI_LLM_MODELS") or {}
    return task_models.get(task) or settings.get("OPENAI_LLM_MODEL_DEFAULT") or "gpt-4o-mini"


class LLMClient:
    """Client for LLM API interactions."""

    def __init__(self, settings: dict, client: OpenAI | None = None):
        """Initialize LLM client with settings.

        Args:
            settings: Configuration dictionary with API keys and model settings
            client: Pre-built OpenAI client, mostly for tests

        Raises:
            ValueError: If OPENAI_API_KEY is not provided
        """
        self.settings = settings
        self.api_key = settings.get("OPENAI_API_KEY")
        if not self.api_key and client is None:
            raise ValueError("OPENAI_API_KEY is required")

        self.base_url = settings.get("OPENAI_BASE_URL")
        self.timeout = settings.get("OPENAI_TIMEOUT") or None
        self.max_retries = int(settings.get("OPENAI_MAX_RETRIES") or 0)
        self._client = client

    def _get_client(self) -> OpenAI:
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            client_kwargs = {
                "api_key": self.api_key,
                "max_retries": self.max_retries,
            }
            if self.timeout:
                client_kwargs["timeout"] = self.timeout
            if self.base_url:
                client_kwargs["base_url"] = self.base_url

            self._client = OpenAI(**client_kwargs)
        return self._client

    def complete(
        self,
        messages: list[dict],
        model: Optional[str] = None,
        temperature: float = 0.0,
        **kwargs,
    ) -> str:
        """Get completion from LLM.

        Args:
            messages: List of message dictionaries with role and content
            model: Model to use (defaults to settings)
            temperature: Sampling temperature
            **kwargs: Additional parameters for the API

        Returns:
            Generated text content

        Raises:
            ExternalServiceError: On any API failure (network, auth, quota, timeout)
        """
        client = self._get_client()
        model = model or get_model_for_task(self.settings, "default")

        try:
            response = client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
                **kwargs,
            )
        except OpenAIError as exc:
            logger.error("Oracle call failed (model=%s): %s", model, exc)
            raise ExternalServiceError(f"OpenAI API error: {exc}") from exc
        if not response.choices:
            raise ExternalServiceError(f"OpenAI API returned no choices (model={model})")
        return response.choices[0].message.content or ""

    def generate(self, prompt: str, *, task: str | None = None) -> str:
        model = get_model_for_task(self.settings, task) if task else None
        return self.complete([{"role": "user", "content": prompt}], model=model)
