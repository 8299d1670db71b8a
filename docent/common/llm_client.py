"""
Provider-agnostic async LLM client for Docent.

Supports Anthropic, OpenAI, and Google Gemini behind one chat-style
``generate(messages, options)`` interface. Options are merged over the
client defaults; any provider failure or empty completion surfaces as
GenerationError.
"""

from __future__ import annotations

import hashlib
import logging
from typing import List, Optional, Sequence, Tuple

from .errors import GenerationError
from .types import ChatMessage, GenerateOptions

logger = logging.getLogger("docent.common.llm_client")

DEFAULT_TEMPERATURE = 0.1
DEFAULT_TOP_P = 0.9
DEFAULT_MAX_TOKENS = 1500


def _split_system(messages: Sequence[ChatMessage]) -> Tuple[Optional[str], List[ChatMessage]]:
    """Pull system messages out; Anthropic and Gemini take them separately."""
    system_parts = [m.content for m in messages if m.role == "system"]
    rest = [m for m in messages if m.role != "system"]
    return ("\n\n".join(system_parts) or None), rest


class LLMClient:
    """Unified async text generation client across LLM providers."""

    def __init__(
        self,
        provider: str = "anthropic",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        timeout: float = 30.0,
        defaults: Optional[GenerateOptions] = None,
    ) -> None:
        self.provider = (provider or "anthropic").lower()
        self.model = model
        self.timeout = timeout
        self.defaults = defaults or GenerateOptions(
            max_tokens=DEFAULT_MAX_TOKENS,
            temperature=DEFAULT_TEMPERATURE,
            top_p=DEFAULT_TOP_P,
        )
        self._client = None
        self._google_models = {}

        if self.provider == "anthropic":
            if not anthropic_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import anthropic

                self._client = anthropic.AsyncAnthropic(api_key=anthropic_api_key)
            except ImportError:
                logger.warning("anthropic package not installed")
            return

        if self.provider == "openai":
            if not openai_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                from openai import AsyncOpenAI

                self._client = AsyncOpenAI(api_key=openai_api_key)
            except ImportError:
                logger.warning("openai package not installed")
            return

        if self.provider == "google":
            if not google_api_key:
                logger.info("%s API key not provided, LLM client unavailable", self.provider)
                return
            try:
                import google.generativeai as genai

                genai.configure(api_key=google_api_key)
                self._client = genai  # module; models are built per system prompt
            except ImportError:
                logger.warning("google-generativeai package not installed")
            return

        logger.warning("Unsupported LLM provider: %s", self.provider)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def merged_options(self, options: Optional[GenerateOptions] = None) -> GenerateOptions:
        """Caller options win field by field; None falls through to defaults."""
        options = options or GenerateOptions()
        return GenerateOptions(
            max_tokens=options.max_tokens if options.max_tokens is not None else self.defaults.max_tokens,
            temperature=options.temperature if options.temperature is not None else self.defaults.temperature,
            top_p=options.top_p if options.top_p is not None else self.defaults.top_p,
            stop=options.stop if options.stop is not None else self.defaults.stop,
        )

    async def generate(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[GenerateOptions] = None,
    ) -> str:
        if not self.is_available:
            raise GenerationError(
                "LLM client is not available",
                details={"provider": self.provider},
            )

        opts = self.merged_options(options)
        try:
            if self.provider == "anthropic":
                text = await self._generate_anthropic(messages, opts)
            elif self.provider == "openai":
                text = await self._generate_openai(messages, opts)
            elif self.provider == "google":
                text = await self._generate_google(messages, opts)
            else:
                raise GenerationError(f"Unsupported LLM provider: {self.provider}")
        except GenerationError:
            raise
        except Exception as e:
            logger.error("LLM generation failed (%s/%s): %s", self.provider, self.model, e)
            raise GenerationError(
                f"LLM generation failed: {e}",
                details={"provider": self.provider, "model": self.model},
            ) from e

        if not text or not text.strip():
            raise GenerationError(
                "LLM returned an empty completion",
                details={"provider": self.provider, "model": self.model},
            )
        return text.strip()

    async def _generate_anthropic(self, messages: Sequence[ChatMessage], opts: GenerateOptions) -> str:
        system, rest = _split_system(messages)
        kwargs = {
            "model": self.model,
            "max_tokens": opts.max_tokens,
            "messages": [m.to_dict() for m in rest],
            # top_p omitted: newer Claude models reject it alongside temperature
            "temperature": opts.temperature,
            "timeout": self.timeout,
        }
        if system:
            kwargs["system"] = system
        if opts.stop:
            kwargs["stop_sequences"] = list(opts.stop)
        response = await self._client.messages.create(**kwargs)
        return "".join(
            getattr(block, "text", "") for block in response.content
        )

    async def _generate_openai(self, messages: Sequence[ChatMessage], opts: GenerateOptions) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
            "top_p": opts.top_p,
            "messages": [m.to_dict() for m in messages],
            "timeout": self.timeout,
        }
        if opts.stop:
            kwargs["stop"] = list(opts.stop)
        response = await self._client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    async def _generate_google(self, messages: Sequence[ChatMessage], opts: GenerateOptions) -> str:
        system, rest = _split_system(messages)
        cache_key = hashlib.md5((system or "").encode()).hexdigest()
        if cache_key not in self._google_models:
            kwargs = {"model_name": self.model}
            if system:
                kwargs["system_instruction"] = system
            self._google_models[cache_key] = self._client.GenerativeModel(**kwargs)
        model = self._google_models[cache_key]

        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in rest
        ]
        generation_config = {
            "max_output_tokens": opts.max_tokens,
            "temperature": opts.temperature,
            "top_p": opts.top_p,
        }
        if opts.stop:
            generation_config["stop_sequences"] = list(opts.stop)
        response = await model.generate_content_async(
            contents,
            generation_config=generation_config,
            request_options={"timeout": self.timeout},
        )
        return response.text
