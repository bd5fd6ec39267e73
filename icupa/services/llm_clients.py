from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

import anthropic
import openai
from google import genai
from google.genai import types
from google.genai.errors import ClientError

from icupa.services.errors import (
    ProviderConfigurationError,
    ProviderResponseError,
    RateLimitedError,
    ServiceError,
)

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
DEFAULT_MAX_TOKENS = 4096

UserPrompt = str | dict[str, Any] | list[Any]


class PromptFileError(ServiceError):
    pass


class ChatModel(Protocol):
    name: str

    def complete(self, system_prompt: str, user_prompt: UserPrompt) -> str:
        ...


class ImageModel(Protocol):
    name: str

    def generate_image_url(self, prompt: str) -> str:
        ...


def load_system_prompt(file_name: str) -> str:
    file_path = PROMPTS_DIR / file_name
    try:
        return file_path.read_text(encoding="utf-8")
    except FileNotFoundError as not_found_error:
        raise PromptFileError(f"Prompt file not found: {file_path}") from not_found_error
    except OSError as io_error:
        raise PromptFileError(f"Unable to read prompt file: {io_error}") from io_error


def serialize_prompt(user_prompt: UserPrompt) -> str:
    if isinstance(user_prompt, str):
        return user_prompt
    try:
        return json.dumps(user_prompt, indent=2, ensure_ascii=False)
    except TypeError:
        return str(user_prompt)


def _is_rate_limited_error(exc: Exception) -> bool:
    status_code = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if status_code == 429:
        return True
    return "RESOURCE_EXHAUSTED" in str(exc)


class OpenAIChatModel:
    def __init__(
        self,
        api_key: str,
        model_name: str = "gpt-4o-mini",
        temperature: float = 0.2,
        client: openai.OpenAI | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ProviderConfigurationError("Missing OpenAI API key.")
        self.name = model_name
        self.temperature = temperature
        self._client = client or openai.OpenAI(api_key=api_key)

    def complete(self, system_prompt: str, user_prompt: UserPrompt) -> str:
        try:
            response = self._client.chat.completions.create(
                model=self.name,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": serialize_prompt(user_prompt)},
                ],
            )
        except openai.RateLimitError as err:
            raise RateLimitedError(f"OpenAI rate limit reached for {self.name}") from err

        if not response.choices:
            raise ProviderResponseError(self.name, "no choices returned")
        return response.choices[0].message.content or ""


class OpenAIImageModel:
    def __init__(
        self,
        api_key: str,
        model_name: str = "dall-e-3",
        size: str = "1024x1024",
        client: openai.OpenAI | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ProviderConfigurationError("Missing OpenAI API key.")
        self.name = model_name
        self.size = size
        self._client = client or openai.OpenAI(api_key=api_key)

    def generate_image_url(self, prompt: str) -> str:
        try:
            response = self._client.images.generate(
                model=self.name,
                prompt=prompt,
                n=1,
                size=self.size,
                quality="hd",
                style="vivid",
            )
        except openai.RateLimitError as err:
            raise RateLimitedError(f"OpenAI image rate limit reached for {self.name}") from err

        if not response.data or not response.data[0].url:
            raise ProviderResponseError(self.name, "no image url returned")
        return response.data[0].url


class AnthropicChatModel:
    def __init__(
        self,
        api_key: str,
        model_name: str = "claude-3-5-haiku-latest",
        max_tokens: int = DEFAULT_MAX_TOKENS,
        client: anthropic.Anthropic | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ProviderConfigurationError("Missing Anthropic API key.")
        self.name = model_name
        self.max_tokens = max_tokens
        self._client = client or anthropic.Anthropic(api_key=api_key)

    def complete(self, system_prompt: str, user_prompt: UserPrompt) -> str:
        try:
            message = self._client.messages.create(
                model=self.name,
                max_tokens=self.max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": serialize_prompt(user_prompt)}],
            )
        except anthropic.RateLimitError as err:
            raise RateLimitedError(f"Anthropic rate limit reached for {self.name}") from err

        return "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )


class GeminiChatModel:
    def __init__(
        self,
        api_key: str,
        model_name: str = "gemini-2.5-flash",
        client: genai.Client | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ProviderConfigurationError("Missing Google API key.")
        self.name = model_name
        self._client = client or genai.Client(api_key=api_key)

    def complete(self, system_prompt: str, user_prompt: UserPrompt) -> str:
        try:
            response = self._client.models.generate_content(
                model=self.name,
                contents=serialize_prompt(user_prompt),
                config=types.GenerateContentConfig(system_instruction=system_prompt),
            )
        except ClientError as err:
            if _is_rate_limited_error(err):
                raise RateLimitedError(f"Gemini rate limit reached for {self.name}") from err
            raise

        # text is None when the candidate was blocked or empty
        if not response.text:
            raise ProviderResponseError(self.name, "no text in response")
        return response.text
