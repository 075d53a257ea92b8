"""Chat-completion client wrapper for the Cat Generator.

This module provides :class:`StoryModel`, the single point of contact with
the hosted multimodal chat model.  Every generation step goes through one of
its two calls:

- :meth:`StoryModel.complete_json` sends a system instruction, a user
  message and (optionally) the cat portrait, asks for a JSON object and
  returns the parsed dictionary.
- :meth:`StoryModel.open_stream` starts a streamed completion and returns an
  iterator of :class:`StreamDelta` items as tokens arrive.

Key Responsibilities
--------------------
- **Lazy client creation**: the ``openai.OpenAI`` client is only built on the
  first call, so the application starts without a credential.  A missing
  ``OPENAI_API_KEY`` then surfaces as an error on that call, which the
  fallback layer absorbs.
- **Tolerant JSON parsing**: model output wrapped in code fences or padded
  with prose is still accepted when it contains one JSON object.
- **No retries**: a failed call fails once.

Usage
-----
::

    from catgen.core.config import config
    from catgen.core.story_model import StoryModel

    model = StoryModel(config)
    data = model.complete_json(
        system_prompt="Return {\\"name\\": ...}",
        user_prompt="Name this cat.",
        image_base64=encoded_png,
    )
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from catgen.core.config import CatgenConfig
from catgen.core.errors import ModelResponseError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_json_content(content: str | None) -> Any:
    """Parse the JSON carried by a model message.

    Accepts plain JSON, JSON wrapped in a Markdown code fence, and JSON
    embedded in surrounding prose (the first ``{...}`` span is tried).

    Raises:
        ModelResponseError: If the content is empty or holds no valid JSON.
    """
    if not content or not content.strip():
        raise ModelResponseError("Empty response from model")

    cleaned = _CODE_FENCE.sub("", content.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(cleaned)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                pass
    raise ModelResponseError("Model response is not valid JSON")


def build_user_content(text: str, image_base64: str | None) -> str | list[dict]:
    """Build the user message content, attaching the image when given."""
    if not image_base64:
        return text
    return [
        {"type": "text", "text": text},
        {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{image_base64}"}},
    ]


@dataclass(frozen=True)
class StreamDelta:
    """One chunk of a streamed completion.

    Attributes:
        text: Text carried by the chunk (may be empty).
        finish_reason: Set on the chunk that ends the completion.
    """

    text: str = ""
    finish_reason: str | None = None


class StoryModel:
    """Thin wrapper around the OpenAI chat-completions API.

    Attributes:
        _config (CatgenConfig):
            Application configuration, providing the model name and API key.
        _client:
            The ``openai.OpenAI`` client, created on first use, or injected
            (tests pass a mock).
    """

    def __init__(self, config: CatgenConfig, client: Any | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def model_name(self) -> str:
        return self._config.openai_model

    @property
    def client(self) -> Any:
        """The underlying ``openai.OpenAI`` client, created lazily.

        Raises:
            openai.OpenAIError: If no API key is configured.
        """
        if self._client is None:
            from openai import OpenAI

            logger.info("Creating OpenAI client for model '%s'.", self._config.openai_model)
            self._client = OpenAI(api_key=self._config.openai_api_key)
        return self._client

    def _messages(
        self, system_prompt: str, user_prompt: str, image_base64: str | None
    ) -> list[dict]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": build_user_content(user_prompt, image_base64)},
        ]

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        image_base64: str | None = None,
        **options: Any,
    ) -> Any:
        """Request a JSON object and return it parsed.

        Args:
            system_prompt: Instruction describing the task and JSON shape.
            user_prompt: The user turn.
            image_base64: Optional PNG portrait, base64-encoded without the
                ``data:`` prefix.
            **options: Extra completion parameters (``temperature``,
                ``max_tokens`` and so on).

        Returns:
            The decoded JSON value.

        Raises:
            ModelResponseError: If the answer is empty or not JSON.
            openai.OpenAIError: On transport or API failures.
        """
        response = self.client.chat.completions.create(
            model=self._config.openai_model,
            messages=self._messages(system_prompt, user_prompt, image_base64),
            response_format={"type": "json_object"},
            **options,
        )
        content = response.choices[0].message.content if response.choices else None
        logger.debug("Model answered with %d characters.", len(content or ""))
        return parse_json_content(content)

    def open_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        image_base64: str | None = None,
        **options: Any,
    ) -> Iterator[StreamDelta]:
        """Start a streamed completion.

        The request is sent immediately so that connection and
        authentication failures raise here, before any byte is sent to the
        caller.  Iterating the result yields the deltas as they arrive.

        Raises:
            openai.OpenAIError: If the stream cannot be opened.
        """
        stream = self.client.chat.completions.create(
            model=self._config.openai_model,
            messages=self._messages(system_prompt, user_prompt, image_base64),
            stream=True,
            **options,
        )
        return self._iter_deltas(stream)

    @staticmethod
    def _iter_deltas(stream: Any) -> Iterator[StreamDelta]:
        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = getattr(choice, "delta", None)
                text = getattr(delta, "content", None) or ""
                finish_reason = getattr(choice, "finish_reason", None)
                if text or finish_reason:
                    yield StreamDelta(text=text, finish_reason=finish_reason)
        finally:
            # Runs on early exit too.
            close = getattr(stream, "close", None)
            if close is not None:
                close()

    def close(self) -> None:
        """Close the underlying client if one was created."""
        if self._client is not None and hasattr(self._client, "close"):
            self._client.close()
            logger.info("Model client closed.")
