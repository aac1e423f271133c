from __future__ import annotations

from typing import AsyncIterator, Optional, Sequence

import openai
from openai import AsyncOpenAI

from app.core.errors import TransportError
from app.core.settings import settings
from app.services.llm_base import ChatMessage, ChatStreamTransport, dev_echo_stream


class OpenAIProvider(ChatStreamTransport):
    """Chat Completions streaming via the official `openai` SDK.

    Each content delta is re-encoded as UTF-8 so the consumer sees the same
    byte stream a raw HTTP reader would. Without `OPENAI_API_KEY` the provider
    streams a development echo instead.
    """

    def __init__(self, api_key: Optional[str] = None, default_model: Optional[str] = None) -> None:
        self._api_key = api_key or settings.openai_api_key
        self._default_model = default_model or settings.openai_model
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def stream_bytes(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[bytes]:
        if not self._api_key:
            async for piece in dev_echo_stream("openai", messages):
                yield piece
            return

        try:
            stream = await self._get_client().chat.completions.create(
                model=model or self._default_model,
                messages=[dict(m) for m in messages],
                temperature=temperature,
                stream=True,
            )
        except openai.OpenAIError as exc:
            raise TransportError(f"openai request failed: {exc}") from exc

        try:
            async for chunk in stream:
                if not chunk or not chunk.choices:
                    continue
                text = getattr(chunk.choices[0].delta, "content", None)
                if isinstance(text, str) and text:
                    yield text.encode("utf-8")
        except openai.OpenAIError as exc:
            raise TransportError(f"openai stream dropped: {exc}") from exc
        finally:
            # Releases the HTTP connection, also when the read is cancelled
            await stream.close()
