from __future__ import annotations

from typing import AsyncIterator, Optional, Sequence

import ollama

from app.core.errors import TransportError
from app.core.settings import settings
from app.services.llm_base import ChatMessage, ChatStreamTransport


class OllamaProvider(ChatStreamTransport):
    """LLM provider backed by a local Ollama server.

    Requires the Ollama daemon running locally (default http://localhost:11434)
    and the model (default: llama3.2) pulled via `ollama pull llama3.2`.
    """

    def __init__(self, host: Optional[str] = None, default_model: Optional[str] = None) -> None:
        self.host = host or settings.ollama_host
        self._default_model = default_model or settings.ollama_model
        self._client = ollama.AsyncClient(host=self.host)

    async def stream_bytes(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[bytes]:
        try:
            stream = await self._client.chat(
                model=model or self._default_model,
                messages=[dict(m) for m in messages],
                options={"temperature": temperature},
                stream=True,
            )
            async for part in stream:
                text = part["message"]["content"] or ""
                if text:
                    yield text.encode("utf-8")
        except (ollama.ResponseError, ConnectionError) as exc:
            raise TransportError(f"ollama stream failed: {exc}") from exc
