from __future__ import annotations

import os
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from google import genai
from google.genai import errors, types

from app.core.errors import TransportError
from app.core.settings import settings
from app.services.llm_base import ChatMessage, ChatStreamTransport, dev_echo_stream


class GeminiProvider(ChatStreamTransport):
    def __init__(self, api_key: Optional[str] = None, default_model: Optional[str] = None) -> None:
        # Pick up GEMINI_API_KEY from environment; allow missing for local/dev fallback
        key = api_key or os.getenv("GEMINI_API_KEY") or settings.gemini_api_key
        self.client = genai.Client(api_key=key) if key else None
        self._default_model = default_model or settings.gemini_model

    @staticmethod
    def _convert_messages(messages: Sequence[ChatMessage]) -> Tuple[Optional[str], List[types.Content]]:
        """Split the chat history into Gemini's system instruction and contents."""
        system_parts: List[str] = []
        contents: List[types.Content] = []
        for message in messages:
            role = message.get("role")
            text = message.get("content", "")
            if role == "system":
                system_parts.append(text)
                continue
            contents.append(
                types.Content(
                    role="model" if role == "assistant" else "user",
                    parts=[types.Part.from_text(text=text)],
                )
            )
        return ("\n\n".join(system_parts) or None), contents

    async def stream_bytes(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[bytes]:
        if self.client is None:
            async for piece in dev_echo_stream("gemini", messages):
                yield piece
            return

        system_instruction, contents = self._convert_messages(messages)
        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=model or self._default_model,
                contents=contents,
                config=types.GenerateContentConfig(
                    temperature=temperature,
                    system_instruction=system_instruction,
                ),
            )
            async for chunk in stream:
                text = getattr(chunk, "text", None)
                if isinstance(text, str) and text:
                    yield text.encode("utf-8")
        except errors.APIError as exc:
            raise TransportError(f"gemini stream failed: {exc}") from exc
