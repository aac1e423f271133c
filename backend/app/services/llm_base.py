from __future__ import annotations

from typing import AsyncIterator, Mapping, Optional, Protocol, Sequence


ChatMessage = Mapping[str, str]


class ChatStreamTransport(Protocol):
    def stream_bytes(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
    ) -> AsyncIterator[bytes]:
        """Stream the completion for a chat history as UTF-8 byte fragments.

        Fragment boundaries are arbitrary; a multi-byte character may be split
        across two fragments. Cancelling the pending read closes the stream.
        """
        ...


async def dev_echo_stream(provider: str, messages: Sequence[ChatMessage]) -> AsyncIterator[bytes]:
    """Fallback stream used when a provider has no credentials configured."""
    last_user = next((m["content"] for m in reversed(messages) if m.get("role") == "user"), "")
    yield f"[dev-fallback:{provider}] ".encode("utf-8")
    yield f"You asked: {last_user}".encode("utf-8")
