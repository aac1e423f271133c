from __future__ import annotations

import json
import asyncio
from typing import Any, Dict, Optional, Callable, AsyncGenerator


def format_sse_event(event_name: str, data: Dict[str, Any], event_id: Optional[str] = None) -> str:
    """
    SSE format:
      id: <optional>
      event: <name>
      data: <json string>

    Each event must end with a blank line.
    """
    json_payload = json.dumps(data, ensure_ascii=False)

    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event_name}")
    lines.append(f"data: {json_payload}")
    return "\n".join(lines) + "\n\n"


def format_sse_comment(comment: str = "heartbeat") -> str:
  """Build an SSE comment line. Proxies typically pass these and keep connections alive."""
  return f": {comment}\n\n"


async def stream_generation_as_sse(
  surface,
  start: Callable[[], Any],
  *,
  request,
  request_id: str,
  heartbeat_interval: float = 15.0,
) -> AsyncGenerator[str, None]:
  """Run one generation on `surface` and relay its buffer as an SSE stream.

  - Subscribes before starting so no chunk is missed
  - Produces a 'start' event, then 'content' events carrying each delta
  - Emits periodic SSE comments as heartbeats
  - Finishes with 'done' (after the result is persisted) or 'error'

  A client disconnect stops the relay only; the generation itself runs to
  completion and is still saved.
  """
  queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
  session = None

  def on_update(updated, text: str) -> None:
    if updated is session:
      queue.put_nowait(text)

  unsubscribe = surface.subscribe(on_update)
  try:
    session = start()
    session.task.add_done_callback(lambda _task: queue.put_nowait(None))

    yield format_sse_event("start", {"requestId": request_id, "sessionId": session.id})

    sent = 0
    while True:
      if await request.is_disconnected():  # type: ignore[attr-defined]
        return
      try:
        item = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
      except asyncio.TimeoutError:
        # Heartbeat comment to keep connections alive through proxies
        yield format_sse_comment()
        continue

      if item is None:
        break

      delta, sent = item[sent:], len(item)
      if delta:
        yield format_sse_event("content", {"requestId": request_id, "content": delta, "buffer": item})
  finally:
    unsubscribe()

  if session.error is not None:
    yield format_sse_event(
      "error",
      {
        "requestId": request_id,
        "message": str(session.error),
        "content": session.buffer,
        "recordId": session.record_id,
      },
    )
  else:
    yield format_sse_event(
      "done",
      {
        "requestId": request_id,
        "content": session.buffer,
        "recordId": session.record_id,
        "cancelled": session.cancelled,
      },
    )
