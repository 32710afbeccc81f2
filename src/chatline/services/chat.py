"""OpenAI SDK wrapper and the streaming chat turn."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, AsyncIterator, Callable

import httpx
from openai import AsyncOpenAI, OpenAIError

from ..cli import renderer
from ..session import Session
from ..transcript import Transcript

logger = logging.getLogger(__name__)


class ChatRequestError(Exception):
    """Raised when a streaming request cannot be established."""


class ChatCancelledError(Exception):
    """Raised when the user cancels a request before the stream opens."""


async def _reap(task: asyncio.Future[Any]) -> None:
    """Cancel ``task`` and wait for it to finish unwinding."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Cancelled task ended with error", exc_info=True)


def build_messages(system_prompt: str, transcript: Transcript, line: str) -> list[dict[str, str]]:
    """System prompt, then the whole transcript, then ``line`` again as a trailing user message.

    The transcript already ends with ``line`` by the time this is called, so the
    newest user message is sent twice. Kept as-is to match existing behaviour.
    """
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(transcript.to_messages())
    messages.append({"role": "user", "content": line})
    return messages


class ChunkStream:
    """Lazy, single-pass sequence of text chunks from one streaming completion.

    Iteration stops at end of stream, on a mid-stream error (kept in ``error``)
    or when ``cancel_event`` is set.  The underlying response is closed however
    iteration ends.
    """

    def __init__(self, stream: Any, cancel_event: asyncio.Event | None = None) -> None:
        self._stream = stream
        self._cancel_event = cancel_event
        self._started = False
        self._closed = False
        self.error: BaseException | None = None
        self.cancelled = False

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("ChunkStream can only be iterated once")
        self._started = True
        return self._iterate()

    async def _next_chunk(self, stream_iter: AsyncIterator[Any]) -> Any:
        """Wait for the next chunk, or for cancellation, whichever comes first."""
        if self._cancel_event is None:
            return await stream_iter.__anext__()

        next_chunk = asyncio.ensure_future(stream_iter.__anext__())
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _pending = await asyncio.wait([next_chunk, cancel_wait], return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            next_chunk.cancel()
            cancel_wait.cancel()
            raise

        if cancel_wait in done and next_chunk not in done:
            await _reap(next_chunk)
            self.cancelled = True
            raise StopAsyncIteration
        cancel_wait.cancel()
        return next_chunk.result()

    async def _iterate(self) -> AsyncIterator[str]:
        stream_iter = self._stream.__aiter__()
        try:
            while True:
                try:
                    chunk = await self._next_chunk(stream_iter)
                except StopAsyncIteration:
                    return
                except Exception as e:
                    logger.warning("Stream ended with error: %s", e, exc_info=True)
                    self.error = e
                    return

                choice = chunk.choices[0] if chunk.choices else None
                if choice is None or choice.delta is None:
                    continue
                if choice.delta.content:
                    yield choice.delta.content
        finally:
            close_iter = getattr(stream_iter, "aclose", None)
            if close_iter is not None:
                try:
                    await close_iter()
                except Exception:
                    logger.debug("Failed to close stream iterator", exc_info=True)
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._stream, "close", None)
        if close is None:
            return
        try:
            await close()
        except Exception:
            logger.debug("Failed to close stream", exc_info=True)


class ChatService:
    """Async context manager owning the HTTP client used for completions."""

    def __init__(self, base_url: str = "", api_key: str | None = None) -> None:
        self.base_url = base_url
        # No read deadline: a response may take as long as the backend needs
        self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(None))
        self.client = AsyncOpenAI(
            base_url=base_url or None,
            api_key=api_key if api_key is not None else os.environ.get("OPENAI_API_KEY", ""),
            http_client=self._http_client,
        )

    async def __aenter__(self) -> ChatService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def open_stream(
        self,
        model: str,
        messages: list[dict[str, str]],
        cancel_event: asyncio.Event | None = None,
    ) -> ChunkStream:
        """Start a streaming completion.

        Raises ChatRequestError if the request cannot be established, and
        ChatCancelledError if ``cancel_event`` fires while still connecting.
        """
        logger.debug("Requesting %s with %d messages", model, len(messages))
        try:
            if cancel_event is None:
                stream = await self.client.chat.completions.create(model=model, messages=messages, stream=True)
            else:
                stream = await self._create_cancellable(model, messages, cancel_event)
        except (OpenAIError, httpx.HTTPError) as e:
            logger.warning("Chat request failed: %s", type(e).__name__)
            raise ChatRequestError(str(e)) from e
        return ChunkStream(stream, cancel_event)

    async def _create_cancellable(
        self,
        model: str,
        messages: list[dict[str, str]],
        cancel_event: asyncio.Event,
    ) -> Any:
        create_task = asyncio.ensure_future(
            self.client.chat.completions.create(model=model, messages=messages, stream=True)
        )
        cancel_wait = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _pending = await asyncio.wait([create_task, cancel_wait], return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            create_task.cancel()
            cancel_wait.cancel()
            raise

        if cancel_wait in done and create_task not in done:
            await _reap(create_task)
            logger.info("Cancelled while connecting")
            raise ChatCancelledError("Response cancelled")
        cancel_wait.cancel()
        return create_task.result()


async def run_chat_turn(
    session: Session,
    service: ChatService,
    line: str,
    cancel_event: asyncio.Event | None = None,
    on_chunk: Callable[[str], None] | None = None,
) -> str | None:
    """Send ``line`` to the model and stream the answer into the transcript.

    Returns the accumulated response, or None when the request could not be
    established or was cancelled before the stream opened (the turn is
    abandoned and the user line stays in the transcript).
    """
    session.last_response = None
    session.transcript.add_user(line)
    messages = build_messages(session.system_prompt, session.transcript, line)

    try:
        stream = await service.open_stream(session.model, messages, cancel_event)
    except ChatRequestError as e:
        renderer.render_error(str(e))
        return None
    except ChatCancelledError:
        renderer.render_cancelled()
        return None

    emit = on_chunk or renderer.render_chunk
    parts: list[str] = []
    try:
        async for chunk in stream:
            parts.append(chunk)
            emit(chunk)
    finally:
        await stream.aclose()
        response = "".join(parts)
        session.transcript.add_assistant(response)
        session.last_response = response
        renderer.render_response_end()

    if stream.cancelled:
        renderer.render_cancelled()
    if stream.error is not None:
        renderer.render_error(f"Stream interrupted: {stream.error}")

    if session.render_markdown:
        renderer.render_markdown_block(response, session.theme)
    return response
