"""Streaming response assembly.

The StreamingAssembler consumes the fragments of a streamed response one at
a time and turns them into a final ChatResult or GenerateResult whose text
is the exact concatenation of the fragment texts in arrival order.

State machine:
    IDLE -> STREAMING -> DONE      (terminal, result available)
    IDLE -> STREAMING -> FAILED    (terminal, accumulator discarded)

Key behaviors:
    - Each fragment is fully processed (appended, callback invoked) before
      the next one is accepted; processing is serialized with a lock
    - Chat mode passes the incremental fragment text to the callback;
      generate mode passes the cumulative text observed so far
    - The callback fires once per fragment, including empty and terminal ones
    - Errors raised by the fragment source (transport failures, timeouts,
      cancellation) move the assembler to FAILED and are re-raised unchanged
    - No text is trimmed; trimming is the caller's business
"""

from __future__ import annotations

import logging
import threading
from collections.abc import AsyncIterable, Callable, Iterable
from enum import StrEnum

from ollama_chat.domain.entities import Message, ToolCall
from ollama_chat.domain.exceptions import StreamingFailure
from ollama_chat.domain.results import (
    ChatResult,
    GenerateResult,
    ResponseStatistics,
    StreamFragment,
)

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], None]
AssembledResult = ChatResult | GenerateResult


class StreamMode(StrEnum):
    """Which endpoint the fragments come from."""

    CHAT = "chat"
    GENERATE = "generate"


class AssemblerState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    DONE = "done"
    FAILED = "failed"


class StreamingAssembler:
    """Reassembles streamed fragments into a final result.

    Attributes:
        mode: StreamMode.CHAT or StreamMode.GENERATE.
        history: Conversation history the request was built from. The chat
            result appends the assistant reply to it.

    Thread safety:
        ``feed`` may be called from any thread, but fragments must be fed by
        a single producer in arrival order. The internal lock only keeps two
        fragments from being processed at the same time.

    Example:
        >>> chunks = []
        >>> assembler = StreamingAssembler(StreamMode.CHAT, on_token=chunks.append)
        >>> result = assembler.consume([
        ...     StreamFragment(text="Par"),
        ...     StreamFragment(text="is", done=True),
        ... ])
        >>> "".join(chunks) == result.response == "Paris"
        True
    """

    __slots__ = (
        "_context",
        "_fragments",
        "_history",
        "_lock",
        "_on_token",
        "_result",
        "_state",
        "_statistics",
        "_text",
        "_tool_calls",
        "mode",
    )

    def __init__(
        self,
        mode: StreamMode,
        history: Iterable[Message] = (),
        on_token: TokenCallback | None = None,
    ) -> None:
        self.mode = StreamMode(mode)
        self._history = tuple(history)
        self._on_token = on_token
        self._lock = threading.RLock()
        self._state = AssemblerState.IDLE
        self._text = ""
        self._fragments = 0
        self._tool_calls: list[ToolCall] = []
        self._statistics: ResponseStatistics | None = None
        self._context: tuple[int, ...] | None = None
        self._result: AssembledResult | None = None

    @property
    def history(self) -> tuple[Message, ...]:
        return self._history

    @property
    def state(self) -> AssemblerState:
        return self._state

    @property
    def text(self) -> str:
        """Text accumulated so far."""
        return self._text

    @property
    def fragments_received(self) -> int:
        return self._fragments

    def feed(self, fragment: StreamFragment) -> AssembledResult | None:
        """Process one fragment.

        Returns:
            The final result when ``fragment.done`` is true, otherwise None.

        Raises:
            StreamingFailure: If the assembler already finished or failed, or
                the fragment carries a service error.
            Exception: Anything raised by the token callback, unchanged (the
                assembler moves to FAILED first).
        """
        with self._lock:
            if self._state in (AssemblerState.DONE, AssemblerState.FAILED):
                msg = f"Cannot accept fragments in state '{self._state}'"
                raise StreamingFailure(msg)
            if fragment.error:
                self.abort()
                msg = f"Service reported an error mid-stream: {fragment.error}"
                raise StreamingFailure(msg)

            self._state = AssemblerState.STREAMING
            self._fragments += 1
            self._text += fragment.text
            if fragment.tool_calls:
                self._tool_calls.extend(fragment.tool_calls)

            if self._on_token is not None:
                observed = fragment.text if self.mode is StreamMode.CHAT else self._text
                try:
                    self._on_token(observed)
                except Exception:
                    self.abort()
                    raise

            if not fragment.done:
                return None

            self._statistics = fragment.statistics
            self._context = fragment.context
            self._result = self._build_result()
            self._state = AssemblerState.DONE
            logger.debug(
                "Assembled %s response from %d fragments (%d chars)",
                self.mode,
                self._fragments,
                len(self._text),
            )
            return self._result

    def consume(self, fragments: Iterable[StreamFragment]) -> AssembledResult:
        """Feed every fragment from ``fragments`` and return the final result.

        Raises:
            StreamingFailure: If the source ends before a ``done`` fragment.
            Exception: Anything the source raises, unchanged.
        """
        try:
            for fragment in fragments:
                result = self.feed(fragment)
                if result is not None:
                    return result
        except BaseException:
            # includes KeyboardInterrupt and cancellation
            self.abort()
            raise
        return self.finish()

    async def aconsume(self, fragments: AsyncIterable[StreamFragment]) -> AssembledResult:
        """Async counterpart of ``consume``.

        Raises:
            StreamingFailure: If the source ends before a ``done`` fragment.
            Exception: Anything the source raises (including
                asyncio.CancelledError), unchanged.
        """
        try:
            async for fragment in fragments:
                result = self.feed(fragment)
                if result is not None:
                    return result
        except BaseException:
            self.abort()
            raise
        return self.finish()

    def result(self) -> AssembledResult:
        """Return the final result.

        Raises:
            StreamingFailure: If the assembler has not reached DONE.
        """
        if self._state is not AssemblerState.DONE or self._result is None:
            msg = f"No result available in state '{self._state}'"
            raise StreamingFailure(msg)
        return self._result

    def finish(self) -> AssembledResult:
        """Signal that the fragment source is exhausted and return the result.

        Used when fragments are pushed through ``feed`` (e.g. from a transport
        callback) rather than pulled with ``consume``.

        Raises:
            StreamingFailure: If no ``done`` fragment was received.
        """
        if self._state is AssemblerState.DONE and self._result is not None:
            return self._result
        received = self._fragments
        self.abort()
        msg = f"Stream ended after {received} fragments without a final 'done' fragment"
        raise StreamingFailure(msg)

    def abort(self) -> None:
        """Move to FAILED and discard accumulated text. No-op once DONE."""
        with self._lock:
            if self._state is AssemblerState.DONE:
                return
            self._state = AssemblerState.FAILED
            self._text = ""
            self._tool_calls = []
            self._result = None

    def _build_result(self) -> AssembledResult:
        match self.mode:
            case StreamMode.CHAT:
                reply = Message.reply(self._text, tuple(self._tool_calls) or None)
                return ChatResult(
                    response=self._text,
                    history=(*self._history, reply),
                    statistics=self._statistics,
                )
            case StreamMode.GENERATE:
                return GenerateResult(
                    response=self._text,
                    statistics=self._statistics,
                    context=self._context,
                )


__all__ = [
    "AssembledResult",
    "AssemblerState",
    "StreamMode",
    "StreamingAssembler",
    "TokenCallback",
]
