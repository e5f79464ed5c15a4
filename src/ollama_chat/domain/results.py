"""Result model and stream fragments.

Results are the terminal values handed back to callers; fragments are the
incremental pieces a streamed response is made of. Both are immutable.

Key Entities:
    - ResponseStatistics: Timing and token counts reported with ``done=true``
    - StreamFragment: One decoded NDJSON line of a streamed response
    - ChatResult: Response text plus the updated conversation history
    - GenerateResult: Response text of a stateless generation (no history)
"""

from __future__ import annotations

from dataclasses import dataclass

from ollama_chat.domain.entities import Message, Role, ToolCall


@dataclass(slots=True, frozen=True)
class ResponseStatistics:
    """Statistics reported by the service on the final response object.

    All duration values are in nanoseconds, as the service reports them.

    Attributes:
        model: Model name echoed by the service.
        created_at: Service timestamp of the final object (ISO 8601).
        done_reason: Why generation stopped ("stop", "length", "load", ...).
        total_duration: Total time spent on the request.
        load_duration: Time spent loading the model (0 when already loaded).
        prompt_eval_count: Number of prompt tokens evaluated.
        prompt_eval_duration: Time spent evaluating the prompt.
        eval_count: Number of tokens generated.
        eval_duration: Time spent generating.
    """

    model: str | None = None
    created_at: str | None = None
    done_reason: str | None = None
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    prompt_eval_duration: int = 0
    eval_count: int = 0
    eval_duration: int = 0

    @property
    def total_duration_ms(self) -> float:
        return self.total_duration / 1_000_000

    @property
    def load_duration_ms(self) -> float:
        return self.load_duration / 1_000_000

    @property
    def model_warm_start(self) -> bool:
        """True when the model was already loaded."""
        return self.load_duration == 0

    @property
    def tokens_per_second(self) -> float | None:
        """Generation throughput, or None when the service reported no timing."""
        if not self.eval_duration:
            return None
        return self.eval_count / (self.eval_duration / 1_000_000_000)


@dataclass(slots=True, frozen=True)
class StreamFragment:
    """One incremental piece of a streamed response.

    Attributes:
        text: Partial text carried by this fragment (may be empty).
        done: True for the terminal fragment.
        role: Role of the message being streamed (chat only).
        statistics: Present on the terminal fragment.
        tool_calls: Tool calls carried by this fragment, if any.
        context: Token context (generate only, terminal fragment).
        error: Error message reported by the service mid-stream.
    """

    text: str = ""
    done: bool = False
    role: Role = Role.ASSISTANT
    statistics: ResponseStatistics | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    context: tuple[int, ...] | None = None
    error: str | None = None


@dataclass(slots=True, frozen=True)
class ChatResult:
    """Result of a chat call.

    Attributes:
        response: Assistant reply text, exactly as the service produced it.
        history: Conversation history ending with the assistant reply.
        statistics: Timing and token counts, when the service reported them.
    """

    response: str
    history: tuple[Message, ...]
    statistics: ResponseStatistics | None = None

    @property
    def message(self) -> Message:
        """The assistant reply as a Message (last entry of history)."""
        return self.history[-1]


@dataclass(slots=True, frozen=True)
class GenerateResult:
    """Result of a stateless generation call.

    Attributes:
        response: Generated text, exactly as the service produced it.
        statistics: Timing and token counts, when the service reported them.
        context: Token context returned by the service for continuation.
    """

    response: str
    statistics: ResponseStatistics | None = None
    context: tuple[int, ...] | None = None


__all__ = ["ChatResult", "GenerateResult", "ResponseStatistics", "StreamFragment"]
