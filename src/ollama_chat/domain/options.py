"""Generation options model.

Options are a typed and extensible key/value bag of generation parameters.
Every value is held as a tagged variant (IntValue, FloatValue, StringValue,
BoolValue) validated when it is set, so serialization never has to guess
whether ``1`` meant an integer or a float.

Key behaviors:
    - Well-known options have a fixed kind (temperature is a float, seed is
      an int). Setting temperature to ``1`` stores ``1.0``.
    - Custom options accept exactly int, float, str or bool values. Anything
      else raises InvalidOptionTypeError at set time.
    - OptionsBuilder is mutable and reusable; every ``build()`` returns an
      immutable Options snapshot reflecting all prior sets.
    - Options merge last-write-wins per key.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import ClassVar

from ollama_chat.domain.exceptions import InvalidArgumentError, InvalidOptionTypeError

OptionPrimitive = int | float | str | bool


class OptionKind(StrEnum):
    """Runtime kind of an option value."""

    INT = "int"
    FLOAT = "float"
    STRING = "string"
    BOOL = "bool"


@dataclass(slots=True, frozen=True)
class IntValue:
    value: int
    kind: ClassVar[OptionKind] = OptionKind.INT


@dataclass(slots=True, frozen=True)
class FloatValue:
    value: float
    kind: ClassVar[OptionKind] = OptionKind.FLOAT


@dataclass(slots=True, frozen=True)
class StringValue:
    value: str
    kind: ClassVar[OptionKind] = OptionKind.STRING


@dataclass(slots=True, frozen=True)
class BoolValue:
    value: bool
    kind: ClassVar[OptionKind] = OptionKind.BOOL


OptionValue = IntValue | FloatValue | StringValue | BoolValue

WELL_KNOWN_OPTIONS: Mapping[str, OptionKind] = MappingProxyType(
    {
        "mirostat": OptionKind.INT,
        "mirostat_eta": OptionKind.FLOAT,
        "mirostat_tau": OptionKind.FLOAT,
        "num_ctx": OptionKind.INT,
        "num_gqa": OptionKind.INT,
        "num_gpu": OptionKind.INT,
        "num_thread": OptionKind.INT,
        "repeat_last_n": OptionKind.INT,
        "repeat_penalty": OptionKind.FLOAT,
        "temperature": OptionKind.FLOAT,
        "seed": OptionKind.INT,
        "stop": OptionKind.STRING,
        "tfs_z": OptionKind.FLOAT,
        "num_predict": OptionKind.INT,
        "top_k": OptionKind.INT,
        "top_p": OptionKind.FLOAT,
        "min_p": OptionKind.FLOAT,
    }
)
"""Wire key -> enforced kind for every option documented by the service."""


def option_value(value: object) -> OptionValue:
    """Wrap a raw value in its tagged variant.

    Args:
        value: Raw option value.

    Returns:
        The matching OptionValue variant.

    Raises:
        InvalidOptionTypeError: If value is not an int, float, str or bool.
    """
    # bool is a subclass of int, so it has to be matched first
    match value:
        case bool():
            return BoolValue(value)
        case int():
            return IntValue(value)
        case float():
            return FloatValue(value)
        case str():
            return StringValue(value)
        case _:
            msg = (
                f"Unsupported option value type {type(value).__name__}; "
                "expected int, float, str or bool"
            )
            raise InvalidOptionTypeError(msg)


def coerce_option(name: str, value: object) -> OptionValue:
    """Validate ``value`` for option ``name`` and wrap it.

    Well-known options are coerced to their declared kind (an int given for
    a float option becomes a float; an integral float given for an int
    option becomes an int). Custom options keep the kind of their value.

    Raises:
        InvalidOptionTypeError: If the value has an unsupported type or is
            incompatible with the option's declared kind.
    """
    wrapped = option_value(value)
    kind = WELL_KNOWN_OPTIONS.get(name)
    if kind is None or kind is wrapped.kind:
        return wrapped

    match kind, wrapped:
        case OptionKind.FLOAT, IntValue(value=number):
            return FloatValue(float(number))
        case OptionKind.INT, FloatValue(value=number) if number.is_integer():
            return IntValue(int(number))
        case _:
            msg = f"Option '{name}' expects {kind.value}, got {wrapped.kind.value}"
            raise InvalidOptionTypeError(msg)


class Options(Mapping[str, OptionPrimitive]):
    """Immutable snapshot of generation options.

    Behaves as a read-only mapping from wire key to primitive value.
    Equality is kind-sensitive: ``{"seed": 1}`` and ``{"seed": 1.0}`` are
    different option sets even though ``1 == 1.0``.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, OptionValue] | None = None) -> None:
        self._values: Mapping[str, OptionValue] = MappingProxyType(dict(values or {}))

    @classmethod
    def from_mapping(cls, data: Mapping[str, object] | None) -> Options:
        """Build options from a plain mapping (e.g. a decoded JSON object)."""
        if not data:
            return cls()
        return cls({name: coerce_option(name, value) for name, value in data.items()})

    def __getitem__(self, key: str) -> OptionPrimitive:
        return self._values[key].value

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Options):
            return dict(self._values) == dict(other._values)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._values.items()))

    def __repr__(self) -> str:
        return f"Options({self.to_wire()!r})"

    def value_of(self, key: str) -> OptionValue:
        """Return the tagged variant stored for ``key``."""
        return self._values[key]

    def merged(self, other: Mapping[str, object]) -> Options:
        """Return a new snapshot with ``other`` applied last-write-wins."""
        values = dict(self._values)
        if isinstance(other, Options):
            values.update(other._values)
        else:
            values.update({name: coerce_option(name, value) for name, value in other.items()})
        return Options(values)

    def to_wire(self) -> dict[str, OptionPrimitive]:
        """Return the JSON-ready ``options`` object."""
        return {name: wrapped.value for name, wrapped in self._values.items()}


class OptionsBuilder:
    """Mutable, reusable builder for Options snapshots.

    Example:
        >>> builder = OptionsBuilder()
        >>> options = builder.set_temperature(0.7).set_seed(42).build()
        >>> options["temperature"], options["seed"]
        (0.7, 42)
    """

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: dict[str, OptionValue] = {}

    def _set(self, name: str, value: object) -> OptionsBuilder:
        self._values[name] = coerce_option(name, value)
        return self

    def set_mirostat(self, value: int) -> OptionsBuilder:
        """Enable Mirostat sampling (0 = disabled, 1 = Mirostat, 2 = Mirostat 2.0)."""
        return self._set("mirostat", value)

    def set_mirostat_eta(self, value: float) -> OptionsBuilder:
        """Mirostat learning rate."""
        return self._set("mirostat_eta", value)

    def set_mirostat_tau(self, value: float) -> OptionsBuilder:
        """Mirostat target balance between coherence and diversity."""
        return self._set("mirostat_tau", value)

    def set_num_ctx(self, value: int) -> OptionsBuilder:
        """Size of the context window in tokens."""
        return self._set("num_ctx", value)

    def set_num_gqa(self, value: int) -> OptionsBuilder:
        return self._set("num_gqa", value)

    def set_num_gpu(self, value: int) -> OptionsBuilder:
        """Number of layers to offload to the GPU."""
        return self._set("num_gpu", value)

    def set_num_thread(self, value: int) -> OptionsBuilder:
        return self._set("num_thread", value)

    def set_repeat_last_n(self, value: int) -> OptionsBuilder:
        """How far back the model looks to prevent repetition."""
        return self._set("repeat_last_n", value)

    def set_repeat_penalty(self, value: float) -> OptionsBuilder:
        return self._set("repeat_penalty", value)

    def set_temperature(self, value: float) -> OptionsBuilder:
        """Sampling temperature. Higher values are more creative."""
        return self._set("temperature", value)

    def set_seed(self, value: int) -> OptionsBuilder:
        """Random seed; the same seed and prompt yield the same output."""
        return self._set("seed", value)

    def set_stop(self, value: str) -> OptionsBuilder:
        """Stop sequence that ends generation."""
        return self._set("stop", value)

    def set_tfs_z(self, value: float) -> OptionsBuilder:
        """Tail free sampling factor (1.0 disables it)."""
        return self._set("tfs_z", value)

    def set_num_predict(self, value: int) -> OptionsBuilder:
        """Maximum number of tokens to predict (-1 = infinite)."""
        return self._set("num_predict", value)

    def set_top_k(self, value: int) -> OptionsBuilder:
        return self._set("top_k", value)

    def set_top_p(self, value: float) -> OptionsBuilder:
        return self._set("top_p", value)

    def set_min_p(self, value: float) -> OptionsBuilder:
        return self._set("min_p", value)

    def set_custom_option(self, name: str, value: object) -> OptionsBuilder:
        """Set an option the service accepts but this builder has no setter for.

        Args:
            name: Option name, passed to the service unchanged.
            value: int, float, str or bool.

        Raises:
            InvalidArgumentError: If name is empty.
            InvalidOptionTypeError: If value has an unsupported type.
        """
        if not name or not name.strip():
            raise InvalidArgumentError("Option name cannot be empty")
        return self._set(name, value)

    def build(self) -> Options:
        """Return an immutable snapshot of every option set so far."""
        return Options(self._values)


__all__ = [
    "WELL_KNOWN_OPTIONS",
    "BoolValue",
    "FloatValue",
    "IntValue",
    "OptionKind",
    "OptionPrimitive",
    "OptionValue",
    "Options",
    "OptionsBuilder",
    "StringValue",
    "coerce_option",
    "option_value",
]
