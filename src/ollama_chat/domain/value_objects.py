"""Value objects for the Ollama chat client.

This module defines immutable value objects with no identity: the validated
model name and the closed family of image references a message can carry.

Design Principles:
    - Immutability: All value objects are frozen dataclasses (slots=True)
    - Validation: Business rules enforced in __post_init__ methods
    - No I/O: Image references only describe where bytes live. Reading a
      file or fetching a URL happens in the infrastructure layer.

Key Value Objects:
    - ModelName: Validated, non-empty model identifier
    - LocalFile / RemoteUrl / InlineImage: Image reference variants
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path

from ollama_chat.domain.exceptions import InvalidArgumentError


@dataclass(slots=True, frozen=True)
class ModelName:
    """Value object representing a model name.

    Attributes:
        value: Model name string (e.g. "llama3.2:3b"). Must not be empty or
            whitespace-only.

    Raises:
        InvalidArgumentError: If model name is empty or whitespace-only.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value.strip():
            raise InvalidArgumentError("Model name cannot be empty")

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class LocalFile:
    """Image stored on the local filesystem, read at build time."""

    path: Path

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    def __str__(self) -> str:
        return str(self.path)


@dataclass(slots=True, frozen=True)
class RemoteUrl:
    """Image served over HTTP(S), fetched at build time."""

    url: str

    def __post_init__(self) -> None:
        if not self.url.startswith(("http://", "https://")):
            raise InvalidArgumentError(f"Image URL must start with http:// or https://: {self.url}")

    def __str__(self) -> str:
        return self.url


@dataclass(slots=True, frozen=True)
class InlineImage:
    """Image already held in memory as a base64 string.

    This is the only variant that reaches the wire; builders resolve
    LocalFile and RemoteUrl references into InlineImage before a request
    leaves the process.

    Attributes:
        data: Standard base64 encoding of the image bytes (no data-URL prefix).
    """

    data: str

    def __post_init__(self) -> None:
        if not self.data:
            raise InvalidArgumentError("Inline image data cannot be empty")

    @classmethod
    def from_bytes(cls, raw: bytes) -> InlineImage:
        return cls(base64.b64encode(raw).decode("ascii"))

    def to_bytes(self) -> bytes:
        """Decode the base64 payload.

        Raises:
            InvalidArgumentError: If the payload is not valid base64.
        """
        try:
            return base64.b64decode(self.data, validate=True)
        except binascii.Error as exc:
            raise InvalidArgumentError("Inline image data is not valid base64") from exc

    def __str__(self) -> str:
        return f"<inline image, {len(self.data)} base64 chars>"


ImageReference = LocalFile | RemoteUrl | InlineImage


def image_reference(value: ImageReference | Path | str | bytes) -> ImageReference:
    """Normalize caller input into an ImageReference.

    Args:
        value: An existing reference, a Path, raw bytes, or a string. Strings
            starting with http:// or https:// become RemoteUrl; any other
            string is treated as a local file path.

    Raises:
        InvalidArgumentError: If value is of an unsupported type or empty.
    """
    match value:
        case LocalFile() | RemoteUrl() | InlineImage():
            return value
        case Path():
            return LocalFile(value)
        case bytes() | bytearray():
            if not value:
                raise InvalidArgumentError("Image bytes cannot be empty")
            return InlineImage.from_bytes(bytes(value))
        case str() if value.startswith(("http://", "https://")):
            return RemoteUrl(value)
        case str() if value.strip():
            return LocalFile(Path(value))
        case _:
            raise InvalidArgumentError(f"Unsupported image reference: {value!r}")


__all__ = [
    "ImageReference",
    "InlineImage",
    "LocalFile",
    "ModelName",
    "RemoteUrl",
    "image_reference",
]
