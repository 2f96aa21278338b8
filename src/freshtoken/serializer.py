"""JSON (de)serialisation of token endpoint payloads.

:class:`Serializer` is the seam the token endpoint uses to encode grant
requests and decode response bodies. :class:`JsonSerializer`, the default,
delegates to Pydantic: decoding validates the document against the target
model, so a body that is not JSON and a body that is JSON of the wrong shape
both raise :class:`ValueError` (:class:`pydantic.ValidationError`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


class Serializer(ABC):
    @abstractmethod
    def to_json(self, obj: BaseModel) -> bytes:
        """Encode ``obj`` as a UTF-8 JSON document."""
        ...

    @abstractmethod
    def from_json(self, data: bytes, model: type[M]) -> M:
        """Decode ``data`` into an instance of ``model``.

        Raises:
            ValueError: If ``data`` is not valid JSON for ``model``.
        """
        ...


class JsonSerializer(Serializer):
    """Pydantic-backed :class:`Serializer`. ``None`` fields are omitted on encode."""

    def to_json(self, obj: BaseModel) -> bytes:
        return obj.model_dump_json(exclude_none=True, by_alias=True).encode("utf-8")

    def from_json(self, data: bytes, model: type[M]) -> M:
        return model.model_validate_json(data)
