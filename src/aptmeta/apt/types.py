"""
Identifier types for APT repositories.

Architectures and components appear in Release files, index paths and package
stanzas. Both are plain strings with a few validity rules, so they subclass
``str`` and can be used wherever a string is expected (dictionary keys, URL
building, pydantic fields).
"""

from __future__ import annotations

from typing import Any

from pydantic_core import core_schema


class _Identifier(str):
    """Base for validated repository identifiers."""

    kind = "identifier"

    def __new__(cls, value: str) -> _Identifier:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise TypeError(f"{cls.kind} must be a string, got {type(value).__name__}")
        value = cls._normalize(value)
        if not value:
            raise ValueError(f"{cls.kind} must not be empty")
        if any(ch.isspace() for ch in value):
            raise ValueError(f"{cls.kind} must not contain whitespace: {value!r}")
        cls._validate(value)
        return super().__new__(cls, value)

    @classmethod
    def _normalize(cls, value: str) -> str:
        return value.strip()

    @classmethod
    def _validate(cls, value: str) -> None:
        if "/" in value or "\\" in value:
            raise ValueError(f"{cls.kind} must not contain path separators: {value!r}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str.__repr__(self)})"

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.str_schema(),
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )


class Architecture(_Identifier):
    """Debian architecture name (amd64, arm64, all, source, ...).

    Names are lowercased and a ``linux-`` prefix is dropped, so
    ``Architecture("linux-AMD64") == "amd64"``.
    """

    kind = "architecture"

    @classmethod
    def _normalize(cls, value: str) -> str:
        value = value.strip().lower()
        if value.startswith("linux-"):
            value = value[len("linux-") :]
        return value

    @property
    def is_source(self) -> bool:
        return self == "source"


class Component(_Identifier):
    """Repository component (main, contrib, non-free, ...).

    Debian security archives list components such as ``updates/main``; the
    last path element is the component proper and is what index paths use.
    """

    kind = "component"

    @classmethod
    def _normalize(cls, value: str) -> str:
        value = value.strip().strip("/")
        if "/" in value:
            value = value.rsplit("/", 1)[1]
        return value


ARCH_SOURCE = Architecture("source")
