"""Structured results returned across the CLI boundary."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from bcdev.errors import error_code


class Failure(BaseModel):
    """A machine-readable failure: taxonomy code plus message."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    code: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException) -> Failure:
        return cls(code=error_code(exc), message=str(exc))


class ArtifactsResult(BaseModel):
    """Outcome of populating or inspecting one artifact cache entry."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    success: bool
    version: str
    full_version: str | None = None
    cache_path: str | None = None
    compiler_path: str | None = None
    error: Failure | None = None
