"""Symbol request and batch-result models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SymbolRequest(BaseModel):
    """A dependency package to fetch from a symbol feed.

    ``app_id`` qualifies the package id for packages published per app id
    (Base Application, System Application, partner apps).
    """

    model_config = ConfigDict(frozen=True)

    publisher: str
    name: str
    version: str
    app_id: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Identity used for de-duplication: (publisher, name)."""
        return (self.publisher, self.name)

    @property
    def display_name(self) -> str:
        return f"{self.publisher}_{self.name}_{self.version}"


class SymbolFailure(BaseModel):
    """Information about a failed symbol download."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    symbol: str
    error: str
    code: str = "BcdevError"


class SymbolsResult(BaseModel):
    """Result of a batch symbol download.

    ``success`` is true only when every requested symbol was downloaded.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    success: bool
    output_path: str = ""
    downloaded_symbols: list[str] = Field(default_factory=list)
    failures: list[SymbolFailure] = Field(default_factory=list)
