"""Core data models used across symbol tables, query builder, service, and CLI."""

from __future__ import annotations

from dataclasses import dataclass

ALL_MODES = (1 << 64) - 1


@dataclass(frozen=True)
class SymbolTable:
    domain: str
    kind: str
    entries: tuple[tuple[str, int], ...]


@dataclass
class FabricHints:
    caps: int = 0
    mode: int = ALL_MODES
    ep_type: int = 0
    addr_format: int = 0
    prov_name: str | None = None


@dataclass(frozen=True)
class DiscoveryQuery:
    hints: FabricHints | None = None
    node: str | None = None
    port: str | None = None


@dataclass(frozen=True)
class FabricInfo:
    provider: str | None
    fabric: str | None
    domain: str | None
    caps: int
    mode: int
    addr_format: int
    ep_type: int
    text: str


@dataclass(frozen=True)
class LibraryVersion:
    library: str
    api_major: int
    api_minor: int

    @property
    def api(self) -> str:
        return f"{self.api_major}.{self.api_minor}"
