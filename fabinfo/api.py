"""Programmatic access to libfabric provider discovery.

`Client` turns the same filter strings the command line accepts (for example
``caps="FI_MSG|FI_RMA"``) into a discovery query, returns the matching
records as `FabricInfo` values, and decodes a record's numeric caps, mode,
endpoint type and address format back into libfabric symbol names.
"""

from __future__ import annotations

from dataclasses import dataclass

from fabinfo.core.errors import (
    AllocationError,
    DiscoveryError,
    FabinfoError,
    LibraryLoadError,
    SymbolTableError,
)
from fabinfo.core.model import (
    ALL_MODES,
    DiscoveryQuery,
    FabricHints,
    FabricInfo,
    LibraryVersion,
)
from fabinfo.core.query import build_query
from fabinfo.core.service import FabricService
from fabinfo.core.symbols import ADDR_FORMAT, CAPS, EP_TYPE, MODE, names_for
from fabinfo.fabric.base import DiscoveryBackend

__all__ = [
    "FabinfoError",
    "SymbolTableError",
    "LibraryLoadError",
    "AllocationError",
    "DiscoveryError",
    "ALL_MODES",
    "DiscoveryQuery",
    "FabricHints",
    "FabricInfo",
    "LibraryVersion",
    "DiscoveryBackend",
    "RecordDescription",
    "Client",
]


@dataclass(frozen=True)
class RecordDescription:
    """Symbolic names decoded from a discovery record's numeric fields."""

    record: FabricInfo
    caps: tuple[str, ...]
    mode: tuple[str, ...]
    ep_type: str | None
    addr_format: str | None


class Client:
    """Public client for libfabric provider discovery.

    A `Client` wraps query construction and the discovery backend behind a
    stable API for scripts and services. Pass `backend` to substitute the
    native libfabric binding, or `library` to load libfabric from an explicit
    path.
    """

    def __init__(
        self,
        *,
        backend: DiscoveryBackend | None = None,
        library: str | None = None,
    ) -> None:
        self._service = FabricService(backend=backend, library=library)

    def build_query(
        self,
        *,
        node: str | None = None,
        port: str | None = None,
        caps: str | None = None,
        mode: str | None = None,
        ep_type: str | None = None,
        addr_format: str | None = None,
        provider: str | None = None,
    ) -> DiscoveryQuery:
        return build_query(
            node=node,
            port=port,
            caps=caps,
            mode=mode,
            ep_type=ep_type,
            addr_format=addr_format,
            provider=provider,
        )

    def discover(self, query: DiscoveryQuery | None = None, **filters: str | None) -> list[FabricInfo]:
        """Run a discovery query, building it from ``filters`` when none is given."""
        if query is None:
            query = self.build_query(**filters)
        elif filters:
            raise TypeError("Pass either a query or filter keywords, not both")
        return self._service.discover(query)

    def version(self) -> LibraryVersion:
        return self._service.version()

    def describe(self, record: FabricInfo) -> RecordDescription:
        ep_type = names_for(EP_TYPE, record.ep_type)
        addr_format = names_for(ADDR_FORMAT, record.addr_format)
        return RecordDescription(
            record=record,
            caps=names_for(CAPS, record.caps),
            mode=names_for(MODE, record.mode),
            ep_type=ep_type[0] if ep_type else None,
            addr_format=addr_format[0] if addr_format else None,
        )
