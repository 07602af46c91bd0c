"""Service layer used by the CLI and the public client."""

from __future__ import annotations

from fabinfo.core.model import DiscoveryQuery, FabricInfo, LibraryVersion
from fabinfo.fabric.base import DiscoveryBackend
from fabinfo.fabric.libfabric import LibfabricBackend


class FabricService:
    def __init__(
        self,
        *,
        backend: DiscoveryBackend | None = None,
        library: str | None = None,
    ) -> None:
        self.backend = backend or LibfabricBackend(library)

    def discover(self, query: DiscoveryQuery) -> list[FabricInfo]:
        """Run ``query`` once and return every matching record.

        Raises ``DiscoveryError`` when the backend reports a failure. An empty
        result is not a failure.
        """
        return self.backend.getinfo(query.hints, query.node, query.port)

    def version(self) -> LibraryVersion:
        return self.backend.version()
