"""Discovery backend interface."""

from __future__ import annotations

from typing import Protocol

from fabinfo.core.model import FabricHints, FabricInfo, LibraryVersion


class DiscoveryBackend(Protocol):
    def getinfo(
        self,
        hints: FabricHints | None,
        node: str | None = None,
        port: str | None = None,
    ) -> list[FabricInfo]:
        """Run one discovery call and return every matching record."""

    def version(self) -> LibraryVersion:
        """Report the library version and API version."""
