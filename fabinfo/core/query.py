"""Translate command-line filter options into a discovery query."""

from __future__ import annotations

import logging

from fabinfo.core.flags import parse_flags
from fabinfo.core.model import DiscoveryQuery, FabricHints
from fabinfo.core.symbols import ADDR_FORMAT, CAPS, EP_TYPE, MODE, resolve, resolver_for

LOGGER = logging.getLogger(__name__)


def build_query(
    *,
    node: str | None = None,
    port: str | None = None,
    caps: str | None = None,
    mode: str | None = None,
    ep_type: str | None = None,
    addr_format: str | None = None,
    provider: str | None = None,
) -> DiscoveryQuery:
    """Build a query from raw option values.

    Hints are attached only when at least one filtering option was given;
    ``node`` and ``port`` are discovery arguments and never activate them.
    """
    hints = FabricHints()
    use_hints = False

    if caps is not None:
        hints.caps = parse_flags(caps, resolver_for(CAPS))
        use_hints = True
    if mode is not None:
        hints.mode = parse_flags(mode, resolver_for(MODE))
        use_hints = True
    if ep_type is not None:
        hints.ep_type = resolve(EP_TYPE, ep_type)
        use_hints = True
    if addr_format is not None:
        hints.addr_format = resolve(ADDR_FORMAT, addr_format)
        use_hints = True
    if provider is not None:
        hints.prov_name = provider
        use_hints = True

    query = DiscoveryQuery(hints=hints if use_hints else None, node=node, port=port)
    LOGGER.debug("Built discovery query: %s", query)
    return query
