"""Pipe-delimited flag expressions such as ``FI_MSG|FI_RMA``."""

from __future__ import annotations

from fabinfo.core.symbols import Resolver

DELIMITER = "|"


def parse_flags(text: str, resolver: Resolver) -> int:
    """OR together the resolved value of every non-empty token in ``text``.

    Unknown tokens resolve to 0, so the rest of the expression still applies.
    """
    flags = 0
    for token in text.split(DELIMITER):
        if token:
            flags |= resolver(token)
    return flags
