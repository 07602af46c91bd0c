"""Symbol table loading and name/value resolution for libfabric flags and enums."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from fabinfo.core.errors import SymbolTableError
from fabinfo.core.model import SymbolTable

LOGGER = logging.getLogger(__name__)

CAPS = "caps"
MODE = "mode"
EP_TYPE = "ep_type"
ADDR_FORMAT = "addr_format"

Resolver = Callable[[str], int]


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise SymbolTableError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def _load_schema_validator() -> Any:
    schema_text = resources.files("fabinfo.schemas").joinpath("symbols.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SymbolTableError(f"Could not read symbol file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise SymbolTableError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise SymbolTableError(f"Symbol file {path} must contain a mapping at root")
    return loaded


def _build_table(domain: str, domain_spec: dict[str, Any], source: Path | Traversable) -> SymbolTable:
    kind = domain_spec["kind"]
    entries: list[tuple[str, int]] = []
    seen: set[str] = set()
    for symbol in domain_spec["symbols"]:
        name = symbol["name"]
        if name in seen:
            raise SymbolTableError(f"Duplicate symbol '{name}' in domain '{domain}' of {source}")
        seen.add(name)
        value = 1 << symbol["bit"] if kind == "bitmask" else symbol["value"]
        entries.append((name, value))
    return SymbolTable(domain=domain, kind=kind, entries=tuple(entries))


def load_symbol_tables(path: Path | Traversable | None = None) -> dict[str, SymbolTable]:
    """Load and validate symbol tables from ``path`` or the packaged data file."""
    source = path or resources.files("fabinfo.data").joinpath("symbols.yaml")
    doc = _read_yaml(source)

    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        where = ".".join(str(p) for p in exc.path)
        where = f" ({where})" if where else ""
        raise SymbolTableError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    tables = {domain: _build_table(domain, domain_spec, source) for domain, domain_spec in doc["domains"].items()}
    LOGGER.debug(
        "Loaded symbol tables from %s: %s",
        source,
        ", ".join(f"{t.domain}={len(t.entries)}" for t in tables.values()),
    )
    return tables


@lru_cache(maxsize=1)
def packaged_tables() -> dict[str, SymbolTable]:
    return load_symbol_tables()


def table(domain: str) -> SymbolTable:
    try:
        return packaged_tables()[domain]
    except KeyError:
        raise SymbolTableError(f"Unknown symbol domain '{domain}'") from None


def lookup(symbols: SymbolTable, token: str) -> int:
    for name, value in symbols.entries:
        if name == token:
            return value
    LOGGER.debug("Ignoring unrecognized %s token '%s'", symbols.domain, token)
    return 0


def resolve(domain: str, token: str) -> int:
    """Return the value of ``token`` in ``domain``, or 0 when it is not a known symbol."""
    return lookup(table(domain), token)


def resolver_for(domain: str) -> Resolver:
    symbols = table(domain)
    return lambda token: lookup(symbols, token)


def names_for(domain: str, value: int) -> tuple[str, ...]:
    """Decode ``value`` back into symbol names.

    Bitmask domains return every symbol whose bit is set, reporting only the
    first alias listed for a given bit. Enum domains return the first symbol
    equal to ``value``, or nothing when it is not listed.
    """
    symbols = table(domain)
    if symbols.kind == "enum":
        for name, entry_value in symbols.entries:
            if entry_value == value:
                return (name,)
        return ()

    names: list[str] = []
    reported: set[int] = set()
    for name, bit in symbols.entries:
        if bit in reported or not value & bit:
            continue
        reported.add(bit)
        names.append(name)
    return tuple(names)
