"""libfabric discovery backend using ctypes."""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fabinfo.core.errors import AllocationError, DiscoveryError, LibraryLoadError
from fabinfo.core.model import FabricHints, FabricInfo, LibraryVersion

LOGGER = logging.getLogger(__name__)

DEFAULT_SONAME = "libfabric.so.1"

# enum fi_type
FI_TYPE_INFO = 0
FI_TYPE_VERSION = 18


# Only the leading members this tool touches are declared. Every instance is
# allocated by libfabric itself, so the trailing members never matter here.
class _FabricAttr(ctypes.Structure):
    _fields_ = [
        ("fabric", ctypes.c_void_p),
        ("name", ctypes.c_void_p),
        ("prov_name", ctypes.c_void_p),
        ("prov_version", ctypes.c_uint32),
        ("api_version", ctypes.c_uint32),
    ]


class _DomainAttr(ctypes.Structure):
    _fields_ = [
        ("domain", ctypes.c_void_p),
        ("name", ctypes.c_void_p),
    ]


class _EpAttr(ctypes.Structure):
    _fields_ = [
        ("type", ctypes.c_int),
        ("protocol", ctypes.c_uint32),
        ("protocol_version", ctypes.c_uint32),
        ("max_msg_size", ctypes.c_size_t),
    ]


class _FiInfo(ctypes.Structure):
    pass


_FiInfo._fields_ = [
    ("next", ctypes.POINTER(_FiInfo)),
    ("caps", ctypes.c_uint64),
    ("mode", ctypes.c_uint64),
    ("addr_format", ctypes.c_uint32),
    ("src_addrlen", ctypes.c_size_t),
    ("dest_addrlen", ctypes.c_size_t),
    ("src_addr", ctypes.c_void_p),
    ("dest_addr", ctypes.c_void_p),
    ("handle", ctypes.c_void_p),
    ("tx_attr", ctypes.c_void_p),
    ("rx_attr", ctypes.c_void_p),
    ("ep_attr", ctypes.POINTER(_EpAttr)),
    ("domain_attr", ctypes.POINTER(_DomainAttr)),
    ("fabric_attr", ctypes.POINTER(_FabricAttr)),
    ("nic", ctypes.c_void_p),
]

_FiInfoPtr = ctypes.POINTER(_FiInfo)


def _bind(lib: ctypes.CDLL) -> None:
    lib.fi_version.argtypes = []
    lib.fi_version.restype = ctypes.c_uint32
    lib.fi_getinfo.argtypes = [
        ctypes.c_uint32,
        ctypes.c_char_p,
        ctypes.c_char_p,
        ctypes.c_uint64,
        _FiInfoPtr,
        ctypes.POINTER(_FiInfoPtr),
    ]
    lib.fi_getinfo.restype = ctypes.c_int
    lib.fi_freeinfo.argtypes = [_FiInfoPtr]
    lib.fi_freeinfo.restype = None
    lib.fi_dupinfo.argtypes = [_FiInfoPtr]
    lib.fi_dupinfo.restype = _FiInfoPtr
    lib.fi_tostr.argtypes = [ctypes.c_void_p, ctypes.c_int]
    lib.fi_tostr.restype = ctypes.c_char_p
    lib.fi_strerror.argtypes = [ctypes.c_int]
    lib.fi_strerror.restype = ctypes.c_char_p


def _load_library(library: str | None) -> ctypes.CDLL:
    candidates = [library] if library else [ctypes.util.find_library("fabric"), DEFAULT_SONAME]
    errors: list[str] = []
    for name in candidates:
        if not name:
            continue
        try:
            lib = ctypes.CDLL(name)
        except OSError as exc:
            errors.append(f"{name}: {exc}")
            continue
        try:
            _bind(lib)
        except AttributeError as exc:
            raise LibraryLoadError(f"{name} does not look like libfabric: {exc}") from exc
        LOGGER.debug("Loaded libfabric from %s", name)
        return lib

    details = " | ".join(errors) or "library not found"
    raise LibraryLoadError(f"Could not load libfabric. Ensure it is installed. Details: {details}")


def _load_libc() -> ctypes.CDLL:
    libc = ctypes.CDLL(None)
    libc.strdup.argtypes = [ctypes.c_char_p]
    libc.strdup.restype = ctypes.c_void_p
    return libc


def _encode(value: str | None) -> bytes | None:
    return value.encode() if value is not None else None


def _c_string(address: int | None) -> str | None:
    if not address:
        return None
    return ctypes.string_at(address).decode(errors="replace")


def _walk(head: _FiInfoPtr) -> Iterator[_FiInfoPtr]:
    cur = head
    while cur:
        yield cur
        cur = cur.contents.next


class LibfabricBackend:
    def __init__(self, library: str | None = None) -> None:
        self._lib = _load_library(library)
        self._libc = _load_libc()

    def version(self) -> LibraryVersion:
        raw = self._lib.fi_version()
        library = self._lib.fi_tostr(b"1", FI_TYPE_VERSION)
        return LibraryVersion(
            library=library.decode() if library else "unknown",
            api_major=raw >> 16,
            api_minor=raw & 0xFFFF,
        )

    def getinfo(
        self,
        hints: FabricHints | None,
        node: str | None = None,
        port: str | None = None,
    ) -> list[FabricInfo]:
        info = _FiInfoPtr()
        with self._native_hints(hints) as native:
            LOGGER.debug("fi_getinfo(node=%r, port=%r, hints=%s)", node, port, hints)
            ret = self._lib.fi_getinfo(
                self._lib.fi_version(),
                _encode(node),
                _encode(port),
                0,
                native,
                ctypes.byref(info),
            )
        if ret:
            raise DiscoveryError("fi_getinfo", ret, self._strerror(ret))

        try:
            records = [self._record(cur) for cur in _walk(info)]
        finally:
            self._lib.fi_freeinfo(info)
        LOGGER.debug("fi_getinfo returned %d record(s)", len(records))
        return records

    @contextmanager
    def _native_hints(self, hints: FabricHints | None) -> Iterator[_FiInfoPtr | None]:
        if hints is None:
            yield None
            return

        # fi_allocinfo() is a header macro for fi_dupinfo(NULL).
        native = self._lib.fi_dupinfo(None)
        if not native:
            raise AllocationError("fi_allocinfo() returned NULL")
        try:
            info = native.contents
            info.caps = hints.caps
            info.mode = hints.mode
            info.addr_format = hints.addr_format
            info.ep_attr.contents.type = hints.ep_type
            if hints.prov_name is not None:
                # fi_freeinfo() releases prov_name with free().
                prov_name = self._libc.strdup(hints.prov_name.encode())
                if not prov_name:
                    raise AllocationError("strdup() returned NULL for provider name")
                info.fabric_attr.contents.prov_name = prov_name
            yield native
        finally:
            self._lib.fi_freeinfo(native)

    def _record(self, cur: _FiInfoPtr) -> FabricInfo:
        info = cur.contents
        fabric_attr = info.fabric_attr.contents if info.fabric_attr else None
        domain_attr = info.domain_attr.contents if info.domain_attr else None
        text = self._lib.fi_tostr(ctypes.cast(cur, ctypes.c_void_p), FI_TYPE_INFO)
        return FabricInfo(
            provider=_c_string(fabric_attr.prov_name) if fabric_attr else None,
            fabric=_c_string(fabric_attr.name) if fabric_attr else None,
            domain=_c_string(domain_attr.name) if domain_attr else None,
            caps=info.caps,
            mode=info.mode,
            addr_format=info.addr_format,
            ep_type=info.ep_attr.contents.type if info.ep_attr else 0,
            text=text.decode(errors="replace") if text else "",
        )

    def _strerror(self, ret: int) -> str:
        message = self._lib.fi_strerror(abs(ret))
        return message.decode() if message else "Unknown error"
