from __future__ import annotations

import ctypes
import ctypes.util

import pytest

from fabinfo.core.errors import DiscoveryError, LibraryLoadError
from fabinfo.core.model import FabricHints
from fabinfo.fabric import libfabric
from fabinfo.fabric.libfabric import (
    FI_TYPE_INFO,
    FI_TYPE_VERSION,
    LibfabricBackend,
    _DomainAttr,
    _EpAttr,
    _FabricAttr,
    _FiInfo,
)


_SYMBOLS = ("fi_version", "fi_dupinfo", "fi_freeinfo", "fi_getinfo", "fi_tostr", "fi_strerror", "strdup")


class _Symbol:
    """Callable that, like a ctypes function pointer, accepts argtypes/restype."""

    def __init__(self, fn) -> None:
        self.fn = fn

    def __call__(self, *args):
        return self.fn(*args)


class FakeLibfabric:
    """In-process stand-in for the native library, built from the same structures."""

    def __init__(self, providers: tuple[str, ...] = ("tcp", "udp"), ret: int = 0) -> None:
        self.providers = providers
        self.ret = ret
        self.keepalive: list[object] = []
        self.freed: list[int] = []
        self.getinfo_calls: list[dict[str, object]] = []
        for name in _SYMBOLS:
            setattr(self, name, _Symbol(getattr(self, f"_{name}")))

    def _cstr(self, value: str) -> int:
        buf = ctypes.create_string_buffer(value.encode())
        self.keepalive.append(buf)
        return ctypes.addressof(buf)

    def _info(self, provider: str | None = None, ep_type: int = 0) -> _FiInfo:
        ep_attr = _EpAttr(type=ep_type)
        domain_attr = _DomainAttr()
        fabric_attr = _FabricAttr()
        if provider:
            domain_attr.name = self._cstr("lo")
            fabric_attr.name = self._cstr("127.0.0.0/8")
            fabric_attr.prov_name = self._cstr(provider)
        info = _FiInfo(caps=2, mode=0, addr_format=2)
        info.ep_attr = ctypes.pointer(ep_attr)
        info.domain_attr = ctypes.pointer(domain_attr)
        info.fabric_attr = ctypes.pointer(fabric_attr)
        self.keepalive.extend([ep_attr, domain_attr, fabric_attr, info])
        return info

    def _fi_version(self):
        return (1 << 16) | 22

    def _fi_dupinfo(self, src):
        assert src is None
        return ctypes.pointer(self._info())

    def _fi_freeinfo(self, info):
        if info:
            self.freed.append(ctypes.addressof(info.contents))

    def _fi_getinfo(self, version, node, port, flags, hints, info_pp):
        call: dict[str, object] = {"version": version, "node": node, "port": port, "flags": flags}
        if hints:
            native = hints.contents
            fabric_attr = native.fabric_attr.contents
            call["hints"] = {
                "caps": native.caps,
                "mode": native.mode,
                "addr_format": native.addr_format,
                "ep_type": native.ep_attr.contents.type,
                "prov_name": ctypes.string_at(fabric_attr.prov_name).decode()
                if fabric_attr.prov_name
                else None,
            }
        else:
            call["hints"] = None
        self.getinfo_calls.append(call)
        if self.ret:
            return self.ret

        head = None
        for provider in reversed(self.providers):
            info = self._info(provider, ep_type=3)
            if head is not None:
                info.next = ctypes.pointer(head)
            head = info
        if head is not None:
            info_pp.contents = head
        return 0

    def _fi_tostr(self, data, kind):
        if kind == FI_TYPE_VERSION:
            return b"1.22.0"
        assert kind == FI_TYPE_INFO
        info = ctypes.cast(data, ctypes.POINTER(_FiInfo)).contents
        provider = ctypes.string_at(info.fabric_attr.contents.prov_name).decode()
        return f"fi_info:\n    provider: {provider}\n".encode()

    def _fi_strerror(self, errnum):
        assert errnum == 61
        return b"No data available"

    def _strdup(self, value):
        return self._cstr(value.decode())


@pytest.fixture
def fake_lib(monkeypatch: pytest.MonkeyPatch) -> FakeLibfabric:
    lib = FakeLibfabric()
    monkeypatch.setattr(ctypes.util, "find_library", lambda name: "libfabric.so.1")
    monkeypatch.setattr(ctypes, "CDLL", lambda name: lib)
    monkeypatch.setattr(libfabric.ctypes, "byref", lambda obj: obj)
    return lib


def test_missing_library_raises_clean_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(name):
        raise OSError(f"{name}: cannot open shared object file")

    monkeypatch.setattr(ctypes.util, "find_library", lambda name: None)
    monkeypatch.setattr(ctypes, "CDLL", fail)

    with pytest.raises(LibraryLoadError, match="Could not load libfabric"):
        LibfabricBackend()


def test_library_without_symbols_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ctypes, "CDLL", lambda name: object())

    with pytest.raises(LibraryLoadError, match="does not look like libfabric"):
        LibfabricBackend("/opt/other/libother.so")


def test_version_reports_library_and_api(fake_lib: FakeLibfabric) -> None:
    version = LibfabricBackend().version()
    assert version.library == "1.22.0"
    assert version.api == "1.22"


def test_getinfo_without_hints(fake_lib: FakeLibfabric) -> None:
    records = LibfabricBackend().getinfo(None, "10.0.0.1", "7471")

    (call,) = fake_lib.getinfo_calls
    assert call["hints"] is None
    assert call["node"] == b"10.0.0.1"
    assert call["port"] == b"7471"
    assert call["version"] == (1 << 16) | 22
    assert [r.provider for r in records] == ["tcp", "udp"]
    assert records[0].fabric == "127.0.0.0/8"
    assert records[0].domain == "lo"
    assert records[0].ep_type == 3
    assert records[0].text == "fi_info:\n    provider: tcp\n"
    assert len(fake_lib.freed) == 1


def test_getinfo_copies_hints_into_native_record(fake_lib: FakeLibfabric) -> None:
    hints = FabricHints(caps=6, mode=1 << 59, ep_type=3, addr_format=2, prov_name="tcp")
    LibfabricBackend().getinfo(hints)

    (call,) = fake_lib.getinfo_calls
    assert call["hints"] == {
        "caps": 6,
        "mode": 1 << 59,
        "addr_format": 2,
        "ep_type": 3,
        "prov_name": "tcp",
    }
    # Hints record and result list are each released once.
    assert len(fake_lib.freed) == 2


def test_getinfo_failure_frees_hints_and_raises(fake_lib: FakeLibfabric) -> None:
    fake_lib.ret = -61
    with pytest.raises(DiscoveryError) as excinfo:
        LibfabricBackend().getinfo(FabricHints(caps=2))

    assert str(excinfo.value) == "fi_getinfo(): ret=-61 (No data available)"
    assert excinfo.value.code == -61
    assert len(fake_lib.freed) == 1


def test_getinfo_empty_result(fake_lib: FakeLibfabric) -> None:
    fake_lib.providers = ()
    assert LibfabricBackend().getinfo(None) == []
    assert fake_lib.freed == []
