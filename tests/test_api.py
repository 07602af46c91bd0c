from __future__ import annotations

import pytest

from fabinfo.api import ALL_MODES, Client, FabricInfo, LibraryVersion, RecordDescription


class FakeBackend:
    def __init__(self) -> None:
        self.calls = []

    def getinfo(self, hints, node=None, port=None):
        self.calls.append((hints, node, port))
        return [
            FabricInfo(
                provider="verbs",
                fabric="IB-0xfe80000000000000",
                domain="mlx5_0",
                caps=(1 << 1) | (1 << 2) | (1 << 4),
                mode=(1 << 59) | (1 << 52),
                addr_format=4,
                ep_type=3,
                text="fi_info:\n",
            )
        ]

    def version(self):
        return LibraryVersion(library="1.22.0", api_major=1, api_minor=22)


def test_discover_from_filters() -> None:
    backend = FakeBackend()
    client = Client(backend=backend)

    records = client.discover(caps="FI_MSG|FI_RMA", node="node1")

    assert records[0].provider == "verbs"
    hints, node, port = backend.calls[0]
    assert hints.caps == (1 << 1) | (1 << 2)
    assert hints.mode == ALL_MODES
    assert node == "node1"
    assert port is None


def test_discover_with_prebuilt_query() -> None:
    backend = FakeBackend()
    client = Client(backend=backend)
    query = client.build_query(provider="verbs")

    client.discover(query)

    assert backend.calls[0][0].prov_name == "verbs"


def test_discover_rejects_query_and_filters() -> None:
    client = Client(backend=FakeBackend())
    with pytest.raises(TypeError):
        client.discover(client.build_query(), caps="FI_MSG")


def test_describe_decodes_symbols() -> None:
    client = Client(backend=FakeBackend())
    (record,) = client.discover()

    description = client.describe(record)

    assert isinstance(description, RecordDescription)
    assert description.caps == ("FI_MSG", "FI_RMA", "FI_ATOMIC")
    assert description.mode == ("FI_CONTEXT", "FI_CONTEXT2")
    assert description.ep_type == "FI_EP_RDM"
    assert description.addr_format == "FI_SOCKADDR_IB"


def test_version() -> None:
    assert Client(backend=FakeBackend()).version().library == "1.22.0"
