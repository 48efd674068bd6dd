from __future__ import annotations

import socket

import dpkt
import pytest

from trafficstats import ConversationTable, EndpointTable, GeoLookup, PcapTap
from trafficstats.records import EndpointType

CLIENT = "10.0.0.1"
SERVER = "10.0.0.2"
OTHER = "192.0.2.7"


def _tcp_frame(src: str, dst: str, sport: int, dport: int, payload: bytes = b"") -> bytes:
    tcp = dpkt.tcp.TCP(sport=sport, dport=dport, flags=dpkt.tcp.TH_ACK, data=payload)
    ip = dpkt.ip.IP(
        src=socket.inet_aton(src),
        dst=socket.inet_aton(dst),
        p=dpkt.ip.IP_PROTO_TCP,
        ttl=64,
        len=20 + len(tcp),
        data=tcp,
    )
    ethernet = dpkt.ethernet.Ethernet(
        src=b"\xaa\xbb\xcc\xdd\xee\xff",
        dst=b"\x11\x22\x33\x44\x55\x66",
        type=dpkt.ethernet.ETH_TYPE_IP,
        data=ip,
    )
    return bytes(ethernet)


def _udp_frame(src: str, dst: str, sport: int, dport: int, payload: bytes = b"") -> bytes:
    udp = dpkt.udp.UDP(sport=sport, dport=dport, ulen=8 + len(payload), data=payload)
    ip = dpkt.ip.IP(
        src=socket.inet_aton(src),
        dst=socket.inet_aton(dst),
        p=dpkt.ip.IP_PROTO_UDP,
        ttl=64,
        len=20 + len(udp),
        data=udp,
    )
    ethernet = dpkt.ethernet.Ethernet(
        src=b"\xaa\xbb\xcc\xdd\xee\xff",
        dst=b"\x11\x22\x33\x44\x55\x66",
        type=dpkt.ethernet.ETH_TYPE_IP,
        data=ip,
    )
    return bytes(ethernet)


def _write_pcap(path, frames) -> None:
    with path.open("wb") as fh:
        writer = dpkt.pcap.Writer(fh)
        for timestamp, frame in frames:
            writer.writepkt(frame, ts=timestamp)


@pytest.fixture
def sample_pcap(tmp_path):
    request = _tcp_frame(CLIENT, SERVER, 40000, 80, b"x" * 100)
    reply = _tcp_frame(SERVER, CLIENT, 80, 40000, b"y" * 400)
    second = _tcp_frame(CLIENT, OTHER, 40001, 443)
    dns = _udp_frame(CLIENT, SERVER, 5353, 53, b"q" * 20)
    path = tmp_path / "sample.pcap"
    _write_pcap(path, [(1.0, request), (1.5, dns), (1.5, reply), (3.0, second)])
    return path, {"request": len(request), "reply": len(reply), "second": len(second)}


def test_conversations_from_pcap(sample_pcap):
    path, sizes = sample_pcap
    table = ConversationTable("tcp")
    count = PcapTap(path, "tcp").run(conversations=table)

    assert count == 3
    assert len(table) == 2
    first, second = table.records()
    assert str(first.src_address) == CLIENT
    assert (first.src_port, first.dst_port) == (40000, 80)
    assert first.endpoint_type is EndpointType.TCP
    assert (first.tx_frames, first.rx_frames) == (1, 1)
    assert (first.tx_bytes, first.rx_bytes) == (sizes["request"], sizes["reply"])
    assert first.start_ns == 0
    assert first.stop_ns == 500_000_000
    assert first.start_abs_ns == 1_000_000_000
    assert (first.conv_id, second.conv_id) == (0, 1)
    assert second.start_ns == 2_000_000_000
    assert table.max_rel_stop_time == pytest.approx(2.0)
    assert table.graph_filter(1) == "tcp.stream eq 1"


def test_small_batches_push_updates(sample_pcap):
    path, _ = sample_pcap

    class Recorder:
        def __init__(self):
            self.calls = []
            self.table = ConversationTable("tcp")

        def on_reset(self):
            self.calls.append("reset")
            self.table.on_reset()

        def on_records_appended(self, batch):
            self.calls.append(("appended", len(batch)))
            self.table.on_records_appended(batch)

        def on_records_updated(self, updates):
            self.calls.append(("updated", sorted(updates)))
            self.table.on_records_updated(updates)

        def draw(self):
            self.calls.append("draw")
            return self.table.draw()

    recorder = Recorder()
    PcapTap(path, "tcp", batch_size=1).run(conversations=recorder)

    assert recorder.calls == [
        "reset",
        ("appended", 1),
        "draw",
        ("updated", [0]),
        "draw",
        ("appended", 1),
        "draw",
        "draw",
    ]
    assert recorder.table.record(0).rx_frames == 1


def test_udp_table_ignores_tcp(sample_pcap):
    path, _ = sample_pcap
    table = ConversationTable("udp")
    assert PcapTap(path, "udp").run(conversations=table) == 1
    assert table.record(0).endpoint_type is EndpointType.UDP
    assert table.record(0).dst_port == 53


def test_endpoints_with_resolvers(sample_pcap):
    path, sizes = sample_pcap
    geo = {
        socket.inet_aton(OTHER): GeoLookup(found=True, latitude=37.75, longitude=-97.82),
    }
    names = {socket.inet_aton(SERVER): "server.example"}
    table = EndpointTable("ipv4")
    PcapTap(path, "ipv4", name_resolver=names.get, geo_resolver=geo.get).run(endpoints=table)

    by_address = {str(record.address): record for record in table.records()}
    assert set(by_address) == {CLIENT, SERVER, OTHER}
    client = by_address[CLIENT]
    assert client.port == 0
    assert (client.tx_frames, client.rx_frames) == (3, 1)
    assert client.rx_bytes == sizes["reply"]
    assert by_address[SERVER].address.resolved == "server.example"
    assert table.has_geo_data
    assert [str(r.address) for r in table.geo_endpoints()] == [OTHER]


def test_both_tables_in_one_pass(sample_pcap):
    path, _ = sample_pcap
    conversations = ConversationTable("tcp")
    endpoints = EndpointTable("tcp")
    PcapTap(path, "tcp").run(conversations=conversations, endpoints=endpoints)

    assert len(conversations) == 2
    assert len(endpoints) == 4
    assert {r.port for r in endpoints.records()} == {40000, 80, 40001, 443}


def test_rerun_resets_tables(sample_pcap):
    path, _ = sample_pcap
    table = ConversationTable("tcp")
    tap = PcapTap(path, "tcp")
    tap.run(conversations=table)
    tap.run(conversations=table)
    assert len(table) == 2


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        PcapTap(tmp_path / "absent.pcap")


def test_not_a_capture(tmp_path):
    path = tmp_path / "junk.pcap"
    path.write_bytes(b"definitely not a capture file")
    with pytest.raises(RuntimeError):
        PcapTap(path).run(conversations=ConversationTable("tcp"))
