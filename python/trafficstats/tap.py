"""Reference capture backend: aggregates a pcap file into table records.

The tap plays the role of the dissection engine for offline use. It keys
packets into conversations or endpoints for one protocol table, keeps those
keys unique, and pushes new and grown records to the tables in batches,
calling ``draw`` after each batch.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, replace
from pathlib import Path
from typing import (
    Callable,
    Dict,
    Hashable,
    IO,
    Iterator,
    List,
    Optional,
    Protocol,
    Set,
    Tuple,
    Union,
)

import dpkt
from dpkt.ethernet import VLANtag8021Q

from .engine import TableKind, table_kind
from .records import Address, EndpointRecord, EndpointType, FlowRecord, GeoLookup
from .utils import NS_PER_SECOND

logger = logging.getLogger(__name__)

_RAW_IP_LINKTYPES = {12, 14, 101}

NameResolver = Callable[[bytes], Optional[str]]
ServiceResolver = Callable[[int, EndpointType], Optional[str]]
GeoResolver = Callable[[bytes], Optional[GeoLookup]]


class TapListener(Protocol):  # pragma: no cover - protocol definition
    def on_reset(self) -> None:
        ...

    def on_records_appended(self, batch) -> None:
        ...

    def on_records_updated(self, updates) -> None:
        ...

    def draw(self) -> bool:
        ...


@dataclass
class TappedPacket:
    """The fields of one frame that the tables aggregate on."""

    timestamp_ns: int
    src: bytes
    dst: bytes
    src_port: int
    dst_port: int
    endpoint_type: EndpointType
    length: int


def system_service_name(port: int, endpoint_type: EndpointType) -> Optional[str]:
    """Service name from the local services database, if any."""
    if endpoint_type not in (EndpointType.TCP, EndpointType.UDP) or not 0 < port < 65536:
        return None
    try:
        return socket.getservbyport(port, endpoint_type.value)
    except OSError:
        return None


class _Aggregator:
    """Tracks which records are new or changed since the last flush."""

    def __init__(self) -> None:
        self.records: List = []
        self._index: Dict[Hashable, int] = {}
        self._flushed = 0
        self._dirty: Set[int] = set()

    def _touch(self, index: int, record) -> None:
        self.records[index] = record
        if index < self._flushed:
            self._dirty.add(index)

    def _create(self, key: Hashable, record) -> int:
        self._index[key] = len(self.records)
        self.records.append(record)
        return self._index[key]

    def flush(self, listener: TapListener) -> bool:
        new_records = self.records[self._flushed:]
        updates = {index: self.records[index] for index in sorted(self._dirty)}
        if new_records:
            listener.on_records_appended(new_records)
        if updates:
            listener.on_records_updated(updates)
        self._flushed = len(self.records)
        self._dirty.clear()
        return bool(new_records or updates)


class ConversationAggregator(_Aggregator):
    def __init__(
        self,
        address_for: Callable[[bytes], Address],
        service_for: Optional[ServiceResolver] = None,
    ) -> None:
        super().__init__()
        self._address_for = address_for
        self._service_for = service_for

    def add(self, packet: TappedPacket, relative_ns: int) -> None:
        forward = (packet.src, packet.src_port, packet.dst, packet.dst_port)
        index = self._index.get(forward)
        if index is not None:
            record = self.records[index]
            record = replace(
                record,
                tx_frames=record.tx_frames + 1,
                tx_bytes=record.tx_bytes + packet.length,
                stop_ns=max(record.stop_ns, relative_ns),
            )
            self._touch(index, record)
            return

        index = self._index.get((packet.dst, packet.dst_port, packet.src, packet.src_port))
        if index is not None:
            record = self.records[index]
            record = replace(
                record,
                rx_frames=record.rx_frames + 1,
                rx_bytes=record.rx_bytes + packet.length,
                stop_ns=max(record.stop_ns, relative_ns),
            )
            self._touch(index, record)
            return

        record = FlowRecord(
            src_address=self._address_for(packet.src),
            src_port=packet.src_port,
            dst_address=self._address_for(packet.dst),
            dst_port=packet.dst_port,
            endpoint_type=packet.endpoint_type,
            tx_frames=1,
            tx_bytes=packet.length,
            start_ns=relative_ns,
            stop_ns=relative_ns,
            start_abs_ns=packet.timestamp_ns,
            conv_id=len(self.records),
            src_port_name=self._service(packet.src_port, packet.endpoint_type),
            dst_port_name=self._service(packet.dst_port, packet.endpoint_type),
        )
        self._create(forward, record)

    def _service(self, port: int, endpoint_type: EndpointType) -> Optional[str]:
        if self._service_for is None:
            return None
        return self._service_for(port, endpoint_type)


class EndpointAggregator(_Aggregator):
    def __init__(
        self,
        address_for: Callable[[bytes], Address],
        *,
        with_ports: bool,
        service_for: Optional[ServiceResolver] = None,
        geo_for: Optional[GeoResolver] = None,
    ) -> None:
        super().__init__()
        self._address_for = address_for
        self._with_ports = with_ports
        self._service_for = service_for
        self._geo_for = geo_for

    def add(self, packet: TappedPacket) -> None:
        self._count(packet, packet.src, packet.src_port, transmitted=True)
        self._count(packet, packet.dst, packet.dst_port, transmitted=False)

    def _count(self, packet: TappedPacket, raw: bytes, port: int, *, transmitted: bool) -> None:
        if not self._with_ports:
            port = 0
        key = (raw, port)
        index = self._index.get(key)
        if index is None:
            record = EndpointRecord(
                address=self._address_for(raw),
                port=port,
                endpoint_type=packet.endpoint_type,
                geo=self._geo_for(raw) if self._geo_for is not None else None,
                port_name=(
                    self._service_for(port, packet.endpoint_type)
                    if self._service_for is not None and self._with_ports
                    else None
                ),
            )
            index = self._create(key, record)
        record = self.records[index]
        if transmitted:
            record = replace(
                record,
                tx_frames=record.tx_frames + 1,
                tx_bytes=record.tx_bytes + packet.length,
            )
        else:
            record = replace(
                record,
                rx_frames=record.rx_frames + 1,
                rx_bytes=record.rx_bytes + packet.length,
            )
        self._touch(index, record)


class PcapTap:
    """Feeds conversation and/or endpoint tables from a pcap or pcapng file."""

    def __init__(
        self,
        pcap_path: Union[str, Path],
        kind: Union[str, TableKind] = "tcp",
        *,
        batch_size: int = 1000,
        name_resolver: Optional[NameResolver] = None,
        service_resolver: Optional[ServiceResolver] = None,
        geo_resolver: Optional[GeoResolver] = None,
    ) -> None:
        path = Path(pcap_path)
        if not path.is_file():
            raise FileNotFoundError(f"PCAP file does not exist: {path}")
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self.path = path
        self.kind = table_kind(kind)
        self.batch_size = batch_size
        self.name_resolver = name_resolver
        self.service_resolver = service_resolver
        self.geo_resolver = geo_resolver
        self._addresses: Dict[bytes, Address] = {}

    # ------------------------------------------------------------------
    def run(
        self,
        conversations: Optional[TapListener] = None,
        endpoints: Optional[TapListener] = None,
    ) -> int:
        """Tap every packet of the file; returns the number of packets counted."""
        listeners: List[Tuple[_Aggregator, TapListener]] = []
        conv_agg: Optional[ConversationAggregator] = None
        endp_agg: Optional[EndpointAggregator] = None
        if conversations is not None:
            conv_agg = ConversationAggregator(self._address_for, self.service_resolver)
            listeners.append((conv_agg, conversations))
        if endpoints is not None:
            endp_agg = EndpointAggregator(
                self._address_for,
                with_ports=not self.kind.hide_ports,
                service_for=self.service_resolver,
                geo_for=self.geo_resolver if self.kind.has_geo else None,
            )
            listeners.append((endp_agg, endpoints))

        for _, listener in listeners:
            listener.on_reset()

        first_ns: Optional[int] = None
        count = 0
        for packet in self.packets():
            if first_ns is None:
                first_ns = packet.timestamp_ns
            if conv_agg is not None:
                conv_agg.add(packet, packet.timestamp_ns - first_ns)
            if endp_agg is not None:
                endp_agg.add(packet)
            count += 1
            if count % self.batch_size == 0:
                self._flush(listeners)

        self._flush(listeners)
        logger.info("Tapped %d %s packets from %s", count, self.kind.short_name, self.path)
        return count

    def packets(self) -> Iterator[TappedPacket]:
        with self.path.open("rb") as handle:
            reader = self._open_reader(handle)
            linktype = reader.datalink()
            for timestamp, frame in reader:
                packet = self._decode(timestamp, frame, linktype)
                if packet is not None:
                    yield packet

    # ------------------------------------------------------------------
    def _flush(self, listeners: List[Tuple[_Aggregator, TapListener]]) -> None:
        for aggregator, listener in listeners:
            aggregator.flush(listener)
            listener.draw()

    def _address_for(self, raw: bytes) -> Address:
        address = self._addresses.get(raw)
        if address is None:
            resolved = self.name_resolver(raw) if self.name_resolver is not None else None
            address = Address(raw, resolved)
            self._addresses[raw] = address
        return address

    def _open_reader(self, handle: IO[bytes]):
        try:
            return dpkt.pcap.Reader(handle)
        except ValueError:
            handle.seek(0)
        try:
            return dpkt.pcapng.Reader(handle)
        except (ValueError, dpkt.dpkt.NeedData) as exc:
            raise RuntimeError(f"Failed to open PCAP file: {self.path}") from exc

    def _decode(self, timestamp: float, frame: bytes, linktype: int) -> Optional[TappedPacket]:
        timestamp_ns = int(round(float(timestamp) * NS_PER_SECOND))
        try:
            if linktype in _RAW_IP_LINKTYPES:
                version = frame[0] >> 4 if frame else 0
                if version == 4:
                    network = dpkt.ip.IP(frame)
                elif version == 6:
                    network = dpkt.ip6.IP6(frame)
                else:
                    return None
                ethernet = None
            else:
                ethernet = dpkt.ethernet.Ethernet(frame)
                network = ethernet.data
                if isinstance(network, VLANtag8021Q):
                    network = network.data
        except (dpkt.UnpackError, ValueError, IndexError):
            logger.debug("Skipping undecodable frame", exc_info=True)
            return None

        length = len(frame)
        filter_name = self.kind.filter_name

        if filter_name == "eth":
            if ethernet is None:
                return None
            return TappedPacket(timestamp_ns, ethernet.src, ethernet.dst, 0, 0, EndpointType.OTHER, length)

        if filter_name == "ip":
            if not isinstance(network, dpkt.ip.IP):
                return None
            return TappedPacket(timestamp_ns, network.src, network.dst, 0, 0, EndpointType.OTHER, length)

        if filter_name == "ipv6":
            if not isinstance(network, dpkt.ip6.IP6):
                return None
            return TappedPacket(timestamp_ns, network.src, network.dst, 0, 0, EndpointType.OTHER, length)

        if not isinstance(network, (dpkt.ip.IP, dpkt.ip6.IP6)):
            return None
        transport = network.data
        if filter_name == "tcp" and isinstance(transport, dpkt.tcp.TCP):
            endpoint_type = EndpointType.TCP
        elif filter_name == "udp" and isinstance(transport, dpkt.udp.UDP):
            endpoint_type = EndpointType.UDP
        else:
            return None
        return TappedPacket(
            timestamp_ns,
            network.src,
            network.dst,
            transport.sport,
            transport.dport,
            endpoint_type,
            length,
        )


__all__ = [
    "TapListener",
    "TappedPacket",
    "ConversationAggregator",
    "EndpointAggregator",
    "PcapTap",
    "system_service_name",
]
