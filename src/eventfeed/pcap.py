"""Packet capture extraction from threat records."""

import base64
import binascii
import struct
import time
from typing import Any

from eventfeed.correlation import TIME_FIELD, parse_event_time

PCAP_FIELD = "pcap"

# libpcap classic format, microsecond timestamps
PCAP_MAGIC = 0xA1B2C3D4
PCAP_VERSION = (2, 4)
PCAP_SNAPLEN = 65535
LINKTYPE_ETHERNET = 1

_GLOBAL_HEADER = struct.Struct("<IHHiIII")
_PACKET_HEADER = struct.Struct("<IIII")


def pcap_global_header(linktype: int = LINKTYPE_ETHERNET, snaplen: int = PCAP_SNAPLEN) -> bytes:
    major, minor = PCAP_VERSION
    return _GLOBAL_HEADER.pack(PCAP_MAGIC, major, minor, 0, 0, snaplen, linktype)


def pcap_packet_header(timestamp: float, captured: int, original: int | None = None) -> bytes:
    seconds = int(timestamp)
    micros = int(round((timestamp - seconds) * 1_000_000))
    if micros >= 1_000_000:
        seconds, micros = seconds + 1, micros - 1_000_000
    return _PACKET_HEADER.pack(seconds, micros, captured, captured if original is None else original)


def pcaptize(record: dict[str, Any], default_time: float | None = None) -> bytes | None:
    """
    Build a single-packet libpcap file from a record's ``pcap`` field.

    Args:
        record: Event record; the packet is read from its base64 ``pcap`` field
        default_time: Packet timestamp when the record has no usable
            ``time_generated`` (wall clock if None)

    Returns:
        libpcap file bytes, or None when the record carries no decodable packet
    """
    encoded = record.get(PCAP_FIELD)
    if not encoded or not isinstance(encoded, str):
        return None

    try:
        packet = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return None
    if not packet:
        return None

    ts = parse_event_time(record.get(TIME_FIELD))
    if ts is None:
        ts = time.time() if default_time is None else default_time

    captured = packet[:PCAP_SNAPLEN]
    return (
        pcap_global_header()
        + pcap_packet_header(ts, len(captured), len(packet))
        + captured
    )


__all__ = [
    "pcaptize",
    "pcap_global_header",
    "pcap_packet_header",
    "PCAP_FIELD",
    "PCAP_MAGIC",
    "LINKTYPE_ETHERNET",
]
