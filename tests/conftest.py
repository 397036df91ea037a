"""
Shared fixtures: trip trees with NMEA logs and tcpdump-style capture files.
"""

import gzip
import os
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import dpkt
import pytest

from tripscan.ingest.streams import BoundedStream
from tripscan.utils.validate import Fix, Packet

# 2020-09-13T12:26:40Z
T0 = datetime.fromtimestamp(1_600_000_000, tz=timezone.utc)
T0_UNIX = 1_600_000_000

RADIOTAP = b"\x00\x00\x08\x00\x00\x00\x00\x00"


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def fix(seconds: Optional[float], lat: float = 10.0, lon: float = 20.0) -> Fix:
    return Fix(time=None if seconds is None else at(seconds), latitude=lat, longitude=lon)


def pkt(seconds: float, src: str) -> Packet:
    return Packet(time=at(seconds), src=src)


# === NMEA ===


def nmea(body: str) -> str:
    cs = 0
    for ch in body:
        cs ^= ord(ch)
    return f"${body}*{cs:02X}"


def _dm(value: float, width: int) -> str:
    deg = int(abs(value))
    minutes = (abs(value) - deg) * 60
    return f"{deg:0{width}d}{minutes:07.4f}"


def rmc(seconds: float, lat: Optional[float] = 10.0, lon: Optional[float] = 20.0) -> str:
    t = at(seconds)
    lat_s = "" if lat is None else _dm(lat, 2)
    lon_s = "" if lon is None else _dm(lon, 3)
    ns = "" if lat is None else ("S" if lat < 0 else "N")
    ew = "" if lon is None else ("W" if lon < 0 else "E")
    status = "V" if lat is None else "A"
    return nmea(
        f"GPRMC,{t:%H%M%S}.00,{status},{lat_s},{ns},{lon_s},{ew},0.5,90.0,{t:%d%m%y},,"
    )


# === 802.11 capture ===


def mac_bytes(mac: str) -> bytes:
    return bytes(int(part, 16) for part in mac.split(":"))


def probe_request(src: str) -> bytes:
    # frame control (mgmt / probe request), duration, addr1, addr2, addr3, sequence
    return b"\x40\x00" + b"\x00\x00" + b"\xff" * 6 + mac_bytes(src) + b"\xff" * 6 + b"\x10\x00"


def ack_frame(dst: str) -> bytes:
    return b"\xd4\x00" + b"\x00\x00" + mac_bytes(dst)


def write_capture(path: str, frames: Iterable[tuple[float, bytes]], linktype: int = dpkt.pcap.DLT_IEEE802_11_RADIO) -> None:
    opener = gzip.open if path.endswith(".gz") else open
    with opener(path, "wb") as f:
        writer = dpkt.pcap.Writer(f, linktype=linktype)
        for ts, frame in frames:
            writer.writepkt(frame, ts=ts)


def write_pcapng(path: str, frames: Iterable[tuple[float, bytes]], linktype: int = dpkt.pcap.DLT_IEEE802_11_RADIO) -> None:
    with open(path, "wb") as f:
        writer = dpkt.pcapng.Writer(f, linktype=linktype)
        for ts, frame in frames:
            writer.writepkt(frame, ts=ts)


def write_sightings(path: str, sightings: Iterable[tuple[float, str]]) -> None:
    """Write (seconds after T0, source MAC) pairs as radiotap probe requests."""
    write_capture(path, ((T0_UNIX + s, RADIOTAP + probe_request(src)) for s, src in sightings))


def make_trip(
    root: str,
    name: str,
    fixes: Optional[list[tuple[float, Optional[float], Optional[float]]]] = None,
    captures: Optional[dict[str, list[list[tuple[float, str]]]]] = None,
) -> str:
    """
    Create <root>/<name>/gps/nmea.log from `fixes` and, for every interface
    in `captures`, <root>/<name>/wifi/<iface>/pcap, pcap1.gz, ... one per
    file in the list.
    """
    trip = os.path.join(root, name)
    os.makedirs(trip, exist_ok=True)
    if fixes is not None:
        os.makedirs(os.path.join(trip, "gps"), exist_ok=True)
        with open(os.path.join(trip, "gps", "nmea.log"), "w") as f:
            for seconds, lat, lon in fixes:
                f.write(nmea("GPGSA,A,3,04,05,,09,12,,,24,,,,,2.5,1.3,2.1") + "\n")
                f.write(rmc(seconds, lat, lon) + "\n")
    for iface, files in (captures or {}).items():
        iface_dir = os.path.join(trip, "wifi", iface)
        os.makedirs(iface_dir, exist_ok=True)
        for i, sightings in enumerate(files):
            fname = "pcap" if i == 0 else f"pcap{i}.gz"
            write_sightings(os.path.join(iface_dir, fname), sightings)
    return trip


@pytest.fixture
def make_stream():
    """Factory for BoundedStreams that are closed at teardown."""
    streams: list[BoundedStream] = []

    def _make(items, maxsize: int = 4, name: str = "test"):
        s = BoundedStream(name, items, maxsize, poll_interval=0.01)
        streams.append(s)
        return s

    yield _make
    for s in streams:
        s.close()
