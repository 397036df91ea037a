"""
Capture replay: yield Packet records (capture time + source hardware address)
from tcpdump output files.

Implementation notes:
- Tries dpkt.pcap.Reader first, then falls back to dpkt.pcapng.Reader.
- `.gz` files (tcpdump -z gzip rotation) are decompressed on the fly.
- Link types: 802.11 + radiotap, raw 802.11, Ethernet. Frames that carry
  no source address (ACK, CTS) or are too short are skipped.
"""

import gzip
import struct
import zlib
from datetime import datetime, timezone
from typing import IO, Iterator, Optional

import dpkt  # type: ignore

from tripscan.utils.validate import Packet
from tripscan.utils.log import get_logger

logger = get_logger(__name__)

# 802.11 MAC header: frame control (2), duration (2), addr1 (6), addr2 (6)
_ADDR2 = slice(10, 16)
_FC_TYPE_CTL = 1
# control subtypes that carry a transmitter address: BAR, BA, PS-Poll, RTS, CF-End, CF-End+Ack
_CTL_WITH_TA = {8, 9, 10, 11, 14, 15}

DLT_EN10MB = dpkt.pcap.DLT_EN10MB
DLT_IEEE802_11 = dpkt.pcap.DLT_IEEE802_11
DLT_IEEE802_11_RADIO = dpkt.pcap.DLT_IEEE802_11_RADIO

# raised by a truncated or corrupt record, including out-of-range timestamps
_RECORD_ERRORS = (dpkt.UnpackError, struct.error, ValueError, OverflowError, EOFError, zlib.error, OSError)


class CaptureOpenError(OSError):
    """
    A capture file could not be opened or is not a pcap/pcapng capture.
    """


def format_mac(raw: bytes) -> str:
    """
    Render 6 raw bytes as "aa:bb:cc:dd:ee:ff".
    """
    return ":".join(f"{b:02x}" for b in raw)


def ieee80211_source(frame: bytes) -> Optional[str]:
    """
    Return the transmitter address (addr2) of a raw 802.11 frame, or None
    if the frame type carries none.
    """
    if len(frame) < _ADDR2.stop:
        return None
    fc = frame[0]
    ftype = (fc >> 2) & 0x3
    subtype = (fc >> 4) & 0xF
    if ftype == _FC_TYPE_CTL and subtype not in _CTL_WITH_TA:
        return None
    return format_mac(frame[_ADDR2])


def radiotap_source(buf: bytes) -> Optional[str]:
    """
    Strip the radiotap header (length is little-endian at offset 2) and
    decode the 802.11 frame behind it.
    """
    if len(buf) < 4:
        return None
    (rt_len,) = struct.unpack_from("<H", buf, 2)
    return ieee80211_source(buf[rt_len:])


def ethernet_source(buf: bytes) -> Optional[str]:
    try:
        eth = dpkt.ethernet.Ethernet(buf)
    except (dpkt.UnpackError, struct.error):
        return None
    return format_mac(eth.src)


_DECODERS = {
    DLT_IEEE802_11_RADIO: radiotap_source,
    DLT_IEEE802_11: ieee80211_source,
    DLT_EN10MB: ethernet_source,
}


class CaptureFile:
    """
    Lazy Packet sequence over one capture file.

    Construction opens the file and decodes its header, raising
    CaptureOpenError on failure. Iteration ends without error at end of
    file; a truncated trailing record or one that does not decode also ends
    iteration (with a warning), since tcpdump may have been cut off
    mid-write.
    """

    def __init__(self, path: str):
        self.path = path
        self._f = _open_stream(path)
        try:
            self._reader = _open_any_pcap_reader(self._f)
        except (ValueError, OSError, EOFError, zlib.error, dpkt.UnpackError) as exc:
            self._f.close()
            raise CaptureOpenError(f"{path}: {exc}") from exc
        self.linktype = self._reader.datalink()
        self._decode = _DECODERS.get(self.linktype)
        if self._decode is None:
            logger.warning("%s: unsupported link type %d, no packets will be read", path, self.linktype)

    def __iter__(self) -> Iterator[Packet]:
        if self._decode is None:
            return
        try:
            for ts, buf in self._reader:
                src = self._decode(buf)
                if src is None:
                    continue
                yield Packet(time=datetime.fromtimestamp(float(ts), tz=timezone.utc), src=src)
        except _RECORD_ERRORS as exc:
            logger.warning("%s: capture ends early: %s", self.path, exc)

    def close(self) -> None:
        self._f.close()

    def __enter__(self) -> "CaptureFile":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def iter_capture(path: str) -> Iterator[Packet]:
    """
    Replay every packet of one capture file; raises CaptureOpenError up front.
    """
    capture = CaptureFile(path)

    def _iter() -> Iterator[Packet]:
        with capture:
            yield from capture

    return _iter()


# === Helpers ===


def _open_stream(path: str) -> IO[bytes]:
    try:
        if path.endswith(".gz"):
            return gzip.open(path, "rb")
        return open(path, "rb")
    except OSError as exc:
        raise CaptureOpenError(f"{path}: {exc}") from exc


def _open_any_pcap_reader(stream: IO[bytes]):
    """
    Try dpkt.pcap.Reader; if the magic does not match, rewind and try dpkt.pcapng.Reader.
    """
    try:
        return dpkt.pcap.Reader(stream)
    except ValueError:
        stream.seek(0)
        return dpkt.pcapng.Reader(stream)
