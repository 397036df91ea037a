"""
Clock-driven join of the fix stream with per-interface packet streams.

The GPS stream is the time base: each usable fix claims every pending
packet that is not newer than it, provided the packet is at most
`max_staleness_s` older than the fix. Older packets are dropped; newer ones
wait for a later fix.
"""

import threading
from datetime import timedelta
from typing import Iterable, Iterator, Optional, Sequence

from tripscan.ingest.config import IngestConfig
from tripscan.ingest.streams import BoundedStream, gps_fix_stream, interface_packet_stream
from tripscan.ingest.trips import interfaces
from tripscan.utils.validate import Fix, GPSPacket, Packet
from tripscan.utils.log import get_logger

logger = get_logger(__name__)


def _fill(pending: list[Optional[Packet]], sources: Sequence[BoundedStream[Packet]], timeout: float) -> None:
    """
    Give every empty slot a packet, or let its stream end.

    Polls the interfaces in rotation so one slow producer does not hold up
    reading from the others.
    """
    waiting = [i for i, pkt in enumerate(pending) if pkt is None and not sources[i].ended]
    while waiting:
        still_waiting = []
        for i in waiting:
            pkt = sources[i].poll(timeout)
            if pkt is not None:
                pending[i] = pkt
            elif not sources[i].ended:
                still_waiting.append(i)
        waiting = still_waiting


def correlate(
    fixes: Iterable[Fix],
    sources: Sequence[BoundedStream[Packet]],
    config: Optional[IngestConfig] = None,
    stop: Optional[threading.Event] = None,
) -> Iterator[GPSPacket]:
    """
    Pair packets with the fix that covers them.

    Parameters
    ----------
    fixes
        Fix stream in time order.
    sources
        One packet stream per capture interface.
    config
        Staleness window and poll interval.
    stop
        Optional cancellation event, checked once per fix.

    Yields
    ------
    GPSPacket
        Records with `packet.time <= fix.time <= packet.time + max_staleness_s`.
    """
    cfg = config or IngestConfig.default()
    window = timedelta(seconds=cfg.max_staleness_s)
    pending: list[Optional[Packet]] = [None] * len(sources)

    for fix in fixes:
        if stop is not None and stop.is_set():
            return
        if not fix.usable():
            continue
        while True:
            _fill(pending, sources, cfg.poll_interval_s)
            cleared = False
            for i, pkt in enumerate(pending):
                if pkt is None or pkt.time > fix.time:
                    continue
                if fix.time - pkt.time <= window:
                    yield GPSPacket(fix=fix, packet=pkt)
                pending[i] = None
                cleared = True
            if not cleared:
                break

    leftover = sum(pkt is not None for pkt in pending)
    if leftover:
        logger.debug("Discarding %d packets still pending after the last fix", leftover)


def _joined(
    trip_dirs: list[str],
    iface_names: list[str],
    cfg: IngestConfig,
    stop: threading.Event,
    failures: list[str],
) -> Iterator[GPSPacket]:
    fixes = gps_fix_stream(trip_dirs, cfg)
    sources = [interface_packet_stream(trip_dirs, name, cfg) for name in iface_names]
    try:
        yield from correlate(fixes, sources, cfg, stop)
    finally:
        # the fix stream may end first; stop the capture replays still running
        fixes.close()
        for src in sources:
            src.close()
        failures.extend(fixes.failures)
        for src in sources:
            failures.extend(src.failures)


def gps_packets(trip_dirs: Sequence[str], config: Optional[IngestConfig] = None) -> BoundedStream[GPSPacket]:
    """
    Build the whole correlation pipeline over `trip_dirs` (full paths, in
    chronological order) and return its output stream.

    The stream's `failures` lists every source that ended early; it is
    complete once the stream has ended.
    """
    cfg = config or IngestConfig.default()
    trip_dirs = list(trip_dirs)
    iface_names = sorted(interfaces(trip_dirs, cfg.iface_prefix, cfg.wifi_dir))
    logger.info(
        "Correlating %d trips across interfaces: %s",
        len(trip_dirs), ", ".join(iface_names) or "(none)",
    )
    stop = threading.Event()
    failures: list[str] = []
    return BoundedStream(
        "correlate",
        _joined(trip_dirs, iface_names, cfg, stop, failures),
        cfg.joined_queue,
        stop=stop,
        poll_interval=cfg.poll_interval_s,
        failures=failures,
    )
