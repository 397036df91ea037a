"""
Bounded producer streams for the ingest pipeline.

Every stage that reads from disk runs in its own thread and hands records to
its consumer through a bounded queue, so a fast producer blocks instead of
buffering a whole trip in memory. Streams are single-pass, single-consumer,
and must be closed (or drained) so their producer threads terminate.
"""

import os
import queue
import threading
from typing import Generic, Iterable, Iterator, Optional, Sequence, TypeVar

from tripscan.ingest.config import IngestConfig
from tripscan.ingest.trips import capture_files
from tripscan.parsers.nmea import GPSLog, GPSReadError
from tripscan.parsers.pcap import CaptureOpenError, iter_capture
from tripscan.utils.validate import Fix, Packet
from tripscan.utils.log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_END = object()


class BoundedStream(Generic[T]):
    """
    Iterate `source` in a background thread, handing items over through a
    queue of at most `maxsize` entries.

    Parameters
    ----------
    name
        Thread name, used in log output.
    source
        Iterable producing the items; generators are closed when the
        producer stops, which releases the files they hold.
    maxsize
        Queue capacity.
    stop
        Event the producer watches while blocked; `close()` sets it.
        Pass your own to let `source` observe cancellation too.
    poll_interval
        How often (s) a blocked producer re-checks `stop`.

    Attributes
    ----------
    failures
        Human-readable descriptions of source failures that ended part of
        the stream early. Producers append to it; read it after the stream
        has ended.
    ended
        True once the consumer has seen the end of the stream.
    """

    def __init__(
        self,
        name: str,
        source: Iterable[T],
        maxsize: int,
        stop: Optional[threading.Event] = None,
        poll_interval: float = 0.05,
        failures: Optional[list[str]] = None,
    ) -> None:
        self.name = name
        self.failures: list[str] = failures if failures is not None else []
        self.ended = False
        self.error: Optional[BaseException] = None
        self._source = source
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize)
        self._stop = stop or threading.Event()
        self._poll = poll_interval
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    # --- producer side ---

    def _run(self) -> None:
        it = iter(self._source)
        try:
            for item in it:
                if not self._put(item):
                    break
        except Exception as exc:
            logger.error("Stream %s failed", self.name, exc_info=exc)
            self.error = exc
        finally:
            close = getattr(it, "close", None)
            if close is not None:
                close()
            self._put(_END)

    def _put(self, item: object) -> bool:
        while not self._stop.is_set():
            try:
                self._queue.put(item, timeout=self._poll)
                return True
            except queue.Full:
                continue
        return False

    # --- consumer side ---

    def poll(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Return the next item, or None if nothing arrived within `timeout`
        (None blocks) or the stream has ended; check `ended` to tell the
        two apart. Re-raises an unexpected producer error at end of stream.
        """
        if self.ended:
            return None
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _END:
            self.ended = True
            self._thread.join()
            if self.error is not None:
                raise self.error
            return None
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self.poll()
            if item is None:
                return
            yield item

    def close(self) -> None:
        """
        Stop the producer and wait for its thread to exit. Idempotent.
        """
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        while self._thread.is_alive():
            try:
                self._queue.get(timeout=self._poll)
            except queue.Empty:
                pass
        self._thread.join()
        self.ended = True

    def __enter__(self) -> "BoundedStream[T]":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _trip_fixes(trip_dirs: Sequence[str], cfg: IngestConfig, failures: list[str]) -> Iterator[Fix]:
    for trip_dir in trip_dirs:
        path = os.path.join(trip_dir, cfg.gps_log)
        if not os.path.exists(path):
            logger.debug("No GPS log in %s", trip_dir)
            continue
        try:
            log = GPSLog(path)
        except OSError as exc:
            logger.warning("Skipping GPS log %s: %s", path, exc)
            failures.append(f"{path}: {exc}")
            continue
        with log:
            try:
                yield from log
            except GPSReadError as exc:
                logger.warning("GPS log ends early: %s", exc)
                failures.append(str(exc))


def gps_fix_stream(trip_dirs: Sequence[str], config: Optional[IngestConfig] = None) -> BoundedStream[Fix]:
    """
    Merged fix stream: every trip's GPS log in trip order, then file order.
    Trips without a log contribute nothing.
    """
    cfg = config or IngestConfig.default()
    failures: list[str] = []
    return BoundedStream(
        "gps",
        _trip_fixes(list(trip_dirs), cfg, failures),
        cfg.gps_queue,
        poll_interval=cfg.poll_interval_s,
        failures=failures,
    )


def _dir_packets(iface_dir: str, cfg: IngestConfig, failures: list[str]) -> Iterator[Packet]:
    try:
        paths = capture_files(iface_dir, cfg.capture_prefix)
    except OSError as exc:
        logger.warning("Cannot list captures in %s: %s", iface_dir, exc)
        failures.append(f"{iface_dir}: {exc}")
        return
    for path in paths:
        try:
            packets = iter_capture(path)
        except CaptureOpenError as exc:
            # the remaining rotations of this directory are not trusted either
            logger.warning("Stopping replay of %s: %s", iface_dir, exc)
            failures.append(str(exc))
            return
        try:
            yield from packets
        except Exception as exc:
            # ends this directory like an open failure; sibling streams carry on
            logger.error("Replay of %s failed", path, exc_info=exc)
            failures.append(f"{path}: {exc}")
            return


def _iface_packets(
    trip_dirs: Sequence[str], iface: str, cfg: IngestConfig, failures: list[str]
) -> Iterator[Packet]:
    for trip_dir in trip_dirs:
        iface_dir = os.path.join(trip_dir, cfg.wifi_dir, iface)
        if not os.path.isdir(iface_dir):
            continue
        replay = BoundedStream(
            f"replay-{iface}-{os.path.basename(trip_dir)}",
            _dir_packets(iface_dir, cfg, failures),
            cfg.file_queue,
            poll_interval=cfg.poll_interval_s,
        )
        with replay:
            yield from replay


def interface_packet_stream(
    trip_dirs: Sequence[str], iface: str, config: Optional[IngestConfig] = None
) -> BoundedStream[Packet]:
    """
    Merged packet stream of one capture interface: trip order, then
    rotation order within each trip. Trips that did not record `iface`
    are skipped.
    """
    cfg = config or IngestConfig.default()
    failures: list[str] = []
    return BoundedStream(
        f"iface-{iface}",
        _iface_packets(list(trip_dirs), iface, cfg, failures),
        cfg.iface_queue,
        poll_interval=cfg.poll_interval_s,
        failures=failures,
    )
