"""
Trip directory layout helpers: enumerate trips, discover capture interfaces,
and order rotated capture files.

Layout:
  <root>/<trip>/gps/nmea.log
  <root>/<trip>/wifi/<iface>/pcap, pcap1.gz, pcap2.gz, ...
"""

import os
from typing import Iterable

from tripscan.utils.log import get_logger

logger = get_logger(__name__)


def sorted_trips(root: str) -> list[str]:
    """
    Return the trip directory names under `root`, in name order.

    Trip directories are named by their UTC start time (RFC 3339), so name
    order is chronological order. Plain files are ignored.

    Raises
    ------
    OSError
        If `root` cannot be listed.
    """
    with os.scandir(root) as it:
        names = [entry.name for entry in it if entry.is_dir()]
    return sorted(names)


def trip_interfaces(trip_dir: str, prefix: str = "wl", wifi_dir: str = "wifi") -> list[str]:
    """
    Return the capture-interface directory names recorded by one trip.

    Raises
    ------
    OSError
        If the trip has no capture directory.
    """
    with os.scandir(os.path.join(trip_dir, wifi_dir)) as it:
        return [entry.name for entry in it if entry.name.startswith(prefix)]


def interfaces(
    trip_dirs: Iterable[str],
    prefix: str = "wl",
    wifi_dir: str = "wifi",
    strict: bool = False,
) -> set[str]:
    """
    Union of the capture interfaces used across `trip_dirs`.

    With `strict=False` a trip without a capture directory contributes
    nothing; with `strict=True` the OSError propagates.
    """
    found: set[str] = set()
    for trip_dir in trip_dirs:
        try:
            found.update(trip_interfaces(trip_dir, prefix, wifi_dir))
        except OSError as exc:
            if strict:
                raise
            logger.debug("No capture interfaces in %s: %s", trip_dir, exc)
    return found


def capture_sequence(name: str, prefix: str = "pcap") -> int:
    """
    Rotation number embedded in a capture file name: "pcap" -> -1,
    "pcap12.gz" -> 12. Names without a parseable number sort first.
    """
    digits = name[len(prefix):].split(".")[0]
    try:
        return int(digits)
    except ValueError:
        return -1


def capture_files(iface_dir: str, prefix: str = "pcap") -> list[str]:
    """
    Paths of the capture files in one interface directory, in rotation order.

    Raises
    ------
    OSError
        If the directory cannot be listed.
    """
    with os.scandir(iface_dir) as it:
        names = [entry.name for entry in it if entry.is_file() and entry.name.startswith(prefix)]
    names.sort(key=lambda n: (capture_sequence(n, prefix), n))
    return [os.path.join(iface_dir, n) for n in names]
