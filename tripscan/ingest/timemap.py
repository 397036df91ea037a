"""
Deduplicating time-map builder: keep the first sighting of every source
address, bucketed by the Unix second of the fix that placed it.
"""

import math
from typing import Iterable

from tripscan.utils.validate import GPSPacket
from tripscan.utils.log import get_logger

logger = get_logger(__name__)

TimeMap = dict[int, list[GPSPacket]]


def unix_second(record: GPSPacket) -> int:
    return math.floor(record.fix.time.timestamp())


def build_time_map(records: Iterable[GPSPacket]) -> TimeMap:
    """
    Consume correlated records and return the TimeMap.

    Records without a longitude are skipped. A record whose source address
    was already placed is dropped, so each address lands in exactly one
    bucket.
    """
    time_map: TimeMap = {}
    seen: set[str] = set()
    n_records = n_dupes = 0
    for record in records:
        n_records += 1
        if math.isnan(record.fix.longitude):
            logger.debug("Skipping record without longitude: %s", record.packet.src)
            continue
        src = record.packet.src
        if src in seen:
            n_dupes += 1
            continue
        seen.add(src)
        time_map.setdefault(unix_second(record), []).append(record)
    logger.info(
        "Placed %d addresses in %d buckets (%d records, %d repeat sightings)",
        len(seen), len(time_map), n_records, n_dupes,
    )
    return time_map
