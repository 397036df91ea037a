"""
NMEA parser: decode a recorded NMEA 0183 log into a lazy sequence of Fix records.
"""

import math
from datetime import date, datetime, time, timezone
from typing import IO, Iterator, Optional

import pynmea2
from pynmea2.nmea_utils import dm_to_sd

from tripscan.utils.validate import Fix
from tripscan.utils.log import get_logger

logger = get_logger(__name__)


class GPSReadError(OSError):
    """
    The underlying GPS log failed part way through a read.
    """


def parse_line(line: str) -> Optional[Fix]:
    """
    Decode one NMEA sentence.

    Parameters
    ----------
    line : str
        Raw sentence, with or without trailing newline.

    Returns
    -------
    Optional[Fix]
        None when the line is not a decodable sentence. RMC sentences carry
        time and position; any other sentence type yields an empty Fix.
    """
    line = line.strip()
    if not line.startswith("$"):
        return None
    try:
        msg = pynmea2.parse(line)
    except pynmea2.ParseError as exc:
        logger.debug("Skipping undecodable sentence %r: %s", line, exc)
        return None
    if not isinstance(msg, pynmea2.types.talker.RMC):
        return Fix()
    return Fix(
        time=_rmc_time(msg),
        latitude=_coordinate(msg.lat, msg.lat_dir, "S"),
        longitude=_coordinate(msg.lon, msg.lon_dir, "W"),
    )


def _rmc_time(msg: pynmea2.types.talker.RMC) -> Optional[datetime]:
    stamp, day = msg.timestamp, msg.datestamp
    # pynmea2 hands back the raw field when it fails to convert it
    if not isinstance(stamp, time) or not isinstance(day, date):
        return None
    return datetime.combine(day, stamp.replace(tzinfo=None), tzinfo=timezone.utc)


def _coordinate(value: str, hemisphere: str, negative: str) -> float:
    """
    Convert a (D)DDMM.MMMM field to decimal degrees; NaN when empty.
    """
    if not value:
        return math.nan
    try:
        deg = dm_to_sd(value)
    except ValueError:
        return math.nan
    return -deg if hemisphere == negative else deg


class GPSLog:
    """
    Lazy, closable Fix sequence over one recorded NMEA log.

    Opening raises OSError if the log cannot be opened. Iteration skips
    undecodable lines and raises GPSReadError if the read itself fails.
    `close()` may be called any number of times.
    """

    def __init__(self, path: str):
        self.path = path
        self._f: IO[str] = open(path, "r", encoding="ascii", errors="replace")
        self.closed = False

    def __iter__(self) -> Iterator[Fix]:
        try:
            for line in self._f:
                fix = parse_line(line)
                if fix is not None:
                    yield fix
        except ValueError as exc:
            # reading a file closed under us
            if self.closed:
                return
            raise GPSReadError(f"{self.path}: {exc}") from exc
        except OSError as exc:
            raise GPSReadError(f"{self.path}: {exc}") from exc

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._f.close()

    def __enter__(self) -> "GPSLog":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
