"""
Session database: the TimeMap plus the set of trips it was built from,
persisted as a single JSON document.
"""

import os
import tempfile
from typing import Optional

from pydantic import ValidationError

from tripscan.ingest.config import IngestConfig
from tripscan.ingest.correlate import gps_packets
from tripscan.ingest.timemap import TimeMap, build_time_map
from tripscan.ingest.trips import sorted_trips
from tripscan.utils.validate import SessionSnapshot
from tripscan.utils.log import get_logger

logger = get_logger(__name__)


class SessionDecodeError(ValueError):
    """
    A persisted session database is not structurally valid.
    """


class IncrementalIngestError(NotImplementedError):
    """
    Trips were added to a database that already holds trips. Merging new
    trips into an existing TimeMap is not supported.
    """


class SessionDatabase:
    """
    Encapsulates the ingested TimeMap and the trips it covers.
    """

    def __init__(self, trips: Optional[set[str]] = None, time_map: Optional[TimeMap] = None):
        self.trips: set[str] = trips if trips is not None else set()
        self.time_map: TimeMap = time_map if time_map is not None else {}

    @classmethod
    def load(cls, path: str) -> "SessionDatabase":
        """
        Read a database written by `save`.

        Raises
        ------
        FileNotFoundError
            If `path` does not exist.
        SessionDecodeError
            If the file is not a valid session database.
        """
        with open(path, "rb") as f:
            blob = f.read()
        try:
            snap = SessionSnapshot.model_validate_json(blob)
        except ValidationError as exc:
            raise SessionDecodeError(f"{path}: not a session database") from exc
        logger.info("Loaded %s: %d trips, %d buckets", path, len(snap.trips), len(snap.time_map))
        return cls(snap.trips, snap.time_map)

    def save(self, path: str) -> None:
        """
        Write the database to `path`, replacing it atomically.
        """
        snap = SessionSnapshot(trips=self.trips, time_map=self.time_map)
        blob = snap.model_dump_json()
        dir_name = os.path.dirname(os.path.abspath(path))
        fd, tmp_path = tempfile.mkstemp(prefix=".tripscan-", suffix=".tmp", dir=dir_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, 0o644)
            os.replace(tmp_path, path)
        except BaseException:
            os.unlink(tmp_path)
            raise
        logger.info("Saved %s: %d trips, %d buckets", path, len(self.trips), len(self.time_map))

    def add_trips(self, root: str, config: Optional[IngestConfig] = None) -> None:
        """
        Ingest every trip under `root` into an empty database.

        Raises
        ------
        IncrementalIngestError
            If the database already holds trips.
        OSError
            If `root` cannot be listed.
        """
        if self.trips:
            raise IncrementalIngestError(
                f"database already holds {len(self.trips)} trips; re-ingest into a new database"
            )
        trips = sorted_trips(root)
        logger.info("Ingest: %d trips under %s", len(trips), root)
        stream = gps_packets([os.path.join(root, t) for t in trips], config)
        with stream:
            time_map = build_time_map(stream)
        for failure in stream.failures:
            logger.warning("Incomplete source: %s", failure)
        self.time_map = time_map
        self.trips.update(trips)
