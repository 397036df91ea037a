"""
Pydantic schemas for decoded records, correlated records and the persisted session.
"""

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Fix(BaseModel):
    """
    Single GPS sample. A missing time or a NaN coordinate means the
    receiver had no usable fix; such records are valid but unusable.
    """
    model_config = ConfigDict(frozen=True)

    time: Optional[datetime] = None
    latitude: float = math.nan
    longitude: float = math.nan

    def usable(self) -> bool:
        return self.time is not None and not math.isnan(self.latitude)


class Packet(BaseModel):
    """
    Single captured frame, reduced to its capture time and source hardware address.
    """
    model_config = ConfigDict(frozen=True)

    time: datetime
    src: str


class GPSPacket(BaseModel):
    """
    A packet paired with the fix that covers it.
    """
    model_config = ConfigDict(frozen=True)

    fix: Fix
    packet: Packet


class SessionSnapshot(BaseModel):
    """
    On-disk form of a session database.
    """
    trips: set[str] = set()
    time_map: dict[int, list[GPSPacket]] = {}


class MapFeature(BaseModel):
    """
    One map marker: every address first seen at a given second, and where.
    """
    name: str
    lat: float
    lon: float
