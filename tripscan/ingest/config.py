# tripscan/ingest/config.py

from dataclasses import dataclass

@dataclass
class IngestConfig:
    """
    Configuration for the trip ingest pipeline.

    Attributes
    ----------
    max_staleness_s
        Maximum age (s) of a packet relative to the fix that claims it.
    iface_prefix
        Name prefix of capture-interface directories.
    gps_log
        GPS log path, relative to a trip directory.
    wifi_dir
        Capture directory, relative to a trip directory.
    capture_prefix
        Name prefix of capture files inside an interface directory.
    gps_queue
        Capacity of the merged fix queue.
    file_queue
        Capacity of each per-trip capture replay queue.
    iface_queue
        Capacity of each per-interface packet queue.
    joined_queue
        Capacity of the correlated record queue.
    poll_interval_s
        Timeout (s) of one poll on an interface queue while filling slots.
    """
    max_staleness_s:  float = 5.0
    iface_prefix:     str   = "wl"
    gps_log:          str   = "gps/nmea.log"
    wifi_dir:         str   = "wifi"
    capture_prefix:   str   = "pcap"
    gps_queue:        int   = 8
    file_queue:       int   = 16
    iface_queue:      int   = 32
    joined_queue:     int   = 64
    poll_interval_s:  float = 0.05

    @classmethod
    def default(cls):
        """Preset matching the on-bike recorder layout."""
        return cls()
