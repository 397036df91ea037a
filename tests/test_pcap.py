import dpkt
import pytest

from tripscan.parsers.pcap import (
    CaptureFile,
    CaptureOpenError,
    ieee80211_source,
    iter_capture,
)

from conftest import (
    RADIOTAP,
    T0_UNIX,
    ack_frame,
    at,
    mac_bytes,
    probe_request,
    write_capture,
    write_pcapng,
    write_sightings,
)


def test_radiotap_capture(tmp_path):
    path = str(tmp_path / "pcap")
    write_sightings(path, [(1, "AA:BB:CC:00:00:01"), (2.5, "aa:bb:cc:00:00:02")])

    packets = list(iter_capture(path))

    assert [p.src for p in packets] == ["aa:bb:cc:00:00:01", "aa:bb:cc:00:00:02"]
    assert [p.time for p in packets] == [at(1), at(2.5)]


def test_gzip_rotation_file(tmp_path):
    path = str(tmp_path / "pcap3.gz")
    write_sightings(path, [(7, "02:00:00:00:00:07")])

    with CaptureFile(path) as capture:
        assert [p.src for p in capture] == ["02:00:00:00:00:07"]


def test_frames_without_transmitter_are_skipped(tmp_path):
    path = str(tmp_path / "pcap")
    write_capture(
        path,
        [
            (T0_UNIX + 1, RADIOTAP + ack_frame("aa:aa:aa:aa:aa:aa")),
            (T0_UNIX + 2, RADIOTAP + probe_request("bb:bb:bb:bb:bb:bb")),
            (T0_UNIX + 3, RADIOTAP + b"\x40\x00"),
        ],
    )

    assert [p.src for p in iter_capture(path)] == ["bb:bb:bb:bb:bb:bb"]


def test_raw_80211_link_type(tmp_path):
    path = str(tmp_path / "pcap")
    write_capture(
        path,
        [(T0_UNIX, probe_request("cc:cc:cc:cc:cc:cc"))],
        linktype=dpkt.pcap.DLT_IEEE802_11,
    )

    assert [p.src for p in iter_capture(path)] == ["cc:cc:cc:cc:cc:cc"]


def test_ethernet_link_type(tmp_path):
    path = str(tmp_path / "pcap")
    frame = mac_bytes("ff:ff:ff:ff:ff:ff") + mac_bytes("de:ad:be:ef:00:01") + b"\x08\x06" + b"\x00" * 28
    write_capture(path, [(T0_UNIX, frame)], linktype=dpkt.pcap.DLT_EN10MB)

    assert [p.src for p in iter_capture(path)] == ["de:ad:be:ef:00:01"]


def test_rts_carries_transmitter():
    rts = b"\xb4\x00" + b"\x00\x00" + mac_bytes("11:11:11:11:11:11") + mac_bytes("22:22:22:22:22:22")
    assert ieee80211_source(rts) == "22:22:22:22:22:22"


@pytest.mark.parametrize("content", [b"", b"not a capture at all, just text"])
def test_not_a_capture(tmp_path, content):
    path = tmp_path / "pcap"
    path.write_bytes(content)
    with pytest.raises(CaptureOpenError):
        CaptureFile(str(path))


def test_corrupt_gzip(tmp_path):
    path = tmp_path / "pcap1.gz"
    path.write_bytes(b"definitely not gzip")
    with pytest.raises(CaptureOpenError):
        CaptureFile(str(path))


def test_missing_file(tmp_path):
    with pytest.raises(CaptureOpenError):
        iter_capture(str(tmp_path / "pcap"))


def test_truncated_capture_keeps_complete_records(tmp_path):
    path = tmp_path / "pcap"
    write_sightings(str(path), [(1, "aa:aa:aa:aa:aa:01"), (2, "aa:aa:aa:aa:aa:02")])
    # cut the second record's header in half, as a power loss mid-write would
    data = path.read_bytes()
    record_len = 16 + len(RADIOTAP) + len(probe_request("aa:aa:aa:aa:aa:01"))
    path.write_bytes(data[: 24 + record_len + 8])

    assert [p.src for p in iter_capture(str(path))] == ["aa:aa:aa:aa:aa:01"]


def test_truncated_gzip_stream(tmp_path):
    path = tmp_path / "pcap1.gz"
    sightings = [(s, f"aa:aa:aa:aa:aa:{s:02x}") for s in range(50)]
    write_sightings(str(path), sightings)
    blob = path.read_bytes()
    path.write_bytes(blob[: len(blob) - 20])

    got = [p.src for p in iter_capture(str(path))]
    assert got == [src for _, src in sightings][: len(got)]


def test_pcapng_capture(tmp_path):
    path = str(tmp_path / "pcap")
    write_pcapng(path, [(T0_UNIX + 4, RADIOTAP + probe_request("dd:dd:dd:dd:dd:01"))])

    packets = list(iter_capture(path))
    assert [(p.time, p.src) for p in packets] == [(at(4), "dd:dd:dd:dd:dd:01")]


def test_record_with_impossible_timestamp_ends_file(tmp_path):
    path = str(tmp_path / "pcap")
    write_pcapng(
        path,
        [
            (T0_UNIX + 1, RADIOTAP + probe_request("aa:aa:aa:aa:aa:01")),
            (1e13, RADIOTAP + probe_request("aa:aa:aa:aa:aa:02")),
            (T0_UNIX + 3, RADIOTAP + probe_request("aa:aa:aa:aa:aa:03")),
        ],
    )

    assert [p.src for p in iter_capture(path)] == ["aa:aa:aa:aa:aa:01"]
