from __future__ import annotations

import json
from pathlib import Path

import pytest

pytest.importorskip("pandas")
pytest.importorskip("gpxpy")

from overlog.errors import TelemetryParseError, UnsupportedFormatError  # noqa: E402
from overlog.parsers import (  # noqa: E402
    detect_format,
    parse,
    parse_file,
    parse_number,
    parse_timestamp,
    to_json,
)


SAMPLE_CSV = """timestamp,lat,lon,speed,gx,gy,gz,rpm
2024-05-01T12:00:00Z,45.0,6.0,10.0,0.1,0.2,1.0,3000
2024-05-01T12:00:01Z,45.0001,6.0001,12.5,,,,3100
2024-05-01T12:00:02Z,45.0002,6.0002,,0.3,0.1,1.0,
"""

SAMPLE_GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="pytest" xmlns="http://www.topografix.com/GPX/1/1">
  <trk>
    <name>Test Track</name>
    <trkseg>
      <trkpt lat="45.0000" lon="6.0000">
        <ele>1200.0</ele>
        <time>2023-01-01T08:00:00Z</time>
      </trkpt>
      <trkpt lat="45.0005" lon="6.0005">
        <ele>1210.0</ele>
        <time>2023-01-01T08:00:10Z</time>
      </trkpt>
      <trkpt lat="45.0010" lon="6.0010">
        <ele>1220.0</ele>
        <time>2023-01-01T08:00:20Z</time>
      </trkpt>
    </trkseg>
  </trk>
</gpx>
"""

SAMPLE_TCX = """<?xml version="1.0" encoding="UTF-8"?>
<TrainingCenterDatabase xmlns="http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2"
    xmlns:ns3="http://www.garmin.com/xmlschemas/ActivityExtension/v2">
  <Activities>
    <Activity Sport="Biking">
      <Lap StartTime="2023-01-01T08:00:00Z">
        <Track>
          <Trackpoint>
            <Time>2023-01-01T08:00:00Z</Time>
            <Position>
              <LatitudeDegrees>45.0</LatitudeDegrees>
              <LongitudeDegrees>6.0</LongitudeDegrees>
            </Position>
            <AltitudeMeters>500.0</AltitudeMeters>
            <Extensions>
              <ns3:TPX>
                <ns3:Speed>8.5</ns3:Speed>
              </ns3:TPX>
            </Extensions>
          </Trackpoint>
          <Trackpoint>
            <Time>2023-01-01T08:00:05Z</Time>
            <AltitudeMeters>501.0</AltitudeMeters>
          </Trackpoint>
        </Track>
      </Lap>
    </Activity>
  </Activities>
</TrainingCenterDatabase>
"""


def test_csv_columns_and_absent_values():
    series = parse("csv", SAMPLE_CSV.encode(), source="lap.csv")
    assert len(series) == 3
    first, second, third = series
    assert first.latitude == 45.0
    assert first.g_force_x == 0.1
    assert first.rpm == 3000.0
    assert second.g_force_x is None
    assert second.g_force is None
    assert third.speed is None
    assert third.rpm is None
    assert series.summary.max_speed == 12.5
    assert series.summary.format == "csv"


def test_csv_missing_timestamp_column():
    with pytest.raises(TelemetryParseError):
        parse("csv", b"lat,lon\n45,6\n")


def test_csv_malformed_record_names_record():
    raw = SAMPLE_CSV.replace("12.5", "fast").encode()
    with pytest.raises(TelemetryParseError) as excinfo:
        parse("csv", raw, source="lap.csv")
    assert excinfo.value.record == 2
    assert excinfo.value.source == "lap.csv"
    assert "lap.csv" in str(excinfo.value)
    assert "record 2" in str(excinfo.value)


def test_csv_skip_policy_drops_bad_record(caplog):
    raw = SAMPLE_CSV.replace("12.5", "fast").encode()
    with caplog.at_level("WARNING"):
        series = parse("csv", raw, source="lap.csv", on_error="skip")
    assert len(series) == 2
    assert "record 2" in caplog.text


def test_csv_rejects_out_of_range_latitude():
    raw = b"timestamp,lat,lon\n2024-05-01T12:00:00Z,95,6\n"
    with pytest.raises(TelemetryParseError):
        parse("csv", raw)


def test_json_points_document():
    document = {
        "points": [
            {"timestamp": "2024-05-01T12:00:01Z", "speed": 2.0},
            {"timestamp": "2024-05-01T12:00:00Z", "speed": 1.0, "heading": 90},
        ],
        "metadata": {"source": "logger-7"},
    }
    series = parse("json", json.dumps(document).encode())
    assert [s.speed for s in series] == [1.0, 2.0]
    assert series[0].heading == 90.0
    assert series.source == "logger-7"


def test_json_bare_list_and_epoch_times():
    series = parse("json", b'[{"time": 1714564800, "lat": 1.5, "lng": 2.5}]')
    assert series[0].timestamp.isoformat() == "2024-05-01T12:00:00+00:00"
    assert series[0].longitude == 2.5


def test_json_not_a_list():
    with pytest.raises(TelemetryParseError):
        parse("json", b'{"points": 3}')


def test_json_output_round_trips_points():
    series = parse("csv", SAMPLE_CSV.encode(), source="lap.csv")
    again = parse("json", to_json(series).encode())
    assert [s.channels() for s in again] == [s.channels() for s in series]
    assert [s.timestamp for s in again] == [s.timestamp for s in series]


def test_gpx_track_points():
    series = parse("gpx", SAMPLE_GPX.encode(), source="ride.gpx")
    assert len(series) == 3
    assert series[1].altitude == 1210.0
    assert series[2].latitude == pytest.approx(45.001)
    assert series[0].speed is None
    assert series.summary.total_distance > 0


def test_gpx_point_without_time_is_malformed():
    raw = SAMPLE_GPX.replace("<time>2023-01-01T08:00:10Z</time>", "").encode()
    with pytest.raises(TelemetryParseError) as excinfo:
        parse("gpx", raw)
    assert excinfo.value.record == 2
    assert len(parse("gpx", raw, on_error="skip")) == 2


def test_gpx_invalid_document():
    with pytest.raises(TelemetryParseError):
        parse("gpx", b"<gpx><trk>")


def test_tcx_trackpoints():
    series = parse("tcx", SAMPLE_TCX.encode())
    assert len(series) == 2
    assert series[0].speed == 8.5
    assert series[0].latitude == 45.0
    assert series[1].latitude is None
    assert series[1].altitude == 501.0


def test_unsupported_format():
    with pytest.raises(UnsupportedFormatError):
        parse("bin", b"")
    with pytest.raises(UnsupportedFormatError):
        detect_format("clip.bin")
    assert detect_format("ride.GPX") == "gpx"


def test_unknown_error_policy():
    with pytest.raises(ValueError):
        parse("csv", SAMPLE_CSV.encode(), on_error="ignore")


def test_parse_file_detects_format(tmp_path: Path):
    path = tmp_path / "ride.gpx"
    path.write_text(SAMPLE_GPX, encoding="utf-8")
    series = parse_file(path)
    assert series.source == str(path)
    assert series.summary.format == "gpx"


@pytest.mark.parametrize("value", ["", None, "  "])
def test_parse_number_absent(value):
    assert parse_number(value, "speed") is None


@pytest.mark.parametrize("value", ["nan", "inf", True, "abc"])
def test_parse_number_invalid(value):
    with pytest.raises(ValueError):
        parse_number(value, "speed")


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-05-01T12:00:00Z") == parse_timestamp("2024-05-01T12:00:00")
    assert parse_timestamp("1714564800") == parse_timestamp("2024-05-01T12:00:00+00:00")
    assert parse_timestamp("2024-05-01T14:00:00+02:00") == parse_timestamp(1714564800)
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


@pytest.mark.parametrize(
    "header",
    ["timestamp,lat,latitude,speed", "time,timestamp,lat,speed", "timestamp,lat,Speed,speed"],
)
def test_csv_rejects_columns_with_the_same_meaning(header):
    raw = f"{header}\n2024-01-01T00:00:00Z,45.0,,1\n".encode()
    with pytest.raises(TelemetryParseError) as excinfo:
        parse("csv", raw, source="dup.csv")
    assert "both map to" in str(excinfo.value)
    assert excinfo.value.record is None


def test_json_rejects_aliased_duplicate_fields():
    raw = b'[{"time": 1714564800, "lat": 45.0, "latitude": null}]'
    with pytest.raises(TelemetryParseError) as excinfo:
        parse("json", raw)
    assert "'lat' and 'latitude' both map to 'latitude'" in str(excinfo.value)
