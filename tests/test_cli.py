from __future__ import annotations

import json
from pathlib import Path

import pytest

pytest.importorskip("pandas")
pytest.importorskip("PIL")
pytest.importorskip("av")
pytest.importorskip("imageio_ffmpeg")

import main  # noqa: E402

CSV = """time,lat,lon,speed,gx,gy,gz
2024-05-01T12:00:00Z,45.0,6.0,10.0,0.0,0.0,1.0
2024-05-01T12:00:10Z,45.001,6.0,20.0,0.0,0.0,1.0
"""


@pytest.fixture
def telemetry_csv(tmp_path: Path) -> Path:
    path = tmp_path / "lap.csv"
    path.write_text(CSV, encoding="utf-8")
    return path


def test_parse_prints_json(telemetry_csv, capsys):
    assert main.main(["parse", "-i", str(telemetry_csv)]) == 0
    document = json.loads(capsys.readouterr().out)
    assert len(document["points"]) == 2
    assert document["metadata"]["max_speed"] == 20.0


def test_parse_writes_file(telemetry_csv, tmp_path, capsys):
    output = tmp_path / "lap.json"
    assert main.main(["parse", "-i", str(telemetry_csv), "-o", str(output)]) == 0
    assert json.loads(output.read_text(encoding="utf-8"))["metadata"]["point_count"] == 2
    assert "Parsed 2 point(s)" in capsys.readouterr().out


def test_info_summary(telemetry_csv, capsys):
    assert main.main(["info", "-i", str(telemetry_csv)]) == 0
    out = capsys.readouterr().out
    assert "Points: 2" in out
    assert "Duration: 0:10" in out
    assert "Max speed: 72.0 km/h" in out
    assert "Distance: 111 m" in out
    assert "Max G: 1.00" in out


def test_missing_input_exits_with_error(tmp_path, capsys):
    assert main.main(["info", "-i", str(tmp_path / "missing.csv")]) == 1
    assert "not found" in capsys.readouterr().err


def test_malformed_record_reports_record(tmp_path, capsys):
    path = tmp_path / "bad.csv"
    path.write_text(CSV.replace("20.0", "quick"), encoding="utf-8")
    assert main.main(["info", "-i", str(path)]) == 1
    assert "record 2" in capsys.readouterr().err
    assert main.main(["info", "-i", str(path), "--skip-invalid"]) == 0


def test_render_command(telemetry_csv, tmp_path, capsys):
    output = tmp_path / "overlay.mov"
    code = main.main(
        ["-q", "render", "-i", str(telemetry_csv), "-o", str(output),
         "--width", "160", "--height", "90", "--fps", "2", "--style", "minimal"]
    )
    assert code == 0
    assert output.exists()
    assert "Rendered 20 frame(s)" in capsys.readouterr().out


def test_render_rejects_odd_size(telemetry_csv, tmp_path, capsys):
    code = main.main(
        ["render", "-i", str(telemetry_csv), "-o", str(tmp_path / "o.mov"), "--width", "161"]
    )
    assert code == 1
    assert "even" in capsys.readouterr().err


def test_unwritable_output_reports_error(telemetry_csv, tmp_path, capsys):
    output = tmp_path / "missing" / "dir" / "lap.json"
    assert main.main(["parse", "-i", str(telemetry_csv), "-o", str(output)]) == 1
    assert capsys.readouterr().err.startswith("Error: ")


def test_missing_style_file_reports_error(telemetry_csv, tmp_path, capsys):
    code = main.main(
        ["render", "-i", str(telemetry_csv), "-o", str(tmp_path / "o.mov"),
         "--style-file", str(tmp_path / "nope.json")]
    )
    assert code == 1
    assert "Error: " in capsys.readouterr().err
