import pytest
from click.testing import CliRunner

from horizon_capture.cli import main
from horizon_capture.config import Config


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def points_file(tmp_path):
    path = tmp_path / "points.csv"
    path.write_text("Azimuth,Altitude\n0,10\n90,20\n180,-5\n")
    return path


def test_init_config(runner, tmp_path):
    path = tmp_path / "config.yaml"
    result = runner.invoke(main, ["init-config", str(path)])
    assert result.exit_code == 0
    assert Config.from_yaml(path) == Config()


def test_export_hzn_to_file(runner, points_file, tmp_path):
    output = tmp_path / "out" / "horizon.hzn"
    result = runner.invoke(main, ["export", str(points_file), "-o", str(output)])

    assert result.exit_code == 0, result.output
    lines = output.read_text().splitlines()
    assert lines[0] == "# Azimuth Altitude"
    assert len(lines) == 361
    assert lines[46] == "45 10"
    assert lines[181] == "180 0"


def test_export_csv_to_stdout(runner, points_file):
    result = runner.invoke(main, ["export", str(points_file), "--format", "csv", "--delimiter", ";"])
    assert result.exit_code == 0, result.output
    assert "Azimuth;Altitude" in result.output
    assert "180.0;0.0" in result.output


def test_export_of_empty_point_file_fails(runner, tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("az,alt\n1,2\n")
    result = runner.invoke(main, ["export", str(path)])
    assert result.exit_code == 1
    assert "Export failed" in result.output


def test_coverage_report(runner, points_file):
    result = runner.invoke(main, ["coverage", str(points_file), "--gap-threshold", "15"])
    assert result.exit_code == 0, result.output
    assert "HORIZON COVERAGE REPORT" in result.output
    assert "Total points: 3" in result.output


def test_simulate_then_replay(runner, tmp_path):
    log = tmp_path / "sweep.csv"
    output = tmp_path / "sweep.hzn"

    result = runner.invoke(main, ["simulate", str(log), "--samples", "400", "--seed", "1"])
    assert result.exit_code == 0, result.output
    assert log.exists()

    result = runner.invoke(main, ["replay", str(log), "--capture-every", "10", "-o", str(output)])
    assert result.exit_code == 0, result.output
    assert "Replayed 400 samples" in result.output
    assert "HORIZON COVERAGE REPORT" in result.output
    assert len(output.read_text().splitlines()) == 361


def test_invalid_config_reports_error(runner, points_file, tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("capture:\n  resolution: 5\n")

    for command in ("export", "coverage"):
        result = runner.invoke(main, [command, str(points_file), "-c", str(config)])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
        assert not isinstance(result.exception, TypeError)
