import pytest

from horizon_capture.errors import ExportError
from horizon_capture.exporter import HZN_HEADER, HorizonExporter


@pytest.fixture
def exporter():
    return HorizonExporter()


def test_carry_forward_fills_forward_and_wraps(exporter, make_points):
    profile = exporter.build_profile(make_points([(0, 10), (90, 20)]))

    assert len(profile) == 360
    assert profile[0] == 10
    assert profile[45] == 10
    assert profile[90] == 20
    assert profile[359] == 20


def test_carry_forward_fills_leading_entries_backward(exporter, make_points):
    profile = exporter.build_profile(make_points([(10, 5), (20, 7)]))
    assert profile[:10] == [5.0] * 10
    assert profile[15] == 5.0
    assert profile[359] == 7.0


def test_carry_forward_takes_minimum_per_bucket(exporter, make_points):
    profile = exporter.build_profile(make_points([(90, 20), (90.4, 5), (89.6, 12)]))
    assert profile[90] == 5


def test_carry_forward_rounds_half_up(exporter, make_points):
    profile = exporter.build_profile(make_points([(0.5, 3), (100, 9)]))
    assert profile[1] == 3
    assert profile[0] == 3


def test_carry_forward_honours_resolution(exporter, make_points):
    profile = exporter.build_profile(make_points([(0, 10), (90, 20)]), resolution=5.0)
    assert len(profile) == 72
    assert profile[9] == 10   # 45°
    assert profile[18] == 20  # 90°


def test_empty_profile_is_zero(exporter):
    assert exporter.build_profile([]) == [0.0] * 360
    assert exporter.build_profile([], policy="nearest_neighbor", resolution=5) == [0.0] * 72


def test_nearest_neighbor(exporter, make_points):
    points = make_points([(0, 10), (90, 20)])
    profile = exporter.build_profile(points, resolution=5.0, policy="nearest_neighbor")

    assert len(profile) == 72
    assert profile[9] == 10    # 45°: tie, smaller azimuth wins
    assert profile[10] == 20   # 50°
    assert profile[71] == 20   # 355°: distance is not wrapped across north
    assert profile[36] == 20   # 180°


def test_nearest_neighbor_uses_absolute_difference(exporter, make_points):
    points = make_points([(20, 5), (350, 30)])
    profile = exporter.build_profile(points, resolution=5.0, policy="nearest_neighbor")

    assert profile[0] == 5
    assert profile[37] == 5    # 185°: 165 from 20°, 165 from 350°, tie
    assert profile[38] == 30   # 190°
    assert profile[71] == 30


def test_build_profile_rejects_bad_resolution(exporter, make_points):
    with pytest.raises(ExportError):
        exporter.build_profile(make_points([(0, 10)]), resolution=7.0)


def test_hzn_export(exporter, make_points):
    text = exporter.export(make_points([(0, 10.3), (90, -5)]), "hzn")
    lines = text.split("\n")

    assert lines[0] == HZN_HEADER
    assert len(lines) == 361
    assert lines[1] == "0 10.3"
    assert lines[91] == "90 0"
    assert lines[360] == "359 0"


def test_hzn_integer_values_have_no_decimals(exporter, make_points):
    lines = exporter.export(make_points([(0, 10)]), "hzn").split("\n")
    assert lines[46] == "45 10"


def test_csv_export_sorted_and_floored(exporter, make_points):
    text = exporter.export(make_points([(200, 3.3), (10, -5), (100, 12)]), "csv")
    assert text.split("\n") == [
        "Azimuth,Altitude",
        "10.0,0.0",
        "100.0,12.0",
        "200.0,3.3",
    ]


def test_csv_semicolon_dms_and_timestamp(make_points):
    exporter = HorizonExporter(delimiter=";", include_timestamp=True, coordinate_format="dms")
    lines = exporter.export(make_points([(12.5, 1.25)]), "csv").split("\n")

    assert lines[0] == "Azimuth;Altitude;Timestamp"
    azimuth, altitude, timestamp = lines[1].split(";")
    assert azimuth == "12°30'00.0\""
    assert altitude == "1°15'00.0\""
    assert timestamp.startswith("2023-11-14T")


def test_export_without_points_is_rejected(exporter):
    with pytest.raises(ExportError):
        exporter.export([], "hzn")
    with pytest.raises(ExportError):
        exporter.export([], "csv")


def test_unknown_format_rejected(exporter, make_points):
    with pytest.raises(ExportError):
        exporter.export(make_points([(0, 1)]), "json")
    with pytest.raises(ExportError):
        exporter.serialize([], "json")


def test_serialize_profile_requires_whole_degree_profile(exporter):
    with pytest.raises(ExportError):
        exporter.serialize([0.0] * 72, "hzn")
    assert exporter.serialize([1.0] * 360, "hzn").count("\n") == 360


@pytest.mark.parametrize("kwargs", [
    {"policy": "linear"},
    {"delimiter": "\t"},
    {"coordinate_format": "radians"},
])
def test_bad_settings_rejected(kwargs):
    with pytest.raises(ExportError):
        HorizonExporter(**kwargs)


def test_export_error_is_value_error():
    assert issubclass(ExportError, ValueError)


def test_suggested_filename():
    exporter = HorizonExporter(filename="backyard")
    assert exporter.suggested_filename("hzn") == "backyard.hzn"
    assert exporter.suggested_filename("csv") == "backyard.csv"
