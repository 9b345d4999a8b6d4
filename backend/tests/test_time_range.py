import pytest

from app.core.exceptions import ErrorKind, InvalidFormatError
from app.services.time_range import minutes_to_hhmm, overlaps, to_minutes, validate_range


def test_to_minutes_parses_wall_clock_values():
    assert to_minutes("00:00") == 0
    assert to_minutes("08:30") == 510
    assert to_minutes("23:59") == 1439


@pytest.mark.parametrize(
    "value",
    ["8:30", "24:00", "12:60", "noon", "", "08:30:00", "08:00\n", " 08:00", "\u0660\u0668:\u0660\u0660"],
)
def test_to_minutes_rejects_malformed_values(value):
    with pytest.raises(InvalidFormatError) as exc_info:
        to_minutes(value)
    assert exc_info.value.kind == ErrorKind.invalid_format
    assert exc_info.value.status_code == 400


def test_touching_ranges_do_not_overlap():
    assert not overlaps(480, 600, 600, 720)
    assert not overlaps(600, 720, 480, 600)
    assert overlaps(480, 600, 540, 660)
    assert overlaps(480, 720, 540, 600)


def test_validate_range_requires_start_before_end():
    assert validate_range("08:00", "10:00") == (480, 600)
    with pytest.raises(InvalidFormatError, match="must be before"):
        validate_range("10:00", "10:00")
    with pytest.raises(InvalidFormatError):
        validate_range("11:00", "09:00")


def test_minutes_to_hhmm_pads_values():
    assert minutes_to_hhmm(65) == "01:05"
    assert minutes_to_hhmm(to_minutes("17:45")) == "17:45"
