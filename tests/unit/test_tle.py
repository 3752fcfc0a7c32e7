"""
Tests for TLE validation, parsing and GP JSON generation.
"""

from datetime import datetime

import pytest

from orbit_search.tle import (
    InvalidTLEError,
    TleRecord,
    compute_checksum,
    extract_catalog_number,
    parse_batch,
    parse_epoch,
    parse_gp_json,
    tle_from_gp_json,
    validate,
    validation_error,
)

ISS_LINE1 = "1 25544U 98067A   08264.51782528 -.00002182  00000-0 -11606-4 0  2927"
ISS_LINE2 = "2 25544  51.6416 247.4627 0006703 130.5360 325.0288 15.72125391563537"

ISS_GP_RECORD = {
    "OBJECT_NAME": "ISS (ZARYA)",
    "OBJECT_ID": "1998-067A",
    "EPOCH": "2008-09-20T12:25:40.104192",
    "MEAN_MOTION": 15.72125391,
    "ECCENTRICITY": 0.0006703,
    "INCLINATION": 51.6416,
    "RA_OF_ASC_NODE": 247.4627,
    "ARG_OF_PERICENTER": 130.5360,
    "MEAN_ANOMALY": 325.0288,
    "EPHEMERIS_TYPE": 0,
    "CLASSIFICATION_TYPE": "U",
    "NORAD_CAT_ID": 25544,
    "ELEMENT_SET_NO": 292,
    "REV_AT_EPOCH": 56353,
    "BSTAR": -0.000011606,
    "MEAN_MOTION_DOT": -0.00002182,
    "MEAN_MOTION_DDOT": 0,
}


def _with_last_digit(line: str, digit: str) -> str:
    return line[:-1] + digit


class TestChecksum:
    """Tests for compute_checksum."""

    def test_iss_lines(self) -> None:
        assert compute_checksum(ISS_LINE1) == 7
        assert compute_checksum(ISS_LINE2) == 7

    def test_minus_counts_one(self) -> None:
        assert compute_checksum("-") == 1
        assert compute_checksum("--") == 2

    def test_letters_and_spaces_count_zero(self) -> None:
        assert compute_checksum("ABC .+") == 0

    def test_only_first_68_columns(self) -> None:
        # The trailing checksum digit itself is not part of the sum
        assert compute_checksum(ISS_LINE1[:68]) == compute_checksum(ISS_LINE1)
        assert compute_checksum(ISS_LINE1[:68] + "9") == 7


class TestValidate:
    """Tests for validate and validation_error."""

    def test_valid_pair(self) -> None:
        assert validate(ISS_LINE1, ISS_LINE2) is True
        assert validation_error(ISS_LINE1, ISS_LINE2) is None

    def test_bad_checksum_rejected(self) -> None:
        assert validate(_with_last_digit(ISS_LINE1, "8"), ISS_LINE2) is False
        assert validate(ISS_LINE1, _with_last_digit(ISS_LINE2, "0")) is False

    def test_checksum_can_be_skipped(self) -> None:
        assert validate(_with_last_digit(ISS_LINE1, "8"), ISS_LINE2, verify_checksum=False) is True

    def test_short_line_fails_checksum(self) -> None:
        assert validate(ISS_LINE1[:60], ISS_LINE2) is False

    def test_catalog_mismatch(self) -> None:
        line2 = ISS_LINE2.replace("25544", "25545", 1)
        assert validate(ISS_LINE1, line2, verify_checksum=False) is False
        assert "mismatch" in validation_error(ISS_LINE1, line2, verify_checksum=False)

    def test_swapped_lines(self) -> None:
        assert validate(ISS_LINE2, ISS_LINE1) is False

    def test_empty_lines(self) -> None:
        assert validate("", ISS_LINE2) is False
        assert validate(ISS_LINE1, "") is False

    def test_never_raises_on_garbage(self) -> None:
        assert validate("1 garbage", "2 more garbage") is False

    def test_extract_catalog_number(self) -> None:
        assert extract_catalog_number(ISS_LINE1) == "25544"
        assert extract_catalog_number("1 ABCDE") is None


class TestParseEpoch:
    """Tests for the epoch field."""

    def test_iss_epoch(self) -> None:
        epoch = parse_epoch(ISS_LINE1)
        expected = datetime(2008, 9, 20, 12, 25, 40, 104192)
        assert abs((epoch - expected).total_seconds()) < 1e-3

    def test_two_digit_year_pivot(self) -> None:
        prefix = "1 25544U 98067A   "
        assert parse_epoch(prefix + "98001.00000000").year == 1998
        assert parse_epoch(prefix + "56001.50000000") == datetime(2056, 1, 1, 12, 0, 0)
        assert parse_epoch(prefix + "57001.00000000").year == 1957

    def test_invalid_epoch(self) -> None:
        with pytest.raises(InvalidTLEError):
            parse_epoch("1 25544U 98067A   XXYYY.ZZZZZZZZ")

    def test_day_of_year_out_of_range(self) -> None:
        with pytest.raises(InvalidTLEError):
            parse_epoch("1 25544U 98067A   08400.00000000")


class TestTleRecord:
    """Tests for the TleRecord value object."""

    def test_from_lines(self) -> None:
        record = TleRecord.from_lines(ISS_LINE1, ISS_LINE2, name="ISS (ZARYA)")
        assert record.norad_id == "25544"
        assert record.name == "ISS (ZARYA)"
        assert record.lines == [ISS_LINE1, ISS_LINE2]
        assert record.epoch.year == 2008

    def test_strips_whitespace(self) -> None:
        record = TleRecord.from_lines(f"  {ISS_LINE1}\n", f"{ISS_LINE2}  ", name=" ISS ")
        assert record.line1 == ISS_LINE1
        assert record.name == "ISS"

    def test_invalid_raises_value_error_subclass(self) -> None:
        with pytest.raises(InvalidTLEError) as exc_info:
            TleRecord.from_lines(ISS_LINE2, ISS_LINE1)
        assert isinstance(exc_info.value, ValueError)
        assert "invalid line numbers" in str(exc_info.value)

    def test_is_immutable(self) -> None:
        record = TleRecord.from_lines(ISS_LINE1, ISS_LINE2)
        with pytest.raises(AttributeError):
            record.line1 = "changed"  # type: ignore[misc]

    def test_dict_round_trip(self) -> None:
        record = TleRecord.from_lines(ISS_LINE1, ISS_LINE2, name="ISS")
        assert TleRecord.from_dict(record.to_dict()) == record

    def test_missing_catalog_number_raises(self) -> None:
        record = TleRecord(line1="1 XXXXX", line2="2 XXXXX", epoch=datetime(2024, 1, 1))
        with pytest.raises(InvalidTLEError):
            record.norad_id

    def test_str(self) -> None:
        record = TleRecord.from_lines(ISS_LINE1, ISS_LINE2)
        assert "25544" in str(record)


class TestParseBatch:
    """Tests for newline-delimited TLE text."""

    def test_named_triplets(self) -> None:
        text = f"ISS (ZARYA)\n{ISS_LINE1}\n{ISS_LINE2}\n"
        records = parse_batch(text)
        assert len(records) == 1
        assert records[0].name == "ISS (ZARYA)"

    def test_bare_pairs(self) -> None:
        records = parse_batch(f"{ISS_LINE1}\n{ISS_LINE2}")
        assert len(records) == 1
        assert records[0].name is None

    def test_malformed_group_skipped(self) -> None:
        bad_line1 = _with_last_digit(ISS_LINE1, "0")
        text = "\n".join([
            "BROKEN", bad_line1, ISS_LINE2,
            "ISS (ZARYA)", ISS_LINE1, ISS_LINE2,
        ])
        records = parse_batch(text)
        assert [r.name for r in records] == ["ISS (ZARYA)"]

    def test_stray_lines_skipped(self) -> None:
        text = "\n".join(["just a comment", "ISS", ISS_LINE1, ISS_LINE2, "trailing"])
        records = parse_batch(text)
        assert len(records) == 1
        assert records[0].name == "ISS"

    def test_windows_line_endings_and_blank_lines(self) -> None:
        text = f"ISS\r\n\r\n{ISS_LINE1}\r\n{ISS_LINE2}\r\n"
        assert len(parse_batch(text)) == 1

    def test_empty_text(self) -> None:
        assert parse_batch("") == []

    def test_checksum_skip_option(self) -> None:
        text = f"{_with_last_digit(ISS_LINE1, '0')}\n{ISS_LINE2}"
        assert parse_batch(text) == []
        assert len(parse_batch(text, verify_checksum=False)) == 1


class TestGpJson:
    """Tests for TLE generation from GP JSON records."""

    def test_regenerates_iss_lines(self) -> None:
        record = tle_from_gp_json(ISS_GP_RECORD)
        assert record.line1 == ISS_LINE1
        assert record.line2 == ISS_LINE2
        assert record.name == "ISS (ZARYA)"

    def test_generated_lines_pass_checksum(self) -> None:
        data = dict(ISS_GP_RECORD, MEAN_ANOMALY=10.5, ELEMENT_SET_NO=999)
        record = tle_from_gp_json(data)
        assert validate(record.line1, record.line2)
        assert len(record.line1) == 69
        assert len(record.line2) == 69

    def test_zulu_epoch(self) -> None:
        data = dict(ISS_GP_RECORD, EPOCH="2008-09-20T12:25:40.104192Z")
        assert tle_from_gp_json(data).line1 == ISS_LINE1

    def test_missing_field(self) -> None:
        data = dict(ISS_GP_RECORD)
        del data["INCLINATION"]
        with pytest.raises(InvalidTLEError):
            tle_from_gp_json(data)

    def test_parse_gp_json_skips_malformed(self) -> None:
        records = parse_gp_json([ISS_GP_RECORD, {"NORAD_CAT_ID": "x"}])
        assert len(records) == 1
        assert records[0].norad_id == "25544"
