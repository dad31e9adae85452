"""Tests for result assembly and file encodings."""

import io

import polars as pl
from polars.testing import assert_frame_equal

from skyhistory.trino.components.codec import (
    FLIGHTLIST_SCHEMA,
    STATE_VECTOR_SCHEMA,
    CsvCodec,
    FlightData,
    ParquetCodec,
    codec_for,
    write_output,
)
from tests.trino.fakes import STATE_VECTOR_COLUMNS, state_row

COLUMNS = [c["name"] for c in STATE_VECTOR_COLUMNS]


def sample() -> FlightData:
    return FlightData.from_rows(COLUMNS, [
        state_row(1735725600),
        state_row(1735725610, squawk=None),
    ])


def test_from_rows_applies_schema():
    data = sample()

    assert data.columns == list(STATE_VECTOR_SCHEMA)
    assert data.df.schema["time"] == pl.Int64
    assert data.df.schema["onground"] == pl.Boolean
    assert data.df["squawk"].to_list() == ["1000", None]


def test_from_rows_reorders_and_fills_columns():
    """Test that columns are matched by name, not position."""
    data = FlightData.from_rows(["callsign", "icao24", "extra"], [["KLM1234", "485a32", 1]], FLIGHTLIST_SCHEMA)

    assert data.columns == list(FLIGHTLIST_SCHEMA)
    assert data.df["icao24"].to_list() == ["485a32"]
    assert data.df["firstseen"].to_list() == [None]
    assert "extra" not in data.columns


def test_parquet_round_trip():
    data = sample()
    buffer = io.BytesIO()

    ParquetCodec.encode(data, buffer)
    buffer.seek(0)
    decoded = ParquetCodec.decode(buffer)

    assert_frame_equal(decoded.df, data.df)
    assert decoded == data


def test_parquet_round_trip_empty():
    """Test that a zero-row result keeps its schema."""
    data = FlightData.empty()
    buffer = io.BytesIO()

    ParquetCodec.encode(data, buffer)
    buffer.seek(0)
    decoded = ParquetCodec.decode(buffer)

    assert decoded.is_empty()
    assert decoded.df.schema == data.df.schema


def test_csv_round_trip_with_schema():
    data = sample()
    buffer = io.BytesIO()

    CsvCodec.encode(data, buffer)
    buffer.seek(0)
    decoded = CsvCodec.decode(buffer, schema=STATE_VECTOR_SCHEMA)

    assert_frame_equal(decoded.df, data.df)


def test_codec_for_extension():
    assert codec_for("out.parquet") is ParquetCodec
    assert codec_for("out.PARQUET") is ParquetCodec
    assert codec_for("out.csv") is CsvCodec
    assert codec_for("out.txt") is CsvCodec


def test_write_output_creates_directories(tmp_path):
    path = write_output(sample(), tmp_path / "nested" / "flights.parquet")

    assert path.exists()
    assert FlightData.from_parquet(path) == sample()
