"""
Tabular query results and their on-disk encodings.

FlightData wraps a Polars DataFrame with one of two fixed schemas:
state vectors (history queries) or flight lists. Codecs turn a FlightData
into bytes and back; Parquet is used for the result cache because it keeps
the schema (including all-null columns and zero-row frames), CSV is offered
for user-facing export.
"""

from pathlib import Path
from typing import Any, BinaryIO

import polars as pl

from skyhistory.utils import logger
from skyhistory.utils.exceptions import CacheError, CacheErrorKind

# Schema for state vectors (minio.osky.state_vectors_data4)
STATE_VECTOR_SCHEMA = {
    "time": pl.Int64,
    "icao24": pl.Utf8,
    "lat": pl.Float64,
    "lon": pl.Float64,
    "velocity": pl.Float64,
    "heading": pl.Float64,
    "vertrate": pl.Float64,
    "callsign": pl.Utf8,
    "onground": pl.Boolean,
    "squawk": pl.Utf8,
    "baroaltitude": pl.Float64,
    "geoaltitude": pl.Float64,
    "hour": pl.Int64,
}

# Schema for flight lists (minio.osky.flights_data4)
FLIGHTLIST_SCHEMA = {
    "icao24": pl.Utf8,
    "callsign": pl.Utf8,
    "firstseen": pl.Int64,
    "lastseen": pl.Int64,
    "estdepartureairport": pl.Utf8,
    "estarrivalairport": pl.Utf8,
    "day": pl.Int64,
}

FLIGHT_COLUMNS = list(STATE_VECTOR_SCHEMA)
FLIGHTLIST_COLUMNS = list(FLIGHTLIST_SCHEMA)

SCHEMAS = {
    "state_vectors": STATE_VECTOR_SCHEMA,
    "flightlist": FLIGHTLIST_SCHEMA,
}


class FlightData:
    """
    Materialized query result.

    The caller owns the instance once it is returned; the underlying
    DataFrame is available as ``.df``.
    """

    def __init__(self, df: pl.DataFrame):
        self.df = df

    @classmethod
    def empty(cls, schema: dict[str, Any] = STATE_VECTOR_SCHEMA) -> "FlightData":
        """Create a zero-row result with the given schema."""
        return cls(pl.DataFrame(schema=schema))

    @classmethod
    def from_rows(
        cls,
        columns: list[str],
        rows: list[list[Any]],
        schema: dict[str, Any] = STATE_VECTOR_SCHEMA,
    ) -> "FlightData":
        """
        Build a result from raw engine rows.

        Args:
            columns: Column names in the order the engine returned them
            rows: Row values, one list per row
            schema: Target schema; missing columns are filled with nulls
                and columns outside the schema are dropped
        """
        index = {name: i for i, name in enumerate(columns)}
        series = []
        for name, dtype in schema.items():
            i = index.get(name)
            if i is None:
                values = [None] * len(rows)
            else:
                values = [row[i] if i < len(row) else None for row in rows]
            series.append(pl.Series(name, values, dtype=dtype, strict=False))

        df = pl.DataFrame(series)
        logger.debug(f"Created DataFrame with {len(df)} rows")
        return cls(df)

    def __len__(self) -> int:
        return self.df.height

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FlightData):
            return NotImplemented
        return self.df.equals(other.df, null_equal=True)

    def __repr__(self) -> str:
        return f"FlightData(rows={len(self)}, columns={self.columns})"

    def is_empty(self) -> bool:
        return self.df.height == 0

    @property
    def columns(self) -> list[str]:
        return self.df.columns

    def head(self, n: int = 10) -> pl.DataFrame:
        return self.df.head(n)

    @classmethod
    def from_parquet(cls, path: str | Path) -> "FlightData":
        with open(path, "rb") as f:
            return ParquetCodec.decode(f)


class ParquetCodec:
    """Columnar, schema-preserving encoding used by the result cache."""

    extension = ".parquet"

    @staticmethod
    def encode(data: FlightData, writer: BinaryIO) -> None:
        data.df.write_parquet(writer, compression="snappy")

    @staticmethod
    def decode(reader: BinaryIO) -> FlightData:
        try:
            return FlightData(pl.read_parquet(reader))
        except Exception as e:
            raise CacheError(CacheErrorKind.CORRUPT, f"Failed to decode Parquet data: {e}")


class CsvCodec:
    """Row-oriented delimited text for export."""

    extension = ".csv"

    @staticmethod
    def encode(data: FlightData, writer: BinaryIO) -> None:
        data.df.write_csv(writer)

    @staticmethod
    def decode(reader: BinaryIO, schema: dict[str, Any] | None = None) -> FlightData:
        """
        Read CSV back; pass the schema to restore column types, since CSV
        does not carry them.
        """
        df = pl.read_csv(reader, schema_overrides=schema)
        return FlightData(df)


def codec_for(path: str | Path) -> type[ParquetCodec] | type[CsvCodec]:
    """Pick a codec from the file extension (Parquet or CSV)."""
    if Path(path).suffix.lower() == ParquetCodec.extension:
        return ParquetCodec
    return CsvCodec


def write_output(data: FlightData, path: str | Path) -> Path:
    """
    Write a result to a file, choosing the format from the extension.

    Returns:
        The path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    codec = codec_for(path)
    with open(path, "wb") as f:
        codec.encode(data, f)
    logger.info(f"Saved {len(data)} rows to {path}")
    return path


__all__ = [
    "FlightData",
    "ParquetCodec",
    "CsvCodec",
    "codec_for",
    "write_output",
    "STATE_VECTOR_SCHEMA",
    "FLIGHTLIST_SCHEMA",
    "FLIGHT_COLUMNS",
    "FLIGHTLIST_COLUMNS",
    "SCHEMAS",
]
