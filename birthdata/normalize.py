"""Normalization of SCB key/values rows into birth records.

Each SCB row has a composite key (region, sex, year) and a list of
measurement values where the first value is the birth count. Rows with a
missing or non-numeric count are skipped and logged; they never abort the
batch.
"""

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from birthdata.regions import UNKNOWN_REGION

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BirthRecord:
    """Birth count for one municipality, sex and year.

    The natural key is (region_code, gender, year).
    """

    region_code: str
    region_name: str
    gender: str
    year: int
    value: int

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.region_code, self.gender, self.year)

    def to_dict(self) -> dict[str, Any]:
        return {
            "region_code": self.region_code,
            "region_name": self.region_name,
            "gender": self.gender,
            "year": self.year,
            "value": self.value,
        }


@dataclass
class NormalizeResult:
    """Records produced from a raw response plus the number of skipped rows."""

    records: list[BirthRecord] = field(default_factory=list)
    skipped: int = 0


def parse_year(raw: Any) -> int | None:
    """Convert a year from SCB or a query parameter to the canonical int form.

    Returns:
        Year as int, or None if it is not an integer year
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def parse_count(raw: Any) -> int | None:
    """Parse a birth count, accepting "123", "123.0" and numbers.

    Returns:
        Non-negative integer count, or None for missing, non-numeric
        (e.g. SCB's ".." placeholder), negative or fractional values
    """
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number) or number < 0 or not number.is_integer():
        return None
    return int(number)


class RecordNormalizer:
    """Turns raw SCB response rows into BirthRecords.

    Args:
        region_names: Preloaded region code → name mapping
    """

    def __init__(self, region_names: Mapping[str, str]) -> None:
        self.region_names = region_names

    def normalize(self, raw: Mapping[str, Any]) -> NormalizeResult:
        """Normalize a decoded SCB response body.

        Args:
            raw: Response with a "data" list of {"key": [...], "values": [...]}

        Returns:
            NormalizeResult with the valid records and the skipped count
        """
        return self.normalize_rows(raw.get("data", []))

    def normalize_rows(self, rows: Iterable[Any]) -> NormalizeResult:
        result = NormalizeResult()

        for row in rows:
            record = self._normalize_row(row)
            if record is None:
                result.skipped += 1
            else:
                result.records.append(record)

        if result.skipped:
            logger.warning(f"Skipped {result.skipped} malformed rows")
        logger.info(f"Normalized {len(result.records)} records")

        return result

    def _normalize_row(self, row: Any) -> BirthRecord | None:
        if not isinstance(row, Mapping):
            logger.warning(f"Skipping row that is not an object: {row!r}")
            return None

        key = row.get("key")
        if (
            not isinstance(key, list | tuple)
            or len(key) != 3
            or any(part is None or str(part).strip() == "" for part in key)
        ):
            logger.warning(f"Skipping row with malformed key: {key!r}")
            return None

        region_code, gender, raw_year = (str(part).strip() for part in key)

        values = row.get("values") or []
        if not values or values[0] in (None, ""):
            logger.warning(f"Skipping missing value for {region_code}, {gender}, {raw_year}")
            return None

        value = parse_count(values[0])
        if value is None:
            logger.warning(
                f"Skipping non-numeric value for {region_code}, {gender}, {raw_year}: "
                f"{values[0]!r}"
            )
            return None

        year = parse_year(raw_year)
        if year is None:
            logger.warning(f"Skipping invalid year for {region_code}, {gender}: {raw_year!r}")
            return None

        return BirthRecord(
            region_code=region_code,
            region_name=self.region_names.get(region_code, UNKNOWN_REGION),
            gender=gender,
            year=year,
            value=value,
        )
