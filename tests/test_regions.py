"""Tests for the municipality reference table."""

from pathlib import Path

import pytest

from birthdata.regions import (
    get_region_codes,
    get_region_name,
    get_region_names,
    load_region_names,
)


def test_region_table_has_290_municipalities() -> None:
    """Sweden has 290 municipalities."""
    assert len(get_region_names()) == 290


def test_region_codes_are_four_digits() -> None:
    codes = get_region_codes()
    assert all(len(code) == 4 and code.isdigit() for code in codes)
    assert codes == sorted(codes)


@pytest.mark.parametrize(
    ("code", "name"),
    [
        ("0114", "Upplands Väsby"),
        ("0180", "Stockholm"),
        ("1280", "Malmö"),
        ("1480", "Göteborg"),
        ("2584", "Kiruna"),
    ],
)
def test_known_names(code: str, name: str) -> None:
    assert get_region_name(code) == name


def test_unknown_code() -> None:
    assert get_region_name("9999") == "Unknown"


def test_region_table_is_read_only() -> None:
    names = get_region_names()
    with pytest.raises(TypeError):
        names["0114"] = "Elsewhere"  # type: ignore[index]


def test_load_region_names_from_file(tmp_path: Path) -> None:
    path = tmp_path / "regions.toml"
    path.write_text('[regions]\n"0001" = "Testby"\n', encoding="utf-8")
    assert dict(load_region_names(path)) == {"0001": "Testby"}
