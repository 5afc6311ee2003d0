"""Municipality reference data loaded from TOML.

Provides the region code → name lookup used when normalizing SCB rows, and
the list of region codes sent in the births query. Single source of truth is
data/regions.toml.

Usage:
    from birthdata.regions import get_region_names, get_region_codes

    names = get_region_names()   # {"0114": "Upplands Väsby", ...}
    codes = get_region_codes()   # ["0114", "0115", ...]
"""

import tomllib
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType

UNKNOWN_REGION = "Unknown"


def _find_toml_path() -> Path:
    """Find the regions.toml file.

    Searches relative to this module, then relative to CWD.
    """
    # Relative to this module (for installed package)
    module_path = Path(__file__).parent.parent / "data" / "regions.toml"
    if module_path.exists():
        return module_path

    # Relative to CWD (for development)
    cwd_path = Path("data/regions.toml")
    if cwd_path.exists():
        return cwd_path

    raise FileNotFoundError("regions.toml not found. Expected at data/regions.toml")


def load_region_names(path: Path | str) -> Mapping[str, str]:
    """Load a region code → name table from a TOML file.

    Args:
        path: TOML file with a [regions] table of "code" = "name" pairs

    Returns:
        Read-only mapping of region code to region name
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)
    regions: dict[str, str] = {
        str(code): str(name) for code, name in data.get("regions", {}).items()
    }
    return MappingProxyType(regions)


@lru_cache(maxsize=1)
def get_region_names() -> Mapping[str, str]:
    """Get the bundled region code → name table (cached)."""
    return load_region_names(_find_toml_path())


def get_region_codes() -> list[str]:
    """Get all bundled region codes in ascending order."""
    return sorted(get_region_names())


def get_region_name(region_code: str) -> str:
    """Get the name for a region code.

    Returns:
        Region name. Returns "Unknown" for codes not in the table.
    """
    return get_region_names().get(region_code, UNKNOWN_REGION)
