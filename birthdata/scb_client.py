"""SCB (Statistics Sweden) births query via the PX-Web API.

Queries the FoddaK table (live births by municipality, sex and year). The
response is a JSON document whose "data" list holds one row per dimension
combination:

    {"key": ["0114", "1", "2020"], "values": ["123"]}

Key order follows the query selections: Region, Kon (sex), Tid (year).

Key functions:
- build_query(): PX-Web query document for the configured dimensions
- fetch_birth_data(): POST the query once and return the decoded body
"""

import json
import logging
import urllib.error
import urllib.request
from collections.abc import Sequence
from typing import Any

from birthdata.config import ScbConfig
from birthdata.errors import FetchFailed

logger = logging.getLogger(__name__)

# PX-Web value set for municipalities (2007 classification)
REGION_FILTER = "vs:RegionKommun07"

# Upstream error bodies are truncated to this many characters in messages
MAX_ERROR_BODY = 500


def build_query(
    region_codes: Sequence[str],
    genders: Sequence[str],
    years: Sequence[int],
) -> dict[str, Any]:
    """Build the PX-Web query document for the births table.

    Args:
        region_codes: Municipality codes to select (4-digit strings)
        genders: SCB sex codes ("1" = men, "2" = women)
        years: Calendar years to select

    Returns:
        Query dict ready to be JSON-encoded and POSTed
    """
    return {
        "query": [
            {
                "code": "Region",
                "selection": {"filter": REGION_FILTER, "values": list(region_codes)},
            },
            {
                "code": "Kon",
                "selection": {"filter": "item", "values": list(genders)},
            },
            {
                "code": "Tid",
                "selection": {"filter": "item", "values": [str(y) for y in years]},
            },
        ],
        "response": {"format": "json"},
    }


def fetch_birth_data(config: ScbConfig, region_codes: Sequence[str]) -> dict[str, Any]:
    """Fetch births by municipality, sex and year from SCB.

    Makes a single POST request; there is no retry.

    Args:
        config: SCB section of the configuration (URL, timeout, dimensions)
        region_codes: Municipality codes to include in the query

    Returns:
        Decoded response body with a "data" list of key/values rows

    Raises:
        FetchFailed: On transport errors, non-success status, or a body that
            is not JSON with a "data" list
    """
    query = build_query(region_codes, config.genders, config.years)

    logger.info(
        f"Querying SCB births for {len(region_codes)} regions, "
        f"years {min(config.years)}-{max(config.years)}"
    )

    req = urllib.request.Request(
        config.api_url,
        data=json.dumps(query).encode("utf-8"),
        headers={"Content-Type": "application/json", "Accept": "application/json"},
        method="POST",
    )

    try:
        with urllib.request.urlopen(req, timeout=config.timeout_seconds) as response:
            payload = response.read()
    except urllib.error.HTTPError as e:
        body = e.read().decode("utf-8", errors="replace")[:MAX_ERROR_BODY]
        logger.error(f"SCB API returned HTTP {e.code}: {body}")
        raise FetchFailed(f"SCB API returned HTTP {e.code}: {body or e.reason}") from e
    except OSError as e:
        # URLError, timeouts and connection resets
        reason = getattr(e, "reason", e)
        logger.error(f"SCB API request failed: {reason}")
        raise FetchFailed(f"SCB API request failed: {reason}") from e

    # json.loads on bytes also accepts the UTF-8 BOM SCB sends on some endpoints
    try:
        data: Any = json.loads(payload)
    except ValueError as e:
        raise FetchFailed(f"SCB API returned invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        raise FetchFailed("SCB API response has no 'data' list")

    logger.info(f"Received {len(data['data'])} rows from SCB")

    return data
