"""Pydantic schemas for API request/response models.

Defines the contract for the birth data endpoints, enabling automatic
OpenAPI documentation and response validation.
"""

from pydantic import BaseModel, Field


class BirthRecordResponse(BaseModel):
    """Single birth record."""

    region_code: str = Field(description="Municipality code (kommunkod), e.g. '0114'")
    region_name: str = Field(description="Municipality name, 'Unknown' if not in the region table")
    gender: str = Field(description="SCB sex code: '1' = boys, '2' = girls")
    year: int = Field(description="Calendar year")
    value: int = Field(description="Number of live births")


class RegionYearTotal(BaseModel):
    """Births summed over both sexes for one municipality and year."""

    region_code: str = Field(description="Municipality code")
    region_name: str = Field(description="Municipality name")
    year: int = Field(description="Calendar year")
    total_births: int = Field(description="Sum of births for the municipality and year")


class TrendPoint(BaseModel):
    """Births summed over all municipalities for one year and sex."""

    year: int = Field(description="Calendar year")
    gender: str = Field(description="SCB sex code")
    total_births: int = Field(description="Sum of births for the year and sex")


class TopRegion(BaseModel):
    """Municipality ranked by births in a year."""

    region_code: str = Field(description="Municipality code")
    region_name: str = Field(description="Municipality name")
    total_births: int = Field(description="Sum of births in the requested year")


class BirthStatistics(BaseModel):
    """Summary statistics across all records."""

    total_births: int = Field(description="Sum of births across all records")
    average_births: float | None = Field(description="Mean births per record")
    max_births: int | None = Field(description="Largest single record value")
    min_births: int | None = Field(description="Smallest single record value")
    record_count: int = Field(description="Number of records")


class RefreshResponse(BaseModel):
    """Result of a refresh from SCB."""

    message: str = Field(description="Human-readable summary")
    applied: int = Field(description="Records upserted")
    skipped: int = Field(description="Malformed source rows skipped")


class ErrorResponse(BaseModel):
    """Error body returned for failed requests."""

    message: str = Field(description="What the server was doing when it failed")
    error: str = Field(description="Underlying error message")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status")
    records_count: int = Field(description="Total birth records in database")
