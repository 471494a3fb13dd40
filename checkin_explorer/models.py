from datetime import datetime, timezone
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# JSON keys are camelCase (userId, startDate, ...); Python code uses field names
CAMEL_CASE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Domain


class CheckIn(BaseModel):
    model_config = ConfigDict(frozen=True, **CAMEL_CASE)

    user_id: int
    location_id: int
    latitude: float = Field(alias="lat")
    longitude: float = Field(alias="lng")
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class TrajectoryPoint(CheckIn):
    companions: List[CheckIn] = Field(default_factory=list, alias="similarCheckIns")


class PopularityRecord(BaseModel):
    model_config = CAMEL_CASE

    location_id: int
    latitude: float = Field(alias="lat")
    longitude: float = Field(alias="lng")
    check_in_count: int
    unique_user_count: int = Field(alias="uniqueUsers")


class GeoBounds(BaseModel):
    north: float
    south: float
    east: float
    west: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def contains(self, latitude: float, longitude: float) -> bool:
        if not self.south <= latitude <= self.north:
            return False
        if self.crosses_antimeridian:
            return longitude >= self.west or longitude <= self.east
        return self.west <= longitude <= self.east


class SortMode(str, Enum):
    TIME_DESC = "time-desc"
    TIME_ASC = "time-asc"
    DISTANCE_ASC = "distance-asc"
    DISTANCE_DESC = "distance-desc"

    @classmethod
    def parse(cls, value) -> "SortMode":
        """Accepts the canonical names plus the legacy 'time' / 'distance'."""
        if isinstance(value, cls):
            return value
        aliases = {"time": cls.TIME_DESC, "distance": cls.DISTANCE_ASC}
        if value in aliases:
            return aliases[value]
        return cls(value)


class SearchCriteria(BaseModel):
    user_id: Optional[int] = None
    location_id: Optional[int] = None
    sort_mode: SortMode = SortMode.TIME_DESC
    limit: int = 100

    @field_validator("sort_mode", mode="before")
    @classmethod
    def _legacy_sort_names(cls, value):
        return SortMode.TIME_DESC if value is None else SortMode.parse(value)


# API


class TrajectorySearchRequest(BaseModel):
    model_config = CAMEL_CASE

    user_id: int = Field(gt=0)
    start_date: datetime
    end_date: datetime
    radius: float = Field(gt=0, le=100, description="Companion radius in km")


class TrajectorySearchResponse(BaseModel):
    model_config = CAMEL_CASE

    user_id: int
    start_date: datetime
    end_date: datetime
    check_ins: List[TrajectoryPoint]


class CustomSearchRequest(BaseModel):
    model_config = CAMEL_CASE

    user_id: Optional[int] = Field(default=None, gt=0)
    location_id: Optional[int] = Field(default=None, gt=0)
    sort_by: SortMode = SortMode.TIME_DESC
    limit: int = Field(default=100, ge=10, le=1000)

    @field_validator("sort_by", mode="before")
    @classmethod
    def _legacy_sort_names(cls, value):
        if value is None:
            return SortMode.TIME_DESC
        return SortMode.parse(value)


class CustomSearchResponse(BaseModel):
    model_config = CAMEL_CASE

    user_id: Optional[int] = None
    location_id: Optional[int] = None
    sort_by: SortMode
    check_ins: List[CheckIn]


class PopularPOIRequest(BaseModel):
    model_config = CAMEL_CASE

    start_date: datetime
    end_date: datetime
    bounds: GeoBounds
    limit: int = Field(default=20, ge=1, le=100)


class PopularPOIResponse(BaseModel):
    model_config = CAMEL_CASE

    start_date: datetime
    end_date: datetime
    bounds: GeoBounds
    pois: List[PopularityRecord]


class UserIdsResponse(BaseModel):
    model_config = CAMEL_CASE

    user_ids: List[int]


class LocationIdsResponse(BaseModel):
    model_config = CAMEL_CASE

    location_ids: List[int]
