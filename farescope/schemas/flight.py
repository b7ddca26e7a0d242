from typing import List, Optional

from pydantic import BaseModel, Field


class FlightRow(BaseModel):
    """One offer as it appears in a query's result table."""
    departure_date: str
    departure_time: Optional[str] = None
    arrival_date: Optional[str] = None
    arrival_time: Optional[str] = None
    origin: Optional[str] = None
    destination: Optional[str] = None
    airlines: Optional[str] = None
    travel_time: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    num_stops: Optional[int] = Field(default=None, ge=0)
    layover: Optional[str] = None
    access_timestamp: str
    co2_emission_kg: Optional[int] = None
    emission_diff_pct: Optional[int] = None


RESULT_COLUMNS: List[str] = list(FlightRow.model_fields)
