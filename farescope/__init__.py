"""Multi-leg Google Flights price searches driven through a headless browser."""

from farescope.errors import (
    DateOrderingViolation,
    FarescopeError,
    InsufficientContentTimeout,
    InvalidArgumentFormat,
    InvalidQueryShape,
    NavigationFailure,
    NoFlightDataFound,
    SessionInitFailure,
)
from farescope.scrapers.google_flights import (
    GoogleFlightsScraper,
    LegResult,
    fetch_flights,
    run_fetch,
)
from farescope.services.results import (
    FlightResults,
    filter_placeholder_rows,
    find_best_dates,
    summarize_prices,
)
from farescope.services.trip_query import (
    ChainTripRequest,
    Leg,
    OneWayRequest,
    PerfectChainRequest,
    RoundTripRequest,
    TripKind,
    TripQuery,
    build_query,
    define_query,
    define_query_range,
)

__all__ = [
    "ChainTripRequest",
    "DateOrderingViolation",
    "FarescopeError",
    "FlightResults",
    "GoogleFlightsScraper",
    "InsufficientContentTimeout",
    "InvalidArgumentFormat",
    "InvalidQueryShape",
    "Leg",
    "LegResult",
    "NavigationFailure",
    "NoFlightDataFound",
    "OneWayRequest",
    "PerfectChainRequest",
    "RoundTripRequest",
    "SessionInitFailure",
    "TripKind",
    "TripQuery",
    "build_query",
    "define_query",
    "define_query_range",
    "fetch_flights",
    "filter_placeholder_rows",
    "find_best_dates",
    "run_fetch",
    "summarize_prices",
]
