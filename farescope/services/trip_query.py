"""
Trip query construction.

A trip query is an ordered tuple of legs (origin, destination, date) plus one
Google Flights URL per leg. Queries are built from explicit request objects:

- OneWayRequest:       origin, destination, date
- RoundTripRequest:    origin, destination, leave date, return date
- ChainTripRequest:    (origin, destination, date) per leg
- PerfectChainRequest: (airport, date) per leg, then the final destination

define_query() keeps the flat token form (e.g. "JFK", "IST", "2025-12-20")
and only decides which request the tokens describe. All validation happens in
build_query(), so both entry points share the same rules. Nothing here touches
the network.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

import pandas as pd

from farescope.config import get_settings
from farescope.errors import (
    DateOrderingViolation,
    InvalidArgumentFormat,
    InvalidQueryShape,
)
from farescope.services.results import empty_results_frame
from farescope.utils.url_builder import build_google_flights_url

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"

DateLike = Union[date, str]


class TripKind(str, Enum):
    ONE_WAY = "one-way"
    ROUND_TRIP = "round-trip"
    CHAIN_TRIP = "chain-trip"
    PERFECT_CHAIN = "perfect-chain"


@dataclass(frozen=True)
class Leg:
    """One origin -> destination search on one date."""
    origin: str
    destination: str
    date: date

    def __str__(self) -> str:
        return f"{self.date.isoformat()}: {self.origin} --> {self.destination}"


@dataclass(frozen=True)
class OneWayRequest:
    origin: str
    destination: str
    date: DateLike


@dataclass(frozen=True)
class RoundTripRequest:
    origin: str
    destination: str
    leave_date: DateLike
    return_date: DateLike


@dataclass(frozen=True)
class ChainTripRequest:
    legs: Tuple[Tuple[str, str, DateLike], ...]


@dataclass(frozen=True)
class PerfectChainRequest:
    # (departure airport, date) per leg; each leg lands at the next airport
    stops: Tuple[Tuple[str, DateLike], ...]
    final_destination: str


TripRequest = Union[OneWayRequest, RoundTripRequest, ChainTripRequest, PerfectChainRequest]


class TripQuery:
    """
    A validated trip: its legs, its kind and one fetch URL per leg.

    legs, kind and urls are fixed at construction. data holds the scraped
    result table; the scraper replaces it wholesale on every fetch.
    """

    def __init__(self, legs: Iterable[Leg], kind: TripKind, host: Optional[str] = None):
        self._legs = tuple(legs)
        self._kind = kind
        host = host or get_settings().flights_host
        self._urls = tuple(
            build_google_flights_url(leg.origin, leg.destination, leg.date, host=host)
            for leg in self._legs
        )
        self.data: pd.DataFrame = empty_results_frame()

    @property
    def legs(self) -> Tuple[Leg, ...]:
        return self._legs

    @property
    def kind(self) -> TripKind:
        return self._kind

    @property
    def urls(self) -> Tuple[str, ...]:
        return self._urls

    @property
    def origins(self) -> List[str]:
        return [leg.origin for leg in self._legs]

    @property
    def destinations(self) -> List[str]:
        return [leg.destination for leg in self._legs]

    @property
    def dates(self) -> List[date]:
        return [leg.date for leg in self._legs]

    def __len__(self) -> int:
        return len(self._legs)

    def __repr__(self) -> str:
        return f"TripQuery(kind={self._kind.value!r}, legs={list(self._legs)!r})"

    def __str__(self) -> str:
        if self.data.empty:
            header = "Flight Query( {Not Yet Fetched}"
        else:
            header = f"Flight Query( {{{len(self.data)}}} RESULTS FOR:"
        lines = [header] + [str(leg) for leg in self._legs]
        return "\n".join(lines) + "\n)"


# =============================================================================
# Token validation
# =============================================================================

def _where(position: Optional[int], label: str) -> str:
    if position is None:
        return label
    return f"Argument {position} ({label})"


def _check_code(value, position: Optional[int], label: str) -> str:
    if not isinstance(value, str) or len(value) != 3:
        raise InvalidArgumentFormat(
            f"{_where(position, label)} must be a 3-character airport or city code, got {value!r}",
            position=position,
        )
    return value.upper()


def _parse_date(value, position: Optional[int], label: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) != 10:
        raise InvalidArgumentFormat(
            f"{_where(position, label)} must be in YYYY-MM-DD format, got {value!r}",
            position=position,
        )
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise InvalidArgumentFormat(
            f"{_where(position, label)} {value!r} is not a valid date in YYYY-MM-DD format",
            position=position,
        ) from None


def _check_increasing(legs: List[Leg]) -> None:
    for previous, current in zip(legs, legs[1:]):
        if not previous.date < current.date:
            raise DateOrderingViolation(
                f"Dates must be in increasing order: {current.date.isoformat()} "
                f"does not come after {previous.date.isoformat()}"
            )


# =============================================================================
# Builders
# =============================================================================

def _one_way_legs(request: OneWayRequest) -> List[Leg]:
    origin = _check_code(request.origin, 1, "origin")
    destination = _check_code(request.destination, 2, "destination")
    leave = _parse_date(request.date, 3, "date")
    return [Leg(origin, destination, leave)]


def _round_trip_legs(request: RoundTripRequest) -> List[Leg]:
    origin = _check_code(request.origin, 1, "origin")
    destination = _check_code(request.destination, 2, "destination")
    leave = _parse_date(request.leave_date, 3, "date leave")
    back = _parse_date(request.return_date, 4, "date return")
    return [Leg(origin, destination, leave), Leg(destination, origin, back)]


def _chain_trip_legs(request: ChainTripRequest) -> List[Leg]:
    if not request.legs:
        raise InvalidQueryShape("A chain trip needs at least one leg")
    legs = []
    for i, item in enumerate(request.legs):
        if len(item) != 3:
            raise InvalidQueryShape(f"Chain leg {i + 1} must be (origin, destination, date)")
        position = 3 * i + 1
        origin, destination, leave = item
        legs.append(Leg(
            _check_code(origin, position, "origin"),
            _check_code(destination, position + 1, "destination"),
            _parse_date(leave, position + 2, "date"),
        ))
    return legs


def _perfect_chain_legs(request: PerfectChainRequest) -> List[Leg]:
    if len(request.stops) < 2:
        raise InvalidQueryShape("A perfect chain needs at least two (airport, date) stops")
    airports = []
    dates = []
    for i, item in enumerate(request.stops):
        if len(item) != 2:
            raise InvalidQueryShape(f"Perfect chain stop {i + 1} must be (airport, date)")
        position = 2 * i + 1
        airport, leave = item
        airports.append(_check_code(airport, position, "airport"))
        dates.append(_parse_date(leave, position + 1, "date"))
    final = _check_code(request.final_destination, 2 * len(request.stops) + 1, "final destination")
    destinations = airports[1:] + [final]
    return [Leg(o, d, dt) for o, d, dt in zip(airports, destinations, dates)]


def build_query(request: TripRequest, host: Optional[str] = None) -> TripQuery:
    """
    Validate a trip request and build its TripQuery.

    Raises:
        InvalidArgumentFormat: a code is not 3 characters or a date is malformed
        DateOrderingViolation: leg dates are not strictly increasing
        InvalidQueryShape: the request type is unknown or structurally empty
    """
    if isinstance(request, OneWayRequest):
        legs, kind = _one_way_legs(request), TripKind.ONE_WAY
    elif isinstance(request, RoundTripRequest):
        legs, kind = _round_trip_legs(request), TripKind.ROUND_TRIP
    elif isinstance(request, ChainTripRequest):
        legs, kind = _chain_trip_legs(request), TripKind.CHAIN_TRIP
    elif isinstance(request, PerfectChainRequest):
        legs, kind = _perfect_chain_legs(request), TripKind.PERFECT_CHAIN
    else:
        raise InvalidQueryShape(f"Unsupported trip request: {type(request).__name__}")

    _check_increasing(legs)

    return TripQuery(legs, kind, host=host)


def _looks_like_date(token) -> bool:
    return isinstance(token, date) or (isinstance(token, str) and len(token) == 10)


def _looks_like_code(token) -> bool:
    return isinstance(token, str) and len(token) == 3


def request_from_tokens(*tokens) -> TripRequest:
    """
    Work out which trip request a flat token list describes.

    - 3 tokens: one-way
    - 4 tokens: round-trip
    - multiple of 3, last token a date: chain-trip
    - odd count >= 5, last token a code: perfect-chain
    """
    n = len(tokens)

    if n == 3:
        return OneWayRequest(*tokens)

    if n == 4:
        return RoundTripRequest(*tokens)

    if n >= 3 and n % 3 == 0 and _looks_like_date(tokens[-1]):
        return ChainTripRequest(tuple(
            (tokens[i], tokens[i + 1], tokens[i + 2]) for i in range(0, n, 3)
        ))

    if n >= 5 and n % 2 == 1 and _looks_like_code(tokens[-1]):
        return PerfectChainRequest(
            stops=tuple((tokens[i], tokens[i + 1]) for i in range(0, n - 1, 2)),
            final_destination=tokens[-1],
        )

    raise InvalidQueryShape(
        f"Invalid arguments: {n} tokens do not describe a one-way, round-trip, "
        f"chain-trip or perfect-chain query"
    )


def define_query(*tokens, host: Optional[str] = None) -> TripQuery:
    """
    Build a TripQuery from flat location/date tokens.

    Examples:
        define_query("JFK", "BOS", "2025-12-20")                       # one-way
        define_query("JFK", "YUL", "2025-12-20", "2025-12-25")         # round-trip
        define_query("JFK", "YYZ", "2025-12-20", "RDU", "LGA", "2025-12-25")
        define_query("JFK", "2025-11-10", "AMS", "2025-11-17", "IST")  # perfect chain
    """
    return build_query(request_from_tokens(*tokens), host=host)


def define_query_range(
    origins: Union[str, Iterable[str]],
    destination: str,
    date_min: DateLike,
    date_max: DateLike,
    excluded_codes: Optional[Iterable[str]] = None,
    host: Optional[str] = None,
) -> Dict[str, TripQuery]:
    """
    Build one query per origin covering every day from date_min to date_max.

    Each origin becomes a chain of same-route legs (a one-way query when the
    range is a single day), which keeps dates strictly increasing within the
    query. Origins listed in excluded_codes (defaults to the configured set)
    are skipped.

    Returns:
        Dict of origin code -> TripQuery, in input order
    """
    if isinstance(origins, str):
        origins = [origins]
    origins = list(origins)
    if not origins:
        raise InvalidArgumentFormat("At least one origin must be specified")

    codes = [_check_code(o, None, "origin") for o in origins]
    destination = _check_code(destination, None, "destination")
    start = _parse_date(date_min, None, "date_min")
    end = _parse_date(date_max, None, "date_max")
    if start > end:
        raise DateOrderingViolation("date_min must be before or equal to date_max")

    if excluded_codes is None:
        excluded = get_settings().excluded_codes
    else:
        excluded = frozenset(code.upper() for code in excluded_codes)

    days = [start + timedelta(days=i) for i in range((end - start).days + 1)]

    queries: Dict[str, TripQuery] = {}
    for code in codes:
        if code in excluded:
            logger.warning(f"Skipping excluded origin {code}")
            continue
        if code in queries:
            continue
        if len(days) == 1:
            request = OneWayRequest(code, destination, days[0])
        else:
            request = ChainTripRequest(tuple((code, destination, day) for day in days))
        queries[code] = build_query(request, host=host)

    logger.info(
        f"Defined {len(queries)} range queries to {destination} "
        f"over {len(days)} days ({start.isoformat()} to {end.isoformat()})"
    )
    return queries
