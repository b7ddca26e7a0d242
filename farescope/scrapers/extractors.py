"""
Text extraction for Google Flights result pages.

The rendered page is read as plain text (document.body.innerText), split into
lines and cleaned. Offers are located through their clock-time lines; every
line inside an offer window is then classified into one field of a
FlightRecord.

Principles:
1. Time markers delimit offers
2. Each field is filled once - the first matching token wins
3. Classification is a pure fold: token + record -> new record
4. A bad token never aborts an offer, a bad offer never aborts the page
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from functools import reduce
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from farescope.errors import NoFlightDataFound
from farescope.schemas import FlightRow

logger = logging.getLogger(__name__)


# =============================================================================
# Patterns
# =============================================================================

MERIDIEM_END = re.compile(r"(AM|PM)$", re.I)
DAY_OFFSET_END = re.compile(r"\+(\d)$")
CLOCK_TIME = re.compile(r"^(\d{1,2}):(\d{2})\s*([AaPp][Mm])(?:\+(\d))?$")

CO2_MASS = re.compile(r"^([\d,]+) kg CO2e?$")
EMISSIONS_DELTA = re.compile(r"^([+-]?\d+)%?$")
DOLLAR_PRICE = re.compile(r"\$\s*([\d,]+)")
BARE_NUMBER = re.compile(r"^[\d,]+$")
ROUTE_CODES = re.compile(r"^[A-Z]{6}$")
TRAILING_CODE = re.compile(r"[A-Z]{3}$")
LEADING_INT = re.compile(r"^(\d+)\b")
DURATION_TEXT = re.compile(r"\d+\s*(hr|min)")

HOURS_PART = re.compile(r"(\d+)\s*h", re.I)
MINUTES_PART = re.compile(r"(\d+)\s*m", re.I)

# Non-offer text Google renders inside result cards
BOILERPLATE_PHRASES = {
    "Separate tickets booked together",
    "Change of airport",
}
BOILERPLATE_PATTERNS = [
    re.compile(r"CO2e?"),
    re.compile(r"trees? absorb"),
    re.compile(r"Other\b.*\bflights?"),
    re.compile(r"Avoids"),
]

# Lines allowed between a departure and its arrival (the dash, once cleaned)
MARKER_SEPARATORS = {"", "-"}
MAX_MARKER_GAP = 1


# =============================================================================
# Record
# =============================================================================

def parse_duration_minutes(text: Optional[str]) -> Optional[int]:
    """Parse "8 hr 30 min", "45 min", "2h 5m" style text to minutes."""
    if not text:
        return None

    hours = HOURS_PART.search(text)
    minutes = MINUTES_PART.search(text)
    if not hours and not minutes:
        return None

    total = 0
    if hours:
        total += int(hours.group(1)) * 60
    if minutes:
        total += int(minutes.group(1))
    return total


@dataclass(frozen=True)
class FlightRecord:
    """One offer parsed from a results page. Instances are never mutated."""
    leg_date: date
    day_of_week: int

    origin: Optional[str] = None
    destination: Optional[str] = None
    airline: Optional[str] = None

    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    duration: Optional[str] = None

    stop_count: Optional[int] = None
    layover: Optional[str] = None

    co2_kg: Optional[int] = None
    emissions_diff_pct: Optional[int] = None
    price: Optional[int] = None

    unclassified_tokens: Tuple[str, ...] = ()

    # Clock-time tokens consumed so far (departure, then arrival)
    time_tokens_seen: int = field(default=0, repr=False, compare=False)

    @classmethod
    def empty(cls, leg_date: date) -> "FlightRecord":
        return cls(leg_date=leg_date, day_of_week=leg_date.isoweekday())

    @property
    def duration_minutes(self) -> Optional[int]:
        return parse_duration_minutes(self.duration)

    @property
    def is_placeholder(self) -> bool:
        return self.price is None and self.airline is None

    def to_row(self, access_timestamp: datetime) -> dict:
        row = FlightRow(
            departure_date=self.leg_date.isoformat(),
            departure_time=self.departure_time.strftime("%H:%M") if self.departure_time else None,
            arrival_date=self.arrival_time.date().isoformat() if self.arrival_time else None,
            arrival_time=self.arrival_time.strftime("%H:%M") if self.arrival_time else None,
            origin=self.origin,
            destination=self.destination,
            airlines=self.airline,
            travel_time=self.duration,
            price=self.price,
            num_stops=self.stop_count,
            layover=self.layover,
            access_timestamp=access_timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            co2_emission_kg=self.co2_kg,
            emission_diff_pct=self.emissions_diff_pct,
        )
        return row.model_dump()


# =============================================================================
# Token rules
# =============================================================================

def is_time_marker(line: str) -> bool:
    """A clock-time line: "9:05AM", "10:30 pm", "1:15PM+1"."""
    if len(line) <= 2 or ":" not in line:
        return False
    return bool(MERIDIEM_END.search(line) or DAY_OFFSET_END.search(line))


def parse_clock_time(token: str, leg_date: date) -> Optional[datetime]:
    """Resolve a 12-hour clock token against the leg date plus any +N day offset."""
    match = CLOCK_TIME.match(token.strip())
    if not match:
        return None
    hour, minute, meridiem, offset = match.groups()
    try:
        clock = datetime.strptime(f"{hour}:{minute}{meridiem.upper()}", "%I:%M%p").time()
    except ValueError:
        return None
    resolved = datetime.combine(leg_date, clock)
    if offset:
        resolved += timedelta(days=int(offset))
    return resolved


def _discard(record: FlightRecord, token: str) -> FlightRecord:
    return replace(record, unclassified_tokens=record.unclassified_tokens + (token,))


Rule = Callable[[FlightRecord, str], Optional[FlightRecord]]


def _time_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.time_tokens_seen >= 2 or not is_time_marker(token):
        return None
    seen = record.time_tokens_seen + 1
    parsed = parse_clock_time(token, record.leg_date)
    if parsed is None:
        logger.debug(f"Unparseable time token {token!r}")
        return _discard(replace(record, time_tokens_seen=seen), token)
    if seen == 1:
        return replace(record, departure_time=parsed, time_tokens_seen=seen)
    return replace(record, arrival_time=parsed, time_tokens_seen=seen)


def _duration_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.duration is not None or not ("hr" in token or "min" in token):
        return None
    return replace(record, duration=token)


def _stops_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.stop_count is not None or "stop" not in token:
        return None
    if token.strip().lower() == "nonstop":
        return replace(record, stop_count=0)
    match = LEADING_INT.match(token)
    if not match:
        return _discard(record, token)
    return replace(record, stop_count=int(match.group(1)))


def _co2_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.co2_kg is not None:
        return None
    match = CO2_MASS.match(token)
    if not match:
        return None
    return replace(record, co2_kg=int(match.group(1).replace(",", "")))


def _emissions_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.emissions_diff_pct is not None or not token.endswith("emissions"):
        return None
    value = token.split()[0]
    if value == "Avg":
        return replace(record, emissions_diff_pct=0)
    match = EMISSIONS_DELTA.match(value)
    if not match:
        return _discard(record, token)
    return replace(record, emissions_diff_pct=int(match.group(1)))


def _price_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.price is not None:
        return None
    if "$" in token:
        match = DOLLAR_PRICE.search(token)
        if not match or not match.group(1).replace(",", ""):
            return _discard(record, token)
        return replace(record, price=int(match.group(1).replace(",", "")))
    # A bare number only counts as the price once the duration has been seen,
    # otherwise flight numbers and counters get picked up
    if record.duration is not None and BARE_NUMBER.match(token) and token.replace(",", ""):
        return replace(record, price=int(token.replace(",", "")))
    return None


def _route_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.origin is not None or record.destination is not None:
        return None
    if not ROUTE_CODES.match(token):
        return None
    return replace(record, origin=token[:3], destination=token[3:])


def _layover_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.layover is not None:
        return None
    timed_stop = "hr" in token and TRAILING_CODE.search(token)
    code_list = len(token.split(", ")) > 1 and token == token.upper()
    if not (timed_stop or code_list):
        return None
    return replace(record, layover=token)


def _is_boilerplate(token: str) -> bool:
    if token in BOILERPLATE_PHRASES:
        return True
    return any(pattern.search(token) for pattern in BOILERPLATE_PATTERNS)


def _looks_like_value(token: str) -> bool:
    """Tokens belonging to a numeric field that is already filled."""
    return bool(
        is_time_marker(token)
        or "$" in token
        or BARE_NUMBER.match(token)
        or DURATION_TEXT.search(token)
        or token.endswith("emissions")
        or token.strip().lower() == "nonstop"
    )


def _airline_rule(record: FlightRecord, token: str) -> Optional[FlightRecord]:
    if record.airline is not None or not token:
        return None
    if _is_boilerplate(token) or _looks_like_value(token):
        return None
    parts = [part.split("Operated")[0].strip() for part in token.split(",")]
    parts = [part for part in parts if part]
    if not parts:
        return None
    return replace(record, airline=", ".join(parts))


RULES: List[Rule] = [
    _time_rule,
    _duration_rule,
    _stops_rule,
    _co2_rule,
    _emissions_rule,
    _price_rule,
    _route_rule,
    _layover_rule,
    _airline_rule,
]


def classify_token(record: FlightRecord, token: str) -> FlightRecord:
    """Fold one token into the record; unmatched tokens are kept as unclassified."""
    for rule in RULES:
        updated = rule(record, token)
        if updated is not None:
            return updated
    return _discard(record, token)


def build_record(leg_date: date, tokens: Iterable[str]) -> FlightRecord:
    """Build one FlightRecord from the tokens of a single offer window."""
    record = reduce(classify_token, tokens, FlightRecord.empty(leg_date))

    if record.stop_count == 0 and record.layover is not None:
        record = replace(
            record,
            layover=None,
            unclassified_tokens=record.unclassified_tokens + (record.layover,),
        )
    return record


# =============================================================================
# Page segmentation
# =============================================================================

def clean_lines(page: Union[str, Sequence[str]]) -> List[str]:
    """Split page text into lines, drop non-ASCII characters and trim."""
    lines = page.split("\n") if isinstance(page, str) else list(page)
    return [line.encode("ascii", "ignore").decode("ascii").strip() for line in lines]


def find_departure_markers(lines: Sequence[str]) -> List[int]:
    """
    Return the line indexes of departure times, in document order.

    Each offer renders its departure, a dash and its arrival on consecutive
    lines. A marker followed by another marker with at most one separator line
    in between is a departure/arrival pair; a marker without such a partner is
    a lone departure. When no pair exists on the whole page the layout is
    unknown and every other marker is taken as a departure.
    """
    markers = [i for i, line in enumerate(lines) if is_time_marker(line)]

    departures = []
    paired = False
    k = 0
    while k < len(markers):
        current = markers[k]
        if k + 1 < len(markers):
            between = lines[current + 1:markers[k + 1]]
            if len(between) <= MAX_MARKER_GAP and all(line in MARKER_SEPARATORS for line in between):
                departures.append(current)
                paired = True
                k += 2
                continue
        departures.append(current)
        k += 1

    if markers and not paired:
        logger.debug("No departure/arrival pairs found, falling back to marker parity")
        return markers[::2]
    return departures


def parse_page(page: Union[str, Sequence[str]], leg_date: date) -> List[FlightRecord]:
    """
    Parse a leg's rendered page text into flight records.

    Each window between two consecutive departure markers is one offer; the
    last departure marker has no successor and is dropped.

    Raises:
        NoFlightDataFound: the page carries no time markers at all
    """
    lines = clean_lines(page)
    if not any(is_time_marker(line) for line in lines):
        raise NoFlightDataFound(
            "Could not find any flight data. Page may not have loaded properly or no flights are available."
        )

    departures = find_departure_markers(lines)
    if len(departures) <= 1:
        logger.warning(f"Insufficient flight data: {len(departures)} departure marker(s) on page")
        return []

    records = []
    for start, end in zip(departures, departures[1:]):
        try:
            records.append(build_record(leg_date, lines[start:end]))
        except Exception as e:
            logger.warning(f"Offer at line {start} could not be parsed: {e}")
            continue

    logger.info(f"Parsed {len(records)} offers for {leg_date.isoformat()}")
    return records
