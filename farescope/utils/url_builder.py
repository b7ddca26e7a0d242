"""Google Flights URL construction."""

from datetime import date
from typing import Union
from urllib.parse import quote


DEFAULT_HOST = "www.google.com"


def build_google_flights_url(
    origin: str,
    destination: str,
    departure_date: Union[date, str],
    host: str = DEFAULT_HOST,
) -> str:
    """
    Build the one-way search URL for a single leg.

    This is the SINGLE source of truth for leg URLs. The search is phrased as
    a natural language query in the q= parameter, which Google Flights parses
    into the route and date.
    """
    if isinstance(departure_date, date):
        dep_str = departure_date.strftime("%Y-%m-%d")
    else:
        dep_str = departure_date

    query = f"Flights to {destination} from {origin} on {dep_str} oneway"
    return f"https://{host}/travel/flights?hl=en&q={quote(query)}"
