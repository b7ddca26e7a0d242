"""
Test fixtures for farescope tests.

No test launches a browser: FakeSession stands in for Playwright and serves
canned page text per URL.
"""
import asyncio
from typing import Dict, List, Optional, Sequence, Union

import pytest

from farescope.config import Settings
from farescope.errors import NavigationFailure
from farescope.scrapers.browser import BrowserSession


PageSource = Union[str, List[str]]


def offer_lines(
    departure: str = "9:00 AM",
    arrival: str = "5:00 PM+1",
    airline: str = "Turkish Airlines",
    duration: str = "8 hr 0 min",
    route: str = "JFK–IST",
    stops: str = "Nonstop",
    co2: str = "593 kg CO2e",
    emissions: str = "18% emissions",
    price: str = "$450",
) -> List[str]:
    """Lines of one offer card as document.body.innerText renders them."""
    return [departure, "–", arrival, airline, duration, route, stops, co2, emissions, price]


def results_page(offers: Sequence[List[str]], padding: int = 120) -> str:
    """A results page with header filler, the offer cards and a footer."""
    lines = ["Skip to main content", "Flights", "One way", "1", "Economy"]
    lines += [f"Filter option {i}" for i in range(padding)]
    lines += ["Top departing flights"]
    for offer in offers:
        lines += offer
    lines += ["Language English (United States)", "Location United States", "Currency USD"]
    return "\n".join(lines)


def short_page() -> str:
    return "\n".join(["Loading results"] * 5)


class FakeSession(BrowserSession):
    """
    Browser session double that records every call.

    pages maps URL -> page text. A list value is served one element per
    get_body_text() call (the last element repeats), to model a page that is
    still rendering. delay makes every navigation take that many seconds.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, PageSource]] = None,
        start_error: Optional[Exception] = None,
        failing_urls: Sequence[str] = (),
        delay: float = 0.0,
    ):
        self.pages = dict(pages or {})
        self.start_error = start_error
        self.failing_urls = set(failing_urls)
        self.delay = delay
        self.start_calls = 0
        self.close_calls = 0
        self.text_calls = 0
        self.navigated: List[str] = []
        self._current: Optional[str] = None

    async def start(self) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error

    async def navigate(self, url: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.navigated.append(url)
        self._current = url
        if url in self.failing_urls:
            raise NavigationFailure(f"Navigation failed: net::ERR_CONNECTION_RESET at {url}")

    async def get_body_text(self) -> str:
        self.text_calls += 1
        source = self.pages.get(self._current, "")
        if isinstance(source, list):
            if len(source) > 1:
                return source.pop(0)
            return source[0] if source else ""
        return source

    async def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fast_settings():
    """Settings with every pause disabled."""
    return Settings(
        settle_seconds=0,
        poll_interval_seconds=0,
        max_poll_attempts=3,
        min_content_lines=100,
        leg_pause_seconds=0,
    )
