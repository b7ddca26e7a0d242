"""
Browser sessions used by the scraper.

A session is one stateful browser tab. All navigation on a session is
sequential; use separate sessions for concurrent work.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from farescope.config import Settings, get_settings
from farescope.errors import NavigationFailure, SessionInitFailure

logger = logging.getLogger(__name__)


class BrowserSession(ABC):
    """Minimal browser handle: load a URL, read the page text, close."""

    async def start(self) -> None:
        """Acquire the underlying browser. Sessions that need no setup keep this no-op."""

    @abstractmethod
    async def navigate(self, url: str) -> None:
        pass

    @abstractmethod
    async def get_body_text(self) -> str:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class PlaywrightSession(BrowserSession):
    """
    Headless Chromium session backed by Playwright.

    One browser, one context and one page are created in start() and reused
    for every navigation until close().
    """

    # Browser launch arguments for headless operation
    BROWSER_ARGS = [
        "--disable-blink-features=AutomationControlled",
        "--no-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-extensions",
        "--disable-setuid-sandbox",
        "--disable-background-networking",
        "--disable-default-apps",
        "--disable-sync",
        "--disable-translate",
        "--mute-audio",
        "--hide-scrollbars",
    ]

    USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.settings.headless,
            args=self.BROWSER_ARGS,
        )
        self._context = await self._browser.new_context(
            viewport={"width": 1920, "height": 1080},
            user_agent=self.USER_AGENT,
            locale=self.settings.locale,
        )
        self._page = await self._context.new_page()
        logger.debug("Chromium session started")

    async def navigate(self, url: str) -> None:
        if self._page is None:
            raise NavigationFailure("Session has not been started")
        try:
            await self._page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.settings.navigation_timeout_ms,
            )
        except PlaywrightTimeout as e:
            raise NavigationFailure(
                f"Page load timed out after {self.settings.navigation_timeout_ms} ms"
            ) from e
        except PlaywrightError as e:
            raise NavigationFailure(f"Navigation failed: {e}") from e

    async def get_body_text(self) -> str:
        if self._page is None:
            return ""
        try:
            text = await self._page.evaluate("document.body ? document.body.innerText : ''")
        except PlaywrightError as e:
            logger.debug(f"Could not read page text: {e}")
            return ""
        return text or ""

    async def close(self) -> None:
        """Close page, context, browser and playwright. Safe to call twice."""
        for name in ("_context", "_browser"):
            handle = getattr(self, name)
            if handle is not None:
                try:
                    await handle.close()
                except Exception as e:
                    logger.debug(f"Ignoring error while closing {name.strip('_')}: {e}")
                setattr(self, name, None)
        self._page = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"Ignoring error while stopping playwright: {e}")
            self._playwright = None


SessionFactory = Callable[[], BrowserSession]


@asynccontextmanager
async def open_session(factory: Optional[SessionFactory] = None) -> AsyncIterator[BrowserSession]:
    """
    Start a browser session and guarantee it is closed on every exit path.

    Raises:
        SessionInitFailure: the session could not be started (it has already
            been closed when this propagates)
    """
    try:
        session = factory() if factory is not None else PlaywrightSession()
    except Exception as e:
        raise SessionInitFailure(f"Failed to create browser session: {e}") from e

    try:
        await session.start()
    except Exception as e:
        await session.close()
        raise SessionInitFailure(f"Failed to initialize browser session: {e}") from e
    except BaseException:
        await session.close()
        raise

    try:
        yield session
    finally:
        await session.close()
