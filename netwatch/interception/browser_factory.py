"""Browser factory for the Playwright interception driver.

This module provides the BrowserFactory class that launches a browser,
creates one context per intercepted browsing session, and tears everything
down again.
"""

import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Playwright,
    async_playwright,
)

logger = logging.getLogger(__name__)


class BrowserEngineType:
    """Supported browser engine types."""
    CHROMIUM = "chromium"
    FIREFOX = "firefox"
    WEBKIT = "webkit"


class BrowserConfig:
    """Configuration for browser launch and context setup."""

    def __init__(
        self,
        engine: str = BrowserEngineType.CHROMIUM,
        headless: bool = True,
        viewport: Optional[Dict[str, int]] = None,
        user_agent: Optional[str] = None,
        ignore_https_errors: bool = False,
        locale: Optional[str] = None,
        executable_path: Optional[str] = None,
        args: Optional[List[str]] = None,
    ):
        """Initialize browser configuration.

        Args:
            engine: Browser engine to use (chromium, firefox, webkit)
            headless: Run browser in headless mode
            viewport: Viewport size dict with 'width' and 'height'
            user_agent: Custom User-Agent string
            ignore_https_errors: Ignore SSL/TLS certificate errors
            locale: Locale for the browser context
            executable_path: Browser binary to launch instead of the bundled one
            args: Extra command line flags for the browser process
        """
        self.engine = engine
        self.headless = headless
        self.viewport = viewport or {'width': 1920, 'height': 1080}
        self.user_agent = user_agent
        self.ignore_https_errors = ignore_https_errors
        self.locale = locale
        self.executable_path = executable_path
        self.args = list(args) if args else []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BrowserConfig":
        """Build from the ``browser`` section of the interception config."""
        return cls(
            engine=data.get('engine', BrowserEngineType.CHROMIUM),
            headless=data.get('headless', True),
            viewport={
                'width': data.get('window_width', 1920),
                'height': data.get('window_height', 1080),
            },
            user_agent=data.get('user_agent'),
            ignore_https_errors=data.get('ignore_https_errors', False),
            locale=data.get('locale'),
            executable_path=data.get('executable_path'),
            args=data.get('args'),
        )

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options: Dict[str, Any] = {'headless': self.headless}
        if self.executable_path:
            options['executable_path'] = self.executable_path
        if self.args:
            options['args'] = self.args
        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options: Dict[str, Any] = {}

        if self.viewport:
            options['viewport'] = self.viewport

        if self.user_agent:
            options['user_agent'] = self.user_agent

        if self.ignore_https_errors:
            options['ignore_https_errors'] = True

        if self.locale:
            options['locale'] = self.locale

        return options


class BrowserFactory:
    """Launches a Playwright browser and hands out contexts."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._contexts: List[BrowserContext] = []

    async def start(self) -> None:
        """Start Playwright and launch browser."""
        if self.playwright is not None:
            logger.warning("Browser factory already started")
            return

        logger.info(f"Starting browser factory with engine: {self.config.engine}")

        try:
            self.playwright = await async_playwright().start()

            if self.config.engine == BrowserEngineType.FIREFOX:
                browser_type = self.playwright.firefox
            elif self.config.engine == BrowserEngineType.WEBKIT:
                browser_type = self.playwright.webkit
            else:
                browser_type = self.playwright.chromium

            self.browser = await browser_type.launch(**self.config.to_browser_options())

            logger.info(f"Browser launched successfully (headless={self.config.headless})")

        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.stop()
            raise

    async def stop(self) -> None:
        """Close contexts, the browser and Playwright."""
        logger.info("Stopping browser factory")

        for context in self._contexts:
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
        self._contexts.clear()

        try:
            if self.browser:
                await self.browser.close()
        except Exception as e:
            logger.warning(f"Error closing browser: {e}")
        finally:
            self.browser = None

        try:
            if self.playwright:
                await self.playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright: {e}")
        finally:
            self.playwright = None

    async def create_context(self, **context_overrides) -> BrowserContext:
        """Create a new browser context, starting the browser if needed."""
        if not self.browser:
            await self.start()

        context_options = self.config.to_context_options()
        context_options.update(context_overrides)

        context = await self.browser.new_context(**context_options)
        self._contexts.append(context)

        logger.debug(f"Created browser context #{len(self._contexts)}")
        return context

    async def release_context(self, context: BrowserContext) -> None:
        """Close a context this factory created and stop tracking it."""
        if context not in self._contexts:
            return
        self._contexts.remove(context)
        try:
            await context.close()
        except Exception as e:
            logger.warning(f"Error closing browser context: {e}")

    @property
    def is_running(self) -> bool:
        """Check if the browser is up."""
        if self.browser is None:
            return False
        return self.browser.is_connected()

    @property
    def context_count(self) -> int:
        return len(self._contexts)

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(engine={self.config.engine}, "
            f"headless={self.config.headless}, "
            f"running={self.is_running}, "
            f"contexts={self.context_count})"
        )
