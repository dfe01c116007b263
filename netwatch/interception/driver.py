"""Browser automation driver interface and its Playwright binding.

The interception core only talks to ``InterceptionDriver``: it subscribes to
request, response and context-close signals, receives explicit
``Subscription`` handles it must close, and applies exactly one terminal
decision per observed request through ``resolve``.

``PlaywrightDriver`` implements the interface with Playwright's async API.
Requests are captured with ``page.route("**/*")`` and each captured route
is parked until the pipeline resolves it.
"""

import asyncio
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Optional, Tuple, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, Request, Response, Route

from ..models.interception import (
    Abort,
    Allow,
    Fulfill,
    RequestView,
    ResourceType,
    ResponseView,
    TerminalDecision,
)
from .browser_factory import BrowserFactory
from .exceptions import DriverUnavailableError, RequestAlreadyResolvedError

logger = logging.getLogger(__name__)


RequestCallback = Callable[[RequestView], None]
ResponseCallback = Callable[[ResponseView], None]
ClosedCallback = Callable[[], None]

# Error codes accepted by Playwright's route.abort()
PLAYWRIGHT_ABORT_CODES = frozenset({
    'aborted', 'accessdenied', 'addressunreachable', 'blockedbyclient',
    'blockedbyresponse', 'connectionaborted', 'connectionclosed',
    'connectionfailed', 'connectionrefused', 'connectionreset',
    'internetdisconnected', 'namenotresolved', 'timedout', 'failed',
})


class Subscription:
    """Handle for a driver event subscription.

    ``close()`` releases the subscription; calling it again is a no-op.
    """

    def __init__(self, name: str, closer: Callable[[], Union[None, Awaitable[None]]]):
        self.name = name
        self._closer = closer
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        result = self._closer()
        if inspect.isawaitable(result):
            await result
        logger.debug(f"Subscription closed: {self.name}")

    def __repr__(self) -> str:
        return f"Subscription(name={self.name!r}, closed={self._closed})"


class InterceptionDriver(ABC):
    """What the interception core needs from a browser automation driver."""

    @abstractmethod
    async def subscribe_requests(self, context_ref: str, on_request: RequestCallback) -> Subscription:
        """Start intercepting requests in a browsing context.

        Raises:
            DriverUnavailableError: If interception cannot be enabled
        """

    @abstractmethod
    async def subscribe_responses(self, context_ref: str, on_response: ResponseCallback) -> Subscription:
        """Start observing responses in a browsing context."""

    @abstractmethod
    async def subscribe_closed(self, context_ref: str, on_closed: ClosedCallback) -> Subscription:
        """Get notified when the browsing context goes away."""

    @abstractmethod
    async def resolve(self, request_id: str, decision: TerminalDecision, tie_break: int) -> None:
        """Apply a terminal decision to an intercepted request.

        Raises:
            RequestAlreadyResolvedError: If the request was already resolved
        """

    @abstractmethod
    async def navigate(self, context_ref: str, url: str) -> None:
        """Navigate the browsing context to a URL."""

    async def close(self) -> None:
        """Release driver resources."""


class PlaywrightDriver(InterceptionDriver):
    """InterceptionDriver backed by Playwright pages.

    Each context reference maps to one page, created lazily through the
    browser factory.
    """

    def __init__(
        self,
        factory: Optional[BrowserFactory] = None,
        navigation_timeout_ms: int = 30000,
        wait_until: str = "networkidle",
    ):
        self.factory = factory or BrowserFactory()
        self.navigation_timeout_ms = navigation_timeout_ms
        self.wait_until = wait_until
        self._pages: Dict[str, Page] = {}
        # request_id -> (route, request) until resolved
        self._routes: Dict[str, Tuple[Route, Request]] = {}
        # request -> request_id until its response, failure or abort
        self._request_ids: Dict[Request, str] = {}
        self._page_lock = asyncio.Lock()

    def attach_page(self, context_ref: str, page: Page) -> None:
        """Use an existing page for a context reference."""
        self._pages[context_ref] = page

    async def get_page(self, context_ref: str) -> Page:
        """Get or open the page for a context reference.

        Raises:
            DriverUnavailableError: If the browser cannot provide a page
        """
        async with self._page_lock:
            page = self._pages.get(context_ref)
            if page is not None:
                if not page.is_closed():
                    return page
                await self.factory.release_context(page.context)

            try:
                context = await self.factory.create_context()
                page = await context.new_page()
            except Exception as e:
                logger.error(f"Failed to open page for context {context_ref}: {e}")
                raise DriverUnavailableError(f"Failed to open browser page: {e}", context_ref=context_ref)

            self._pages[context_ref] = page
            logger.info(f"Opened page for context {context_ref}")
            return page

    async def _create_request_view(self, request: Request, request_id: str) -> RequestView:
        """Build a RequestView from a Playwright request."""
        headers = ()
        try:
            headers = tuple(
                (header['name'], header['value'])
                for header in await request.headers_array()
            )
        except Exception as e:
            logger.warning(f"Failed to extract request headers: {e}")
            try:
                headers = tuple(request.headers.items())
            except Exception:
                headers = ()

        body = None
        try:
            body = request.post_data_buffer
        except Exception as e:
            logger.debug(f"Failed to extract request body: {e}")

        return RequestView(
            request_id=request_id,
            url=request.url,
            method=request.method,
            headers=headers,
            body=body,
            resource_type=ResourceType.from_driver(request.resource_type),
        )

    async def subscribe_requests(self, context_ref: str, on_request: RequestCallback) -> Subscription:
        page = await self.get_page(context_ref)

        async def handle_route(route: Route, request: Request) -> None:
            request_id = uuid.uuid4().hex
            self._routes[request_id] = (route, request)
            self._request_ids[request] = request_id

            view = await self._create_request_view(request, request_id)
            logger.debug(f"Request intercepted: {view.method} {view.url}")
            try:
                on_request(view)
            except Exception as e:
                logger.error(f"Error in request callback, continuing request: {e}")
                if self._routes.pop(request_id, None) is not None:
                    await route.continue_()

        def forget_request(request: Request) -> None:
            self._request_ids.pop(request, None)

        try:
            await page.route("**/*", handle_route)
        except PlaywrightError as e:
            raise DriverUnavailableError(f"Failed to enable request interception: {e}", context_ref=context_ref)
        page.on("requestfailed", forget_request)

        async def unroute() -> None:
            page.remove_listener("requestfailed", forget_request)
            if page.is_closed():
                return
            try:
                await page.unroute("**/*", handle_route)
            except PlaywrightError as e:
                logger.warning(f"Failed to remove request route for {context_ref}: {e}")

        logger.info(f"Request interception enabled for context {context_ref}")
        return Subscription(f"requests:{context_ref}", unroute)

    async def subscribe_responses(self, context_ref: str, on_response: ResponseCallback) -> Subscription:
        page = await self.get_page(context_ref)

        def handle_response(response: Response) -> None:
            request_id = self._request_ids.pop(response.request, None)
            try:
                headers = response.headers
            except Exception as e:
                logger.warning(f"Failed to extract response headers: {e}")
                headers = {}

            view = ResponseView(
                request_id=request_id,
                url=response.url,
                status=response.status,
                status_text=response.status_text,
                headers=headers,
            )
            logger.debug(f"Response received: {view.status} {view.url}")
            on_response(view)

        page.on("response", handle_response)
        return Subscription(
            f"responses:{context_ref}",
            lambda: page.remove_listener("response", handle_response)
        )

    async def subscribe_closed(self, context_ref: str, on_closed: ClosedCallback) -> Subscription:
        page = await self.get_page(context_ref)

        def handle_close(_page: Page) -> None:
            logger.warning(f"Page for context {context_ref} closed")
            on_closed()

        page.on("close", handle_close)
        return Subscription(
            f"closed:{context_ref}",
            lambda: page.remove_listener("close", handle_close)
        )

    @staticmethod
    def abort_error_code(reason: str) -> str:
        """Map an abort reason onto a Playwright error code."""
        code = (reason or "").strip().lower()
        if code in PLAYWRIGHT_ABORT_CODES:
            return code
        return 'blockedbyclient'

    async def resolve(self, request_id: str, decision: TerminalDecision, tie_break: int) -> None:
        pending = self._routes.pop(request_id, None)
        if pending is None:
            raise RequestAlreadyResolvedError(request_id, tie_break)
        route, request = pending
        if isinstance(decision, Abort):
            # Aborted requests never get a response event
            self._request_ids.pop(request, None)

        # Playwright has no cross-handler arbitration; the tie-break is informational
        logger.debug(f"Resolving request {request_id} as {decision.action} (tie_break={tie_break})")

        try:
            if isinstance(decision, Abort):
                await route.abort(self.abort_error_code(decision.reason))
            elif isinstance(decision, Fulfill):
                await route.fulfill(
                    status=decision.status,
                    headers=decision.headers,
                    body=decision.body,
                )
            elif isinstance(decision, Allow):
                overrides = {}
                if decision.header_overrides is not None:
                    overrides['headers'] = decision.header_overrides
                if decision.body_override is not None:
                    overrides['post_data'] = decision.body_override
                await route.continue_(**overrides)
            else:
                raise TypeError(f"Not a terminal decision: {decision!r}")
        except PlaywrightError as e:
            if "already handled" in str(e).lower():
                raise RequestAlreadyResolvedError(request_id, tie_break)
            raise

    async def navigate(self, context_ref: str, url: str) -> None:
        page = await self.get_page(context_ref)
        logger.info(f"Navigating context {context_ref} to {url}")
        await page.goto(url, wait_until=self.wait_until, timeout=self.navigation_timeout_ms)

    async def close(self) -> None:
        """Close every page and stop the browser."""
        for context_ref, page in list(self._pages.items()):
            try:
                if not page.is_closed():
                    await page.close()
            except Exception as e:
                logger.warning(f"Error closing page for context {context_ref}: {e}")
        self._pages.clear()
        self._routes.clear()
        self._request_ids.clear()
        await self.factory.stop()

    @property
    def pending_count(self) -> int:
        """Number of intercepted requests awaiting resolution."""
        return len(self._routes)

    def __repr__(self) -> str:
        return f"PlaywrightDriver(pages={len(self._pages)}, pending={self.pending_count})"
