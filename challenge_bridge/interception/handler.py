"""
Base class for protection-scheme controllers

Wires the observation channel (completed responses) and the interception
channel (routed requests) to a controller and applies the shared error policy:
- malformed traffic is logged and treated as non-matching
- missing prerequisites forward the original request unmodified
- oracle failures are logged and re-raised to the automation host
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
import structlog

from challenge_bridge.core.config import DEFAULT_ACCEPT_LANGUAGE
from .oracle import Oracle
from .patterns.base import MalformedTrafficError, decode_body
from .scripts import USER_AGENT_SCRIPT

logger = structlog.get_logger()

ResponseCallback = Callable[[Any], Awaitable[None]]
RouteCallback = Callable[[Any], Awaitable[None]]


class ChallengeHandler:
    """
    Common plumbing for the Akamai, DataDome, Incapsula and Kasada controllers

    Subclasses implement `_install` (register observers and routes),
    `_status` (scheme-specific snapshot) and `_reset` (clear captures and
    replace gates).
    """

    scheme = "base"

    def __init__(
        self,
        oracle: Oracle,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        accept_language: Optional[str] = None
    ):
        self.oracle = oracle
        self.ip_address = ip_address or ""
        self.user_agent = user_agent or ""
        self.accept_language = accept_language or DEFAULT_ACCEPT_LANGUAGE

        self.page = None
        self.context = None
        self._initialized = False

        self.logger = logger.bind(component=f"{self.scheme}_handler")

        # Statistics
        self.stats = {
            "responses_observed": 0,
            "requests_intercepted": 0,
            "requests_mutated": 0,
            "requests_forwarded": 0,
            "requests_fulfilled": 0,
            "malformed": 0,
            "errors": 0
        }

    async def initialize(self, page: Any, context: Any) -> None:
        """Install observers and interceptors on a Playwright page/context"""
        if self._initialized:
            self.logger.warning("Handler already initialized, ignoring")
            return

        self.page = page
        self.context = context
        await self._install(page, context)
        self._initialized = True
        self.logger.info("Handler initialized", page_url=page.url)

    async def _install(self, page: Any, context: Any) -> None:
        raise NotImplementedError

    # Observation channel

    def observe(self, target: Any, callback: ResponseCallback) -> None:
        """Subscribe to completed responses on a page or browser context"""

        async def on_response(response):
            self.stats["responses_observed"] += 1
            try:
                await callback(response)
            except MalformedTrafficError as e:
                self.stats["malformed"] += 1
                self.logger.warning("Ignoring malformed response", url=e.url, error=str(e))
            except Exception as e:
                self.stats["errors"] += 1
                self.logger.error(
                    "Error in response observer",
                    url=getattr(response, "url", None),
                    error=str(e),
                    exc_info=True
                )

        target.on("response", on_response)

    # Interception channel

    async def intercept(self, target: Any, pattern: Any, callback: RouteCallback) -> None:
        """Route requests matching `pattern` through `callback`"""

        async def on_route(route):
            self.stats["requests_intercepted"] += 1
            try:
                await callback(route)
            except MalformedTrafficError as e:
                self.stats["malformed"] += 1
                self.logger.warning("Forwarding malformed request unmodified", url=e.url, error=str(e))
                await route.fallback()
            except Exception as e:
                self.stats["errors"] += 1
                self.logger.error("Route handler failed", url=route.request.url, error=str(e))
                raise

        await target.route(pattern, on_route)

    async def forward(self, route: Any, reason: Optional[str] = None) -> None:
        """Let the request through untouched, to the next matching route or the network"""
        if reason:
            self.logger.info("Forwarding original request", url=route.request.url, reason=reason)
        self.stats["requests_forwarded"] += 1
        await route.fallback()

    async def mutate(
        self,
        route: Any,
        post_data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        method: Optional[str] = None
    ) -> None:
        """Forward the request with a replaced body, header set and/or method"""
        overrides = {}
        if method is not None:
            overrides["method"] = method
        if headers is not None:
            overrides["headers"] = headers
        if post_data is not None:
            overrides["post_data"] = post_data

        self.stats["requests_mutated"] += 1
        await route.continue_(**overrides)

    async def fulfill(
        self,
        route: Any,
        status: int = 200,
        content_type: Optional[str] = None,
        body: str = "",
        response: Any = None
    ) -> None:
        """Answer the request locally, or with a response already fetched through the route"""
        self.stats["requests_fulfilled"] += 1
        if response is not None:
            await route.fulfill(response=response)
            return
        await route.fulfill(status=status, content_type=content_type, body=body)

    # Host helpers

    async def resolve_user_agent(self, page: Any = None) -> str:
        if not self.user_agent:
            self.user_agent = await (page or self.page).evaluate(USER_AGENT_SCRIPT)
        return self.user_agent

    async def cookies(self) -> List[Dict[str, Any]]:
        return await self.context.cookies()

    async def find_cookie(self, names: Sequence[str]) -> Optional[str]:
        """Value of the first cookie in the jar whose name is one of `names`"""
        for cookie in await self.cookies():
            if cookie.get("name") in names:
                return cookie.get("value")
        return None

    async def read_text(self, response: Any) -> str:
        return decode_body(await response.body(), url=response.url)

    def request_text(self, request: Any) -> Optional[str]:
        try:
            return request.post_data
        except UnicodeDecodeError as e:
            raise MalformedTrafficError("Request body is not valid UTF-8", url=request.url) from e

    # Produced surface

    def get_status(self) -> Dict[str, Any]:
        """Read-only snapshot of captured state for diagnostics and tests"""
        status = {"scheme": self.scheme, "initialized": self._initialized}
        status.update(self._status())
        return status

    def _status(self) -> Dict[str, Any]:
        return {}

    def reset(self) -> None:
        """Start a new challenge round: clear captures and replace gates"""
        self._reset()
        self.logger.info("Handler state reset")

    def _reset(self) -> None:
        raise NotImplementedError

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
