"""
Incapsula (Imperva) controller

Two variants share the interception logic:
- IncapsulaHandler discovers reese84 script paths from observed traffic
- StaticIncapsulaHandler is configured with a path -> sitekey map and only
  mutates JSON sensor posts for paths that have a sitekey

Both rewrite the utmvc resource flow: the resource is fetched through the
route, the oracle computes the ___utmvc value and the page's next write of
that cookie is substituted once.
"""

from typing import Any, Dict, Optional

from ..capture import InterceptionLedger, ScriptPathRegistry, ScriptPathState
from ..handler import ChallengeHandler
from ..oracle import Reese84Request, UtmvcRequest
from ..patterns.base import url_path
from ..patterns.incapsula_patterns import SESSION_COOKIE_PREFIX, IncapsulaPatterns
from ..scripts import UTMVC_COOKIE_SUBSTITUTION_SCRIPT


class IncapsulaHandler(ChallengeHandler):
    """Dynamic variant: reese84 script paths are learned from observed scripts"""

    scheme = "incapsula"

    def __init__(
        self,
        oracle,
        ip_address=None,
        user_agent=None,
        accept_language=None,
        sitekeys: Optional[Dict[str, str]] = None
    ):
        super().__init__(oracle, ip_address, user_agent, accept_language)
        self.patterns = IncapsulaPatterns()
        self.registry = ScriptPathRegistry(sitekeys)
        self.ledger = InterceptionLedger()
        self.utmvc: Optional[str] = None

        # TODO: solve the reese84 proof-of-work once the oracle exposes it
        self.logger.warning("reese84 proof-of-work is not solved, sensor requests carry an empty pow")

    async def _install(self, page, context):
        self.observe(page, self._on_response)
        await self.intercept(page, self.patterns.utmvc_route, self._on_utmvc_route)
        await self.intercept(page, self.patterns.sensor_route, self._on_sensor_route)

    # Observation

    async def _on_response(self, response) -> None:
        request = response.request
        if not self.patterns.is_imperva_script(response.url, request.method, response.headers):
            return

        body = await self.read_text(response)
        if not self.patterns.declares_reese84(body):
            return

        self._record_script(response.url, body)

    def _record_script(self, url: str, body: str) -> None:
        path = url_path(url)
        entry = self.registry.add(path)
        entry.script_url = url
        entry.script_body = body
        if entry.state == ScriptPathState.UNDISCOVERED:
            entry.state = ScriptPathState.SCRIPT_OBSERVED
        self.logger.info("Detected reese84 script", path=path, url=url)

    # Interception

    async def _on_utmvc_route(self, route) -> None:
        request = route.request
        self.logger.info("Intercepting utmvc resource", url=request.url)

        fetched = await route.fetch()
        script = await self.read_text(fetched)

        user_agent = await self.resolve_user_agent()
        session_ids = [
            cookie["value"] for cookie in await self.cookies()
            if cookie.get("name", "").startswith(SESSION_COOKIE_PREFIX)
        ]

        self.utmvc = await self.oracle.generate_utmvc(UtmvcRequest(
            user_agent=user_agent,
            script=script,
            session_ids=session_ids,
        ))
        await self.page.evaluate(UTMVC_COOKIE_SUBSTITUTION_SCRIPT, self.utmvc)
        self.logger.info("utmvc cookie substitution armed", script_length=len(script), sessions=len(session_ids))

        await self.fulfill(route, response=fetched)

    async def _on_sensor_route(self, route) -> None:
        request = route.request
        path = self.registry.find_matching_path(request.url)
        if path is None or request.method != "POST":
            await self.forward(route)
            return

        if self._is_refresh(request):
            await self.forward(route, reason="reese84 refresh")
            return

        sitekey = self.registry.sitekey_for(path)
        if not self._has_required_sitekey(sitekey):
            await self.forward(route, reason=f"no sitekey configured for {path}")
            return

        self.logger.info("Intercepting reese84 sensor POST", path=path, url=request.url)
        self.ledger.record(path)

        entry = self.registry.get(path)
        user_agent = await self.resolve_user_agent()
        payload = await self.oracle.generate_reese84(Reese84Request(
            user_agent=user_agent,
            ip=self.ip_address,
            accept_language=self.accept_language,
            page_url=self.page.url,
            script=entry.script_body or "",
            script_url=entry.script_url or "",
            sitekey=sitekey,
        ))
        entry.state = ScriptPathState.OPERATIONAL

        await self.mutate(route, post_data=payload)
        self.logger.info("reese84 sensor POST rewritten", path=path)

    def _is_refresh(self, request) -> bool:
        return self.patterns.is_refresh_body(self.request_text(request))

    def _has_required_sitekey(self, sitekey: Optional[str]) -> bool:
        return True

    # Status

    @property
    def script_urls(self) -> Dict[str, Optional[str]]:
        return {entry.path: entry.script_url for entry in self.registry}

    def _status(self) -> Dict[str, Any]:
        return {
            "scripts": self.registry.snapshot(),
            "script_urls": self.script_urls,
            "intercepted_paths": self.ledger.snapshot(),
            "utmvc": self.utmvc,
        }

    def _reset(self) -> None:
        self.registry.reset()
        self.ledger.clear()
        self.utmvc = None


class StaticIncapsulaHandler(IncapsulaHandler):
    """
    Static variant: tracked paths and their sitekeys are configured up front

    Observation only attaches the serving script to an already configured
    path; paths are never discovered. Only `application/json` sensor posts
    are eligible for mutation and every one needs a sitekey.
    """

    def __init__(self, oracle, sitekeys: Dict[str, str], ip_address=None, user_agent=None, accept_language=None):
        super().__init__(oracle, ip_address, user_agent, accept_language, sitekeys=sitekeys)

    def _record_script(self, url: str, body: str) -> None:
        path = self.registry.find_matching_path(url)
        if path is None:
            self.logger.debug("reese84 script outside configured paths", url=url)
            return

        entry = self.registry.get(path)
        entry.script_url = url
        entry.script_body = body
        if entry.state == ScriptPathState.UNDISCOVERED:
            entry.state = ScriptPathState.SCRIPT_OBSERVED
        self.logger.info("Captured reese84 script for configured path", path=path, url=url)

    def _is_refresh(self, request) -> bool:
        if not self.patterns.is_json_body(request.headers):
            return True
        return super()._is_refresh(request)

    def _has_required_sitekey(self, sitekey: Optional[str]) -> bool:
        return bool(sitekey)
