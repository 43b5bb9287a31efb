"""
Akamai Bot Manager controller

Sensor flow: the sensor script GET (served with a liveness header) is captured
with its URL; the POST back to that same URL is held until the script body
exists, then its body is replaced with oracle-forged sensor data. The oracle
derives the script's dynamic values itself from the raw body. The context token
returned by each call feeds the next one until a new script arrives.

SBSD flow: the script GET carrying a UUID `v` parameter is captured; POSTs to
its endpoint are rewritten with oracle payloads indexed 0, 1, 2, ... A POST
carrying the `t` refresh marker always uses index 0 and leaves the counter alone.

Pixel analytics POSTs are answered locally with an empty 200.
"""

import json
from enum import Enum
from typing import Any, Dict

from ..capture import CaptureRecord
from ..gate import Gate
from ..handler import ChallengeHandler
from ..oracle import SbsdRequest, SensorRequest
from ..patterns.akamai_patterns import SBSD_COOKIES, SENSOR_COOKIES, AkamaiPatterns
from ..state import StateMachine


class SensorState(str, Enum):
    NO_SCRIPT = "no_script"
    SCRIPT_CAPTURED = "script_captured"
    SENSOR_READY = "sensor_ready"


class SbsdState(str, Enum):
    NO_SBSD = "no_sbsd"
    SBSD_CAPTURED = "sbsd_captured"


SENSOR_TRANSITIONS = {
    SensorState.NO_SCRIPT: {SensorState.SCRIPT_CAPTURED},
    SensorState.SCRIPT_CAPTURED: {SensorState.SENSOR_READY},
    # A re-delivered script starts a new sensor epoch
    SensorState.SENSOR_READY: {SensorState.SCRIPT_CAPTURED},
}

SBSD_TRANSITIONS = {
    SbsdState.NO_SBSD: {SbsdState.SBSD_CAPTURED},
}

CAPTURE_SLOTS = (
    "script_url",
    "sensor_script",
    "sbsd_script_url",
    "sbsd_response_text",
    "sbsd_uuid",
)


class AkamaiHandler(ChallengeHandler):
    """Rewrites Akamai sensor and SBSD submissions with oracle payloads"""

    scheme = "akamai"

    def __init__(self, oracle, ip_address=None, user_agent=None, accept_language=None):
        super().__init__(oracle, ip_address, user_agent, accept_language)
        self.patterns = AkamaiPatterns()
        self.capture = CaptureRecord(CAPTURE_SLOTS)
        self.sensor_gate = Gate("akamai_sensor_script")
        self.sensor_state = StateMachine("akamai_sensor", SensorState, SensorState.NO_SCRIPT, SENSOR_TRANSITIONS)
        self.sbsd_state = StateMachine("akamai_sbsd", SbsdState, SbsdState.NO_SBSD, SBSD_TRANSITIONS)
        self.session_context = ""
        self.sbsd_index = 0

    async def _install(self, page, context):
        self.observe(page, self._on_response)
        await self.intercept(page, self.patterns.sensor_route, self._on_sensor_route)
        await self.intercept(page, self._is_sbsd_endpoint, self._on_sbsd_route)
        await self.intercept(page, self.patterns.pixel_route, self._on_pixel_route)

    # Observation

    async def _on_response(self, response) -> None:
        request = response.request
        url = request.url

        if self.patterns.is_sensor_script_response(url, request.method, response.headers):
            await self._capture_sensor_script(response, url)

        uuid = self.patterns.sbsd_uuid(url, request.method)
        if uuid:
            await self._capture_sbsd_script(response, url, uuid)

    async def _capture_sensor_script(self, response, url: str) -> None:
        # Decode before recording anything so a bad body never claims the URL
        script = await self.read_text(response)

        self.capture.set("script_url", url)
        self.capture.set("sensor_script", script)
        # New script, new sensor epoch
        self.session_context = ""

        self.sensor_state.advance(SensorState.SCRIPT_CAPTURED)
        self.sensor_gate.satisfy()
        self.logger.info("Captured sensor script", url=url, size=len(script))

    async def _capture_sbsd_script(self, response, url: str, uuid: str) -> None:
        endpoint = self.patterns.sbsd_endpoint(url)
        self.capture.set("sbsd_script_url", endpoint)
        self.capture.set("sbsd_uuid", uuid)

        self.capture.set("sbsd_response_text", await self.read_text(response))
        # New SBSD script restarts the payload index
        self.sbsd_index = 0
        self.sbsd_state.advance(SbsdState.SBSD_CAPTURED)
        self.logger.info("Captured SBSD script", endpoint=endpoint, uuid=uuid)

    # Interception

    def _is_sbsd_endpoint(self, url: str) -> bool:
        """Route predicate: URL points at the captured SBSD endpoint"""
        endpoint = self.capture.get("sbsd_script_url")
        if endpoint is None:
            return False
        try:
            return self.patterns.sbsd_endpoint(url) == endpoint
        except ValueError:
            return False

    async def _on_sensor_route(self, route) -> None:
        request = route.request
        script_url = self.capture.get("script_url")

        if request.method != "POST" or script_url is None or request.url != script_url:
            await self.forward(route)
            return

        await self._rewrite_sensor(route)

    async def _rewrite_sensor(self, route) -> None:
        self.logger.info("Intercepting sensor POST", url=route.request.url)
        await self.sensor_gate.wait()

        abck = await self.find_cookie((SENSOR_COOKIES[0],))
        bmsz = await self.find_cookie((SENSOR_COOKIES[1],))
        script = self.capture.get("sensor_script")
        if not abck or not bmsz or not script:
            await self.forward(route, reason="missing _abck/bm_sz cookie or sensor script")
            return

        user_agent = await self.resolve_user_agent()
        result = await self.oracle.generate_sensor(SensorRequest(
            abck=abck,
            bmsz=bmsz,
            page_url=self.page.url,
            user_agent=user_agent,
            ip=self.ip_address,
            accept_language=self.accept_language,
            context=self.session_context,
            script=script,
            script_url=self.capture.get("script_url"),
        ))
        self.session_context = result.context
        self.sensor_state.advance(SensorState.SENSOR_READY)

        await self.mutate(route, post_data=json.dumps({"sensor_data": result.payload}))
        self.logger.info("Sensor POST rewritten")

    async def _on_sbsd_route(self, route) -> None:
        request = route.request
        if request.method != "POST":
            await self.forward(route)
            return

        self.logger.info("Intercepting SBSD POST", url=request.url)

        cookie = await self.find_cookie(SBSD_COOKIES)
        script = self.capture.get("sbsd_response_text")
        uuid = self.capture.get("sbsd_uuid")
        if not cookie or not script or not uuid:
            await self.forward(route, reason="missing sbsd_o/bm_so cookie or SBSD script")
            return

        user_agent = await self.resolve_user_agent()

        refresh = self.patterns.is_time_refresh(request.url)
        index = 0 if refresh else self.sbsd_index
        self.logger.info("Using SBSD index", index=index, time_refresh=refresh)

        payload = await self.oracle.generate_sbsd(SbsdRequest(
            index=index,
            uuid=uuid,
            cookie=cookie,
            page_url=self.page.url,
            user_agent=user_agent,
            script=script,
            ip=self.ip_address,
            accept_language=self.accept_language,
        ))
        if not refresh:
            self.sbsd_index += 1

        await self.mutate(route, post_data=json.dumps({"body": payload}))
        self.logger.info("SBSD POST rewritten", index=index)

    async def _on_pixel_route(self, route) -> None:
        if route.request.method != "POST":
            await self.forward(route)
            return

        self.logger.info("Suppressing pixel POST", url=route.request.url)
        await self.fulfill(route, status=200, content_type="text/html", body="")

    # Status

    @property
    def state(self) -> Dict[str, str]:
        return {"sensor": self.sensor_state.state.value, "sbsd": self.sbsd_state.state.value}

    def _status(self) -> Dict[str, Any]:
        status = self.capture.snapshot()
        status.update(
            state=self.state,
            session_context=self.session_context,
            sbsd_index=self.sbsd_index,
            sensor_script_ready=self.sensor_gate.is_satisfied,
        )
        return status

    def _reset(self) -> None:
        self.capture.clear()
        self.session_context = ""
        self.sbsd_index = 0
        self.sensor_gate = Gate("akamai_sensor_script")
        self.sensor_state.reset()
        self.sbsd_state.reset()
