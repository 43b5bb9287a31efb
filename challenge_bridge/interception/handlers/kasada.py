"""
Kasada controller

The ips.js script served under the deployment's identifier path is captured;
POSTs to the sibling /tl endpoint wait for it, then carry oracle-forged
headers and a binary body. Error telemetry is answered locally.
"""

import base64
import binascii
import json
from enum import Enum
from typing import Any, Dict

from challenge_bridge.core.config import DEFAULT_KASADA_IDENTIFIER_PATH
from ..capture import CaptureRecord
from ..gate import Gate
from ..handler import ChallengeHandler
from ..oracle import KasadaRequest, OracleError
from ..patterns.kasada_patterns import KasadaPatterns
from ..state import StateMachine

FALLBACK_IP_ADDRESS = "193.32.249.165"


class KasadaState(str, Enum):
    AWAITING_IPS = "awaiting_ips"
    IPS_CAPTURED = "ips_captured"
    TL_READY = "tl_ready"


TRANSITIONS = {
    KasadaState.AWAITING_IPS: {KasadaState.IPS_CAPTURED},
    KasadaState.IPS_CAPTURED: {KasadaState.TL_READY},
}

CAPTURE_SLOTS = ("ips_script_url", "ips_response_text", "tl_endpoint_url")


class KasadaHandler(ChallengeHandler):
    """Rewrites Kasada /tl submissions from the captured ips.js script"""

    scheme = "kasada"

    def __init__(
        self,
        oracle,
        ip_address=None,
        user_agent=None,
        accept_language=None,
        identifier_path: str = DEFAULT_KASADA_IDENTIFIER_PATH
    ):
        super().__init__(oracle, ip_address or FALLBACK_IP_ADDRESS, user_agent, accept_language)
        self.patterns = KasadaPatterns(identifier_path)
        self.capture = CaptureRecord(CAPTURE_SLOTS)
        self.ips_gate = Gate("kasada_ips")
        self.kasada_state = StateMachine("kasada", KasadaState, KasadaState.AWAITING_IPS, TRANSITIONS)

    async def _install(self, page, context):
        self.observe(page, self._on_response)
        await self.intercept(page, self.patterns.error_route, self._on_error_route)
        await self.intercept(page, self.patterns.tl_route, self._on_tl_route)

    # Observation

    async def _on_response(self, response) -> None:
        request = response.request
        if not self.patterns.is_ips_script(request.url, request.method):
            return

        self.capture.set("ips_script_url", request.url)
        self.capture.set("ips_response_text", await self.read_text(response))

        # Later observations refresh the body; the gate only fires once
        if self.ips_gate.satisfy():
            self.kasada_state.advance(KasadaState.IPS_CAPTURED)
            self.logger.info("Captured ips.js script", url=request.url)
        else:
            self.logger.debug("Refreshed ips.js script body", url=request.url)

    # Interception

    async def _on_error_route(self, route) -> None:
        if route.request.method != "POST":
            await self.forward(route)
            return

        self.logger.debug("Suppressing error telemetry", url=route.request.url)
        await self.fulfill(route, status=200, content_type="application/json", body=json.dumps({"": ""}))

    async def _on_tl_route(self, route) -> None:
        request = route.request
        if not self.patterns.is_tl_submission(request.url, request.method):
            await self.forward(route)
            return

        self.capture.set("tl_endpoint_url", request.url)
        self.logger.info("Intercepting /tl POST, waiting for ips.js", url=request.url)
        await self.ips_gate.wait()

        script = self.capture.get("ips_response_text")
        if not script:
            await self.forward(route, reason="ips.js body not captured")
            return

        user_agent = await self.resolve_user_agent()
        result = await self.oracle.generate_kasada(KasadaRequest(
            user_agent=user_agent,
            ips_link=self.capture.get("ips_script_url"),
            script=script,
            ip=self.ip_address,
            accept_language=self.accept_language,
        ))

        try:
            body = base64.b64decode(result.payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise OracleError("kasada.payload", f"payload is not valid base64: {e}") from e

        headers = self.merge_headers(request.headers, result.headers)
        self.kasada_state.advance(KasadaState.TL_READY)

        await self.mutate(route, headers=headers, post_data=body)
        self.logger.info("/tl POST rewritten", body_size=len(body))

    @staticmethod
    def merge_headers(original: Dict[str, str], generated: Dict[str, str]) -> Dict[str, str]:
        """Overwrite only the headers the browser already sends"""
        headers = dict(original)
        for name, value in generated.items():
            key = name.lower()
            if headers.get(key):
                headers[key] = value
        return headers

    # Status

    @property
    def state(self) -> str:
        return self.kasada_state.state.value

    def _status(self) -> Dict[str, Any]:
        status = self.capture.snapshot()
        status.update(state=self.state, ips_ready=self.ips_gate.is_satisfied)
        return status

    def _reset(self) -> None:
        self.capture.clear()
        self.ips_gate = Gate("kasada_ips")
        self.kasada_state.reset()
