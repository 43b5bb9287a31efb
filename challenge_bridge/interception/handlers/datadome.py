"""
DataDome controller

Slider variant: the puzzle (.jpg) and piece (.frag.png) images are captured as
base64 in whatever order they arrive. The captcha page response waits for both,
then the oracle solves the slider and the completion handshake is replayed
inside the captcha iframe against the returned device check link.

Interstitial variant: the interstitial page is recorded and the submission
POST is rewritten with the oracle's body and headers. The POST only waits
while a page body is being read; with nothing captured it goes out untouched.
"""

import base64
from enum import Enum
from typing import Any, Dict, Optional

from ..capture import CaptureRecord
from ..gate import Gate
from ..handler import ChallengeHandler
from ..oracle import InterstitialRequest, OracleError, SliderRequest
from ..patterns.datadome_patterns import DataDomePatterns
from ..scripts import DATADOME_COMPLETE_CHALLENGE_SCRIPT, PARENT_URL_SCRIPT
from ..state import StateMachine


class DataDomeState(str, Enum):
    IDLE = "idle"
    IMAGES_PENDING = "images_pending"
    IMAGES_READY = "images_ready"
    SOLVING = "solving"
    SOLVED = "solved"


class InterstitialState(str, Enum):
    AWAITING_PAGE = "awaiting_page"
    PAGE_CAPTURED = "page_captured"
    SUBMITTED = "submitted"


SLIDER_TRANSITIONS = {
    DataDomeState.IDLE: {DataDomeState.IMAGES_PENDING},
    DataDomeState.IMAGES_PENDING: {DataDomeState.IMAGES_READY},
    DataDomeState.IMAGES_READY: {DataDomeState.SOLVING},
    # Oracle failure drops back so the next captcha page can retry
    DataDomeState.SOLVING: {DataDomeState.SOLVED, DataDomeState.IMAGES_READY},
    DataDomeState.SOLVED: {DataDomeState.IMAGES_PENDING, DataDomeState.IMAGES_READY},
}

INTERSTITIAL_TRANSITIONS = {
    InterstitialState.AWAITING_PAGE: {InterstitialState.PAGE_CAPTURED},
    InterstitialState.PAGE_CAPTURED: {InterstitialState.SUBMITTED},
    InterstitialState.SUBMITTED: {InterstitialState.PAGE_CAPTURED},
}

CAPTURE_SLOTS = (
    "puzzle_image",
    "piece_image",
    "captcha_url",
    "captcha_html",
    "parent_url",
    "device_check_link",
    "interstitial_url",
    "interstitial_html",
)


class DataDomeHandler(ChallengeHandler):
    """Solves DataDome slider captchas and rewrites interstitial submissions"""

    scheme = "datadome"

    def __init__(self, oracle, ip_address=None, user_agent=None, accept_language=None):
        super().__init__(oracle, ip_address, user_agent, accept_language)
        self.patterns = DataDomePatterns()
        self.capture = CaptureRecord(CAPTURE_SLOTS)
        self.images_gate = Gate("datadome_images")
        # Set only while an interstitial page body is being read
        self.interstitial_gate: Optional[Gate] = None
        self.slider_state = StateMachine("datadome_slider", DataDomeState, DataDomeState.IDLE, SLIDER_TRANSITIONS)
        self.interstitial_state = StateMachine(
            "datadome_interstitial",
            InterstitialState,
            InterstitialState.AWAITING_PAGE,
            INTERSTITIAL_TRANSITIONS
        )
        self._processing = False

    async def _install(self, page, context):
        # The captcha lives in an iframe, so watch the whole context
        self.observe(context, self._on_response)
        await self.intercept(page, self.patterns.interstitial_submit_route, self._on_interstitial_submit)

    # Observation

    async def _on_response(self, response) -> None:
        url = response.url
        if response.request.method != "GET":
            return

        if self.patterns.is_puzzle_image(url):
            await self._capture_image(response, "puzzle_image")
        elif self.patterns.is_piece_image(url):
            await self._capture_image(response, "piece_image")
        elif self.patterns.is_captcha_page(url):
            await self._on_captcha_page(response)
        elif self.patterns.is_interstitial_page(url):
            await self._capture_interstitial(response)

    async def _capture_image(self, response, slot: str) -> None:
        if not response.ok:
            self.logger.warning("Ignoring failed image response", slot=slot, status=response.status)
            return

        body = await response.body()
        self.capture.set(slot, base64.b64encode(body).decode("ascii"))
        self.logger.info("Captured captcha image", slot=slot, size=len(body))

        if self.capture.is_set("puzzle_image") and self.capture.is_set("piece_image"):
            self.slider_state.advance(DataDomeState.IMAGES_READY)
            if self.images_gate.satisfy():
                self.logger.info("Both captcha images ready")
        else:
            self.slider_state.advance(DataDomeState.IMAGES_PENDING)

    async def _on_captcha_page(self, response) -> None:
        if self._processing:
            self.logger.info("Captcha page already being handled, skipping", url=response.url)
            return

        self._processing = True
        try:
            await self._solve_slider(response)
        finally:
            self._processing = False

    async def _solve_slider(self, response) -> None:
        captcha_url = response.url
        html = await self.read_text(response)
        self.capture.set("captcha_url", captcha_url)
        self.capture.set("captcha_html", html)
        self.logger.info("Captcha page detected, waiting for images", url=captcha_url)

        await self.images_gate.wait()

        frame = self.find_captcha_frame()
        if frame is None:
            self.logger.warning("Captcha iframe not found, leaving challenge untouched", url=captcha_url)
            return

        parent_url = await frame.evaluate(PARENT_URL_SCRIPT)
        self.capture.set("parent_url", parent_url)
        user_agent = await self.resolve_user_agent()

        self.slider_state.advance(DataDomeState.SOLVING)
        try:
            result = await self.oracle.generate_slider(SliderRequest(
                user_agent=user_agent,
                device_link=captcha_url,
                html=html,
                puzzle=self.capture.get("puzzle_image"),
                piece=self.capture.get("piece_image"),
                parent_url=parent_url,
                ip=self.ip_address,
                accept_language=self.accept_language,
            ))
        except OracleError:
            self.slider_state.advance(DataDomeState.IMAGES_READY)
            raise

        self.capture.set("device_check_link", result.payload)
        if result.headers:
            await self.page.set_extra_http_headers(result.headers)

        await frame.evaluate(DATADOME_COMPLETE_CHALLENGE_SCRIPT, result.payload)
        self.slider_state.advance(DataDomeState.SOLVED)
        self.logger.info("Slider challenge completion dispatched", parent_url=parent_url)

    def find_captcha_frame(self) -> Optional[Any]:
        """First frame, across every open page, served from the delivery domain"""
        for page in self.context.pages:
            for frame in page.frames:
                if self.patterns.is_delivery_frame(frame.url):
                    return frame
        return None

    async def _capture_interstitial(self, response) -> None:
        gate = Gate("datadome_interstitial")
        self.interstitial_gate = gate
        try:
            html = await self.read_text(response)
            self.capture.set("interstitial_url", response.url)
            self.capture.set("interstitial_html", html)
            self.interstitial_state.advance(InterstitialState.PAGE_CAPTURED)
            self.logger.info("Captured interstitial page", url=response.url)
        finally:
            # Release held submissions whether or not the body was usable
            gate.satisfy()
            if self.interstitial_gate is gate:
                self.interstitial_gate = None

    # Interception

    async def _on_interstitial_submit(self, route) -> None:
        request = route.request
        if not self.patterns.is_interstitial_submit(request.url, request.method):
            await self.forward(route)
            return

        self.logger.info("Intercepting interstitial submission", url=request.url)
        gate = self.interstitial_gate
        if gate is not None:
            await gate.wait()

        device_link = self.capture.get("interstitial_url")
        html = self.capture.get("interstitial_html")
        if not device_link or html is None:
            await self.forward(route, reason="interstitial page not captured")
            return

        user_agent = await self.resolve_user_agent()
        result = await self.oracle.generate_interstitial(InterstitialRequest(
            user_agent=user_agent,
            device_link=device_link,
            html=html,
            ip=self.ip_address,
            accept_language=self.accept_language,
        ))

        if result.headers:
            await self.page.set_extra_http_headers(result.headers)
        self.interstitial_state.advance(InterstitialState.SUBMITTED)

        await self.mutate(route, post_data=result.payload)
        self.logger.info("Interstitial submission rewritten")

    # Status

    @property
    def state(self) -> Dict[str, str]:
        return {
            "slider": self.slider_state.state.value,
            "interstitial": self.interstitial_state.state.value,
        }

    def _status(self) -> Dict[str, Any]:
        status = self.capture.snapshot()
        status.update(
            state=self.state,
            images_ready=self.images_gate.is_satisfied,
            interstitial_ready=self.capture.is_set("interstitial_html"),
            processing=self._processing,
        )
        return status

    def _reset(self) -> None:
        self.capture.clear()
        self.images_gate = Gate("datadome_images")
        self.interstitial_gate = None
        self.slider_state.reset()
        self.interstitial_state.reset()
        self._processing = False
