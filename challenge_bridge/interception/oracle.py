"""
Oracle Client

Call boundary to the external solving service. Controllers depend only on the
abstract Oracle and the request/result dataclasses below; HyperOracle binds
them to the Hyper Solutions SDK.

The oracle owns no state. Every call is a single asynchronous
request/response; failures are raised as OracleError with no retry.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import structlog

import hyper_sdk

logger = structlog.get_logger()


class OracleError(RuntimeError):
    """An oracle call failed; the held request cannot be rewritten"""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


# Requests


@dataclass
class SensorRequest:
    abck: str
    bmsz: str
    page_url: str
    user_agent: str
    ip: str
    accept_language: str
    context: str
    script: str
    script_url: str
    version: str = "3"


@dataclass
class SbsdRequest:
    index: int
    uuid: str
    cookie: str
    page_url: str
    user_agent: str
    script: str
    ip: str
    accept_language: str


@dataclass
class SliderRequest:
    user_agent: str
    device_link: str
    html: str
    puzzle: str
    piece: str
    parent_url: str
    ip: str
    accept_language: str


@dataclass
class InterstitialRequest:
    user_agent: str
    device_link: str
    html: str
    ip: str
    accept_language: str


@dataclass
class Reese84Request:
    user_agent: str
    ip: str
    accept_language: str
    page_url: str
    script: str
    script_url: str
    # Tenant the configured path belongs to; the reese84 endpoint has no slot
    # for it, so it only selects which submissions get rewritten
    sitekey: Optional[str] = None
    # Proof-of-work is not solved yet; the slot is always sent empty
    pow: str = ""


@dataclass
class UtmvcRequest:
    user_agent: str
    script: str
    session_ids: List[str]


@dataclass
class KasadaRequest:
    user_agent: str
    ips_link: str
    script: str
    ip: str
    accept_language: str


# Results


@dataclass
class SensorResult:
    payload: str
    context: str = ""


@dataclass
class HeaderedPayload:
    payload: str
    headers: Dict[str, str] = field(default_factory=dict)


class Oracle(ABC):
    """One coroutine per scheme sub-protocol"""

    @abstractmethod
    async def generate_sensor(self, request: SensorRequest) -> SensorResult:
        """Akamai: forge sensor data from the raw script; the result context feeds the next call"""

    @abstractmethod
    async def generate_sbsd(self, request: SbsdRequest) -> str:
        """Akamai: forge an SBSD payload"""

    @abstractmethod
    async def generate_slider(self, request: SliderRequest) -> HeaderedPayload:
        """DataDome: solve a slider captcha; payload is the device check link"""

    @abstractmethod
    async def generate_interstitial(self, request: InterstitialRequest) -> HeaderedPayload:
        """DataDome: forge an interstitial submission body"""

    @abstractmethod
    async def generate_reese84(self, request: Reese84Request) -> str:
        """Incapsula: forge a reese84 sensor body"""

    @abstractmethod
    async def generate_utmvc(self, request: UtmvcRequest) -> str:
        """Incapsula: compute a ___utmvc cookie value"""

    @abstractmethod
    async def generate_kasada(self, request: KasadaRequest) -> HeaderedPayload:
        """Kasada: forge /tl headers and a base64 encoded body"""

    async def close(self) -> None:
        """Release any client resources"""


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(name)
    return getattr(raw, name, None)


def _normalize_payload(raw: Any) -> HeaderedPayload:
    """Accept the SDK's result shapes: str, (payload, extra) tuples, dicts, objects"""
    if isinstance(raw, str):
        return HeaderedPayload(payload=raw)

    if isinstance(raw, (tuple, list)):
        if not raw:
            raise ValueError("empty result")
        payload = raw[0]
        headers = next((item for item in raw[1:] if isinstance(item, dict)), {})
        return HeaderedPayload(payload=payload, headers=dict(headers))

    payload = _field(raw, "payload")
    if payload is None:
        raise ValueError(f"result has no payload: {type(raw).__name__}")
    return HeaderedPayload(payload=payload, headers=dict(_field(raw, "headers") or {}))


def _normalize_sensor(raw: Any) -> SensorResult:
    if isinstance(raw, (tuple, list)) and len(raw) >= 2:
        return SensorResult(payload=raw[0], context=raw[1] or "")
    if isinstance(raw, str):
        return SensorResult(payload=raw)
    payload = _field(raw, "payload")
    if payload is None:
        raise ValueError(f"result has no payload: {type(raw).__name__}")
    return SensorResult(payload=payload, context=_field(raw, "context") or "")


class HyperOracle(Oracle):
    """Oracle backed by hyper_sdk.SessionAsync"""

    def __init__(self, api_key: Optional[str] = None, session: Any = None):
        if session is None:
            if not api_key:
                raise ValueError("An oracle API key is required")
            session = hyper_sdk.SessionAsync(api_key)

        self.session = session
        self.logger = logger.bind(component="hyper_oracle")

    async def _call(self, operation: str, call) -> Any:
        try:
            return await call()
        except Exception as e:
            self.logger.error("Oracle call failed", operation=operation, error=str(e))
            raise OracleError(operation, str(e)) from e

    async def generate_sensor(self, request: SensorRequest) -> SensorResult:
        raw = await self._call(
            "akamai.sensor",
            lambda: self.session.generate_sensor_data(hyper_sdk.SensorInput(
                abck=request.abck,
                bmsz=request.bmsz,
                version=request.version,
                page_url=request.page_url,
                user_agent=request.user_agent,
                ip=request.ip,
                accept_language=request.accept_language,
                context=request.context,
                script=request.script,
                script_url=request.script_url,
            ))
        )
        try:
            return _normalize_sensor(raw)
        except ValueError as e:
            raise OracleError("akamai.sensor", str(e)) from e

    async def generate_sbsd(self, request: SbsdRequest) -> str:
        raw = await self._call(
            "akamai.sbsd",
            lambda: self.session.generate_sbsd_data(hyper_sdk.SbsdInput(
                index=request.index,
                uuid=request.uuid,
                o_cookie=request.cookie,
                page_url=request.page_url,
                user_agent=request.user_agent,
                script=request.script,
                ip=request.ip,
                accept_language=request.accept_language,
            ))
        )
        return self._payload("akamai.sbsd", raw).payload

    async def generate_slider(self, request: SliderRequest) -> HeaderedPayload:
        raw = await self._call(
            "datadome.slider",
            lambda: self.session.generate_slider_payload(hyper_sdk.DataDomeSliderInput(
                user_agent=request.user_agent,
                device_link=request.device_link,
                html=request.html,
                puzzle=request.puzzle,
                piece=request.piece,
                parent_url=request.parent_url,
                ip=request.ip,
                accept_language=request.accept_language,
            ))
        )
        return self._payload("datadome.slider", raw)

    async def generate_interstitial(self, request: InterstitialRequest) -> HeaderedPayload:
        raw = await self._call(
            "datadome.interstitial",
            lambda: self.session.generate_interstitial_payload(hyper_sdk.DataDomeInterstitialInput(
                user_agent=request.user_agent,
                device_link=request.device_link,
                html=request.html,
                ip=request.ip,
                accept_language=request.accept_language,
            ))
        )
        return self._payload("datadome.interstitial", raw)

    async def generate_reese84(self, request: Reese84Request) -> str:
        self.logger.debug("Generating reese84 sensor", script_url=request.script_url, sitekey=request.sitekey)
        raw = await self._call(
            "incapsula.reese84",
            lambda: self.session.generate_reese84_sensor(hyper_sdk.ReeseInput(
                user_agent=request.user_agent,
                accept_language=request.accept_language,
                ip=request.ip,
                pageUrl=request.page_url,
                script=request.script,
                script_url=request.script_url,
                pow=request.pow,
            ))
        )
        return self._payload("incapsula.reese84", raw).payload

    async def generate_utmvc(self, request: UtmvcRequest) -> str:
        raw = await self._call(
            "incapsula.utmvc",
            lambda: self.session.generate_utmvc_cookie(hyper_sdk.UtmvcInput(
                user_agent=request.user_agent,
                script=request.script,
                session_ids=request.session_ids,
            ))
        )
        return self._payload("incapsula.utmvc", raw).payload

    async def generate_kasada(self, request: KasadaRequest) -> HeaderedPayload:
        raw = await self._call(
            "kasada.payload",
            lambda: self.session.generate_kasada_payload(hyper_sdk.KasadaPayloadInput(
                user_agent=request.user_agent,
                ips_link=request.ips_link,
                script=request.script,
                ip=request.ip,
                accept_language=request.accept_language,
            ))
        )
        return self._payload("kasada.payload", raw)

    def _payload(self, operation: str, raw: Any) -> HeaderedPayload:
        try:
            return _normalize_payload(raw)
        except ValueError as e:
            raise OracleError(operation, str(e)) from e

    async def close(self) -> None:
        await self.session.close()
