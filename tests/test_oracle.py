"""
Tests for the Hyper Solutions oracle binding

The session is faked method-by-method under the SDK's own names, while the
input objects are the real hyper_sdk classes, so a wrong keyword or a
missing method fails here rather than against the live service.
"""

import hyper_sdk
import pytest

from challenge_bridge.interception.oracle import (
    HyperOracle,
    InterstitialRequest,
    KasadaRequest,
    OracleError,
    Reese84Request,
    SbsdRequest,
    SensorRequest,
    SliderRequest,
    UtmvcRequest,
    _normalize_payload,
    _normalize_sensor,
)

IP = "203.0.113.7"
LANGUAGE = "en-US,en;q=0.9"


class FakeSession:
    """Answers each SDK method with the shape hyper-sdk 3.0 returns"""

    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.calls = []
        self.closed = False

    async def _respond(self, method, data):
        self.calls.append((method, data))
        if self.error:
            raise self.error
        return self.results[method]

    async def generate_sensor_data(self, data):
        return await self._respond("generate_sensor_data", data)

    async def generate_sbsd_data(self, data):
        return await self._respond("generate_sbsd_data", data)

    async def generate_slider_payload(self, data):
        return await self._respond("generate_slider_payload", data)

    async def generate_interstitial_payload(self, data):
        return await self._respond("generate_interstitial_payload", data)

    async def generate_reese84_sensor(self, data):
        return await self._respond("generate_reese84_sensor", data)

    async def generate_utmvc_cookie(self, data):
        return await self._respond("generate_utmvc_cookie", data)

    async def generate_kasada_payload(self, data):
        return await self._respond("generate_kasada_payload", data)

    async def close(self):
        self.closed = True


def slider_request():
    return SliderRequest(
        user_agent="ua",
        device_link="https://geo.captcha-delivery.com/captcha/?initialCid=abc",
        html="<html></html>",
        puzzle="cHV6emxl",
        piece="cGllY2U=",
        parent_url="https://shop.example.com/",
        ip=IP,
        accept_language=LANGUAGE,
    )


def reese84_request(sitekey=None):
    return Reese84Request(
        user_agent="ua",
        ip=IP,
        accept_language=LANGUAGE,
        page_url="https://shop.example.com/",
        script="var reese84",
        script_url="https://shop.example.com/resource/x.js",
        sitekey=sitekey,
    )


async def test_sensor_sends_raw_script_and_unpacks_context():
    session = FakeSession({"generate_sensor_data": ("sensor-body", "ctx-next")})
    oracle = HyperOracle(session=session)

    result = await oracle.generate_sensor(SensorRequest(
        abck="abck",
        bmsz="bmsz",
        page_url="https://shop.example.com/",
        user_agent="ua",
        ip=IP,
        accept_language=LANGUAGE,
        context="ctx-prev",
        script="var _cf = [];",
        script_url="https://shop.example.com/CKo1/13Fb",
    ))

    assert result.payload == "sensor-body"
    assert result.context == "ctx-next"

    method, data = session.calls[0]
    assert method == "generate_sensor_data"
    assert isinstance(data, hyper_sdk.SensorInput)
    assert data.version == "3"
    assert data.script == "var _cf = [];"
    assert data.script_url == "https://shop.example.com/CKo1/13Fb"
    assert data.context == "ctx-prev"


async def test_sbsd_returns_payload_from_tuple():
    session = FakeSession({"generate_sbsd_data": ("sbsd-body", "sbsd-ctx")})
    oracle = HyperOracle(session=session)

    payload = await oracle.generate_sbsd(SbsdRequest(
        index=2,
        uuid="0a1b2c3d-4e5f-6789-abcd-ef0123456789",
        cookie="sbsd-cookie",
        page_url="https://shop.example.com/",
        user_agent="ua",
        script="(function sbsd(){})()",
        ip=IP,
        accept_language=LANGUAGE,
    ))

    assert payload == "sbsd-body"
    data = session.calls[0][1]
    assert isinstance(data, hyper_sdk.SbsdInput)
    assert data.index == 2
    assert data.o_cookie == "sbsd-cookie"


async def test_slider_result_with_headers():
    session = FakeSession({"generate_slider_payload": {"payload": "https://check", "headers": {"x-dd": "1"}}})
    oracle = HyperOracle(session=session)

    result = await oracle.generate_slider(slider_request())

    assert result.payload == "https://check"
    assert result.headers == {"x-dd": "1"}
    data = session.calls[0][1]
    assert isinstance(data, hyper_sdk.DataDomeSliderInput)
    assert data.parent_url == "https://shop.example.com/"


async def test_interstitial_builds_sdk_input():
    session = FakeSession({"generate_interstitial_payload": {"payload": "a=b", "headers": {}}})
    oracle = HyperOracle(session=session)

    result = await oracle.generate_interstitial(InterstitialRequest(
        user_agent="ua",
        device_link="https://geo.captcha-delivery.com/interstitial/?initialCid=abc",
        html="<html></html>",
        ip=IP,
        accept_language=LANGUAGE,
    ))

    assert result.payload == "a=b"
    assert isinstance(session.calls[0][1], hyper_sdk.DataDomeInterstitialInput)


async def test_reese84_sends_empty_pow():
    session = FakeSession({"generate_reese84_sensor": "sensor-body"})
    oracle = HyperOracle(session=session)

    payload = await oracle.generate_reese84(reese84_request())

    assert payload == "sensor-body"
    data = session.calls[0][1]
    assert isinstance(data, hyper_sdk.ReeseInput)
    assert data.pow == ""
    assert data.pageUrl == "https://shop.example.com/"


async def test_reese84_with_sitekey_builds_sdk_input():
    session = FakeSession({"generate_reese84_sensor": "sensor-body"})
    oracle = HyperOracle(session=session)

    payload = await oracle.generate_reese84(reese84_request(sitekey="tenantA"))

    assert payload == "sensor-body"
    data = session.calls[0][1]
    assert isinstance(data, hyper_sdk.ReeseInput)
    assert not hasattr(data, "sitekey")


async def test_utmvc_drops_swhanedl():
    session = FakeSession({"generate_utmvc_cookie": ("utmvc-cookie", "swhanedl-value")})
    oracle = HyperOracle(session=session)

    value = await oracle.generate_utmvc(UtmvcRequest(user_agent="ua", script="var x", session_ids=["s1", "s2"]))

    assert value == "utmvc-cookie"
    data = session.calls[0][1]
    assert isinstance(data, hyper_sdk.UtmvcInput)
    assert data.session_ids == ["s1", "s2"]


async def test_kasada_unpacks_payload_and_headers():
    headers = {"x-kpsdk-ct": "ct", "x-kpsdk-cd": "cd"}
    session = FakeSession({"generate_kasada_payload": ("Ym9keQ==", headers)})
    oracle = HyperOracle(session=session)

    result = await oracle.generate_kasada(KasadaRequest(
        user_agent="ua",
        ips_link="https://shop.example.com/149e9513-01fa-4fb0-aad4-566afd725d1b/ips.js",
        script="ips()",
        ip=IP,
        accept_language=LANGUAGE,
    ))

    assert result.payload == "Ym9keQ=="
    assert result.headers == headers
    assert isinstance(session.calls[0][1], hyper_sdk.KasadaPayloadInput)


async def test_sdk_failure_becomes_oracle_error():
    oracle = HyperOracle(session=FakeSession(error=RuntimeError("quota exceeded")))

    with pytest.raises(OracleError) as excinfo:
        await oracle.generate_slider(slider_request())
    assert excinfo.value.operation == "datadome.slider"
    assert "quota exceeded" in str(excinfo.value)


async def test_result_without_payload_is_an_oracle_error():
    oracle = HyperOracle(session=FakeSession({"generate_slider_payload": {"headers": {}}}))

    with pytest.raises(OracleError):
        await oracle.generate_slider(slider_request())


async def test_close_releases_session():
    session = FakeSession()
    await HyperOracle(session=session).close()
    assert session.closed


def test_api_key_required_without_session():
    with pytest.raises(ValueError):
        HyperOracle()


def test_real_session_exposes_every_called_method():
    session = hyper_sdk.SessionAsync("test-key")
    for name in (
        "generate_sensor_data",
        "generate_sbsd_data",
        "generate_slider_payload",
        "generate_interstitial_payload",
        "generate_reese84_sensor",
        "generate_utmvc_cookie",
        "generate_kasada_payload",
        "close",
    ):
        assert callable(getattr(session, name)), name


def test_normalize_shapes():
    assert _normalize_payload("p").payload == "p"
    assert _normalize_payload(("p", {"h": "v"})).headers == {"h": "v"}
    assert _normalize_payload(("cookie", "swhanedl")).payload == "cookie"
    assert _normalize_sensor(("sensor", "ctx")).context == "ctx"
    assert _normalize_sensor({"payload": "sensor", "context": None}).context == ""