"""
In-memory stand-ins for the Playwright page/context/route surface and the oracle
"""

import base64
import re
from collections import defaultdict

import pytest

from challenge_bridge.interception.oracle import (
    HeaderedPayload,
    Oracle,
    OracleError,
    SensorResult,
)
from challenge_bridge.interception.scripts import PARENT_URL_SCRIPT, USER_AGENT_SCRIPT

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
KASADA_BODY = b"\x00\x01kasada-tl-body"


class FakeRequest:
    def __init__(self, url, method="GET", headers=None, post_data=None):
        self.url = url
        self.method = method
        self.headers = dict(headers or {})
        self.post_data = post_data


class FakeResponse:
    def __init__(self, url, method="GET", status=200, headers=None, body=b""):
        self.url = url
        self.request = FakeRequest(url, method)
        self.status = status
        self.headers = dict(headers or {})
        self._body = body.encode("utf-8") if isinstance(body, str) else body

    @property
    def ok(self):
        return 200 <= self.status < 300

    async def body(self):
        return self._body

    async def text(self):
        return self._body.decode("utf-8")


class FakeRoute:
    """Records how a handler settled the request"""

    def __init__(self, request, fetch_response=None):
        self.request = request
        self.action = None
        self.continue_kwargs = None
        self.fulfill_kwargs = None
        self._fetch_response = fetch_response

    async def continue_(self, **kwargs):
        self.action = "continue"
        self.continue_kwargs = kwargs

    async def fallback(self, **kwargs):
        self.action = "fallback"

    async def fulfill(self, **kwargs):
        self.action = "fulfill"
        self.fulfill_kwargs = kwargs

    async def fetch(self):
        return self._fetch_response


class FakeFrame:
    def __init__(self, url, parent_url="https://shop.example.com/checkout"):
        self.url = url
        self.parent_url = parent_url
        self.evaluations = []

    async def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        if script == PARENT_URL_SCRIPT:
            return self.parent_url
        return True


def _route_matches(pattern, url):
    if isinstance(pattern, re.Pattern):
        return pattern.search(url) is not None
    if callable(pattern):
        return pattern(url)
    return pattern == url


class FakeEmitter:
    def __init__(self):
        self.listeners = defaultdict(list)

    def on(self, event, callback):
        self.listeners[event].append(callback)

    async def emit_response(self, response):
        for callback in list(self.listeners["response"]):
            await callback(response)


class FakeContext(FakeEmitter):
    def __init__(self):
        super().__init__()
        self.cookie_jar = []
        self.pages = []

    def add_cookie(self, name, value):
        self.cookie_jar.append({"name": name, "value": value, "domain": ".example.com", "path": "/"})

    async def cookies(self):
        return [dict(cookie) for cookie in self.cookie_jar]


class FakePage(FakeEmitter):
    def __init__(self, context, url="https://shop.example.com/"):
        super().__init__()
        self.context = context
        self.url = url
        self.routes = []
        self.frames = [FakeFrame(url)]
        self.extra_headers = []
        self.evaluations = []
        self.evaluate_result = True
        context.pages.append(self)

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def set_extra_http_headers(self, headers):
        self.extra_headers.append(dict(headers))

    async def evaluate(self, script, arg=None):
        self.evaluations.append((script, arg))
        if script == USER_AGENT_SCRIPT:
            return USER_AGENT
        return self.evaluate_result

    async def send(self, request, fetch_response=None):
        """Dispatch like Playwright: newest matching route first, fallback moves on"""
        route = FakeRoute(request, fetch_response)
        for pattern, handler in reversed(self.routes):
            if not _route_matches(pattern, request.url):
                continue
            route = FakeRoute(request, fetch_response)
            await handler(route)
            if route.action != "fallback":
                return route
        return route


class FakeOracle(Oracle):
    """Records every call and returns canned payloads"""

    def __init__(self):
        self.calls = []
        self.failing = set()
        self.sensor_contexts = iter(f"ctx-{i}" for i in range(1, 100))

    def _record(self, operation, request):
        self.calls.append((operation, request))
        if operation in self.failing:
            raise OracleError(operation, "simulated failure")

    def requests(self, operation):
        return [request for op, request in self.calls if op == operation]

    async def generate_sensor(self, request):
        self._record("akamai.sensor", request)
        return SensorResult(payload="sensor-payload", context=next(self.sensor_contexts))

    async def generate_sbsd(self, request):
        self._record("akamai.sbsd", request)
        return f"sbsd-payload-{request.index}"

    async def generate_slider(self, request):
        self._record("datadome.slider", request)
        return HeaderedPayload(
            payload="https://geo.captcha-delivery.com/captcha/check?cid=abc",
            headers={"x-datadome-client": "slider"}
        )

    async def generate_interstitial(self, request):
        self._record("datadome.interstitial", request)
        return HeaderedPayload(payload="payload=interstitial", headers={"x-datadome-client": "interstitial"})

    async def generate_reese84(self, request):
        self._record("incapsula.reese84", request)
        return '{"solution":"reese84-payload"}'

    async def generate_utmvc(self, request):
        self._record("incapsula.utmvc", request)
        return "utmvc-value"

    async def generate_kasada(self, request):
        self._record("kasada.payload", request)
        return HeaderedPayload(
            payload=base64.b64encode(KASADA_BODY).decode("ascii"),
            headers={"X-KPSDK-CT": "forged-ct", "X-KPSDK-CD": "forged-cd", "X-KPSDK-H": "ignored"}
        )


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def context():
    return FakeContext()


@pytest.fixture
def page(context):
    return FakePage(context)
