"""
Tests for the Incapsula controllers (dynamic discovery and static sitekey map)
"""

import pytest

from challenge_bridge.interception.capture import ScriptPathState
from challenge_bridge.interception.handlers.incapsula import IncapsulaHandler, StaticIncapsulaHandler
from challenge_bridge.interception.scripts import UTMVC_COOKIE_SUBSTITUTION_SCRIPT
from conftest import FakeRequest, FakeResponse

SCRIPT_URL = "https://shop.example.com/resource/x.js"
SENSOR_URL = "https://shop.example.com/resource/x?d=shop.example.com"
IMPERVA_HEADERS = {"x-cdn": "Imperva", "content-type": "application/javascript; charset=utf-8"}
REESE_SCRIPT = "(function(){ var reese84 = {}; })();"


def reese84_script(url=SCRIPT_URL, headers=None, body=REESE_SCRIPT):
    return FakeResponse(url, headers=headers or IMPERVA_HEADERS, body=body)


def sensor_post(body='{"solution":{"interrogation":{}}}', content_type="application/json; charset=utf-8"):
    return FakeRequest(SENSOR_URL, "POST", {"content-type": content_type}, body)


@pytest.fixture
async def dynamic(oracle, page, context):
    handler = IncapsulaHandler(oracle, ip_address="203.0.113.7")
    await handler.initialize(page, context)
    return handler


@pytest.fixture
async def static(oracle, page, context):
    handler = StaticIncapsulaHandler(oracle, {"/resource": "tenantA"}, ip_address="203.0.113.7")
    await handler.initialize(page, context)
    return handler


class TestDynamicVariant:

    async def test_script_path_discovered(self, dynamic, page):
        await page.emit_response(reese84_script())

        assert dynamic.registry.paths == ["/resource/x.js"]
        entry = dynamic.registry.get("/resource/x.js")
        assert entry.script_url == SCRIPT_URL
        assert entry.script_body == REESE_SCRIPT
        assert entry.state == ScriptPathState.SCRIPT_OBSERVED

    async def test_non_imperva_or_non_reese_scripts_ignored(self, dynamic, page):
        await page.emit_response(reese84_script(headers={"x-cdn": "Akamai", "content-type": "text/javascript"}))
        await page.emit_response(reese84_script(body="var other = 1;"))
        assert len(dynamic.registry) == 0

    async def test_sensor_post_mutated(self, dynamic, oracle, page):
        await page.emit_response(reese84_script())
        route = await page.send(FakeRequest(
            "https://shop.example.com/resource/x.js?d=shop.example.com", "POST", {}, '{"solution":1}'
        ))

        assert route.action == "continue"
        assert route.continue_kwargs["post_data"] == '{"solution":"reese84-payload"}'

        request = oracle.requests("incapsula.reese84")[0]
        assert request.sitekey is None
        assert request.pow == ""
        assert request.script == REESE_SCRIPT
        assert request.script_url == SCRIPT_URL
        assert request.page_url == page.url
        assert dynamic.get_status()["intercepted_paths"] == ["/resource/x.js"]
        assert dynamic.registry.get("/resource/x.js").state == ScriptPathState.OPERATIONAL

    async def test_untracked_path_forwarded(self, dynamic, oracle, page):
        route = await page.send(sensor_post())
        assert route.action == "fallback"
        assert oracle.requests("incapsula.reese84") == []

    async def test_refresh_body_forwarded(self, dynamic, oracle, page):
        await page.emit_response(reese84_script())
        route = await page.send(FakeRequest(
            "https://shop.example.com/resource/x.js?d=shop.example.com", "POST", {}, '"refresh-token"'
        ))
        assert route.action == "fallback"
        assert oracle.requests("incapsula.reese84") == []

    async def test_reset_drops_discovered_paths(self, dynamic, page):
        await page.emit_response(reese84_script())
        dynamic.reset()
        first = dynamic.get_status()
        dynamic.reset()

        assert dynamic.get_status() == first
        assert first["scripts"] == {}
        assert first["intercepted_paths"] == []


class TestStaticVariant:

    async def test_end_to_end_tenant_map(self, static, oracle, page):
        await page.emit_response(reese84_script())
        assert static.registry.find_matching_path(SCRIPT_URL) == "/resource"
        assert static.registry.get("/resource").script_url == SCRIPT_URL

        route = await page.send(sensor_post())

        request = oracle.requests("incapsula.reese84")[0]
        assert request.sitekey == "tenantA"
        assert route.continue_kwargs["post_data"] == '{"solution":"reese84-payload"}'

    async def test_json_post_mutated_text_plain_forwarded(self, static, oracle, page):
        await page.emit_response(reese84_script())

        mutated = await page.send(sensor_post(content_type="application/json"))
        forwarded = await page.send(sensor_post(content_type="text/plain"))

        assert mutated.action == "continue"
        assert forwarded.action == "fallback"
        assert len(oracle.requests("incapsula.reese84")) == 1

    @pytest.mark.parametrize("content_type", ["application/json", "text/plain"])
    async def test_quoted_body_always_forwarded(self, static, oracle, page, content_type):
        await page.emit_response(reese84_script())
        route = await page.send(sensor_post(body='"refresh"', content_type=content_type))

        assert route.action == "fallback"
        assert oracle.requests("incapsula.reese84") == []

    async def test_script_outside_configured_paths_ignored(self, static, page):
        await page.emit_response(reese84_script(url="https://shop.example.com/other/y.js"))
        assert static.registry.paths == ["/resource"]
        assert static.registry.get("/resource").script_url is None

    async def test_configured_path_without_sitekey_forwarded(self, oracle, page, context):
        handler = StaticIncapsulaHandler(oracle, {"/resource": ""})
        await handler.initialize(page, context)

        route = await page.send(sensor_post())
        assert route.action == "fallback"
        assert oracle.requests("incapsula.reese84") == []

    async def test_reset_keeps_tenant_map(self, static, page):
        await page.emit_response(reese84_script())
        await page.send(sensor_post())

        static.reset()
        status = static.get_status()

        assert list(status["scripts"]) == ["/resource"]
        assert status["scripts"]["/resource"]["sitekey"] == "tenantA"
        assert status["scripts"]["/resource"]["script_url"] is None
        assert status["intercepted_paths"] == []


async def test_utmvc_resource_computes_cookie_and_arms_substitution(dynamic, oracle, page, context):
    context.add_cookie("incap_ses_123_456", "session-a")
    context.add_cookie("visid_incap_456", "visitor")
    context.add_cookie("incap_ses_789_456", "session-b")
    fetched = FakeResponse("https://shop.example.com/_Incapsula_Resource?SWJIYLWA=719d34d31c8e3a6e6fffd425f7e032f3",
                           body="var utmvc_script = 1;")

    route = await page.send(
        FakeRequest("https://shop.example.com/_Incapsula_Resource?SWJIYLWA=719d34d31c8e3a6e6fffd425f7e032f3"),
        fetch_response=fetched
    )

    request = oracle.requests("incapsula.utmvc")[0]
    assert request.session_ids == ["session-a", "session-b"]
    assert request.script == "var utmvc_script = 1;"
    assert (UTMVC_COOKIE_SUBSTITUTION_SCRIPT, "utmvc-value") in page.evaluations
    assert route.action == "fulfill"
    assert route.fulfill_kwargs == {"response": fetched}
    assert dynamic.get_status()["utmvc"] == "utmvc-value"


class UndecodableRequest(FakeRequest):
    @property
    def post_data(self):
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

    @post_data.setter
    def post_data(self, value):
        pass


async def test_undecodable_sensor_body_is_forwarded(dynamic, oracle, page):
    await page.emit_response(reese84_script())
    route = await page.send(UndecodableRequest("https://shop.example.com/resource/x.js?d=1", "POST"))

    assert route.action == "fallback"
    assert oracle.requests("incapsula.reese84") == []
    assert dynamic.get_stats()["malformed"] == 1
