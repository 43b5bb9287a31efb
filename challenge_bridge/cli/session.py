"""
Interception Session Runner
Launches a browser, installs the enabled controllers and reports their status
"""

import asyncio
from typing import Dict, List, Optional
import structlog
from playwright.async_api import async_playwright
from rich.console import Console
from rich.table import Table

from challenge_bridge.core.config import ApplicationConfig
from challenge_bridge.interception.handler import ChallengeHandler
from challenge_bridge.interception.handlers import (
    AkamaiHandler,
    DataDomeHandler,
    IncapsulaHandler,
    StaticIncapsulaHandler,
    KasadaHandler,
)
from challenge_bridge.interception.ip import IpLookupError, fetch_ip_address_with_browser
from challenge_bridge.interception.oracle import HyperOracle, Oracle

logger = structlog.get_logger()
console = Console()


def build_handlers(
    config: ApplicationConfig,
    oracle: Oracle,
    schemes: List[str],
    ip_address: Optional[str] = None
) -> Dict[str, ChallengeHandler]:
    """Create one controller per enabled scheme, in the order given"""
    identity = dict(
        ip_address=ip_address,
        user_agent=config.browser.user_agent,
        accept_language=config.browser.accept_language,
    )

    handlers: Dict[str, ChallengeHandler] = {}
    for scheme in schemes:
        if scheme == "akamai":
            handlers[scheme] = AkamaiHandler(oracle, **identity)
        elif scheme == "datadome":
            handlers[scheme] = DataDomeHandler(oracle, **identity)
        elif scheme == "incapsula":
            sitekeys = config.schemes.incapsula_sitekeys
            if sitekeys:
                handlers[scheme] = StaticIncapsulaHandler(oracle, sitekeys, **identity)
            else:
                handlers[scheme] = IncapsulaHandler(oracle, **identity)
        elif scheme == "kasada":
            handlers[scheme] = KasadaHandler(
                oracle,
                identifier_path=config.schemes.kasada_identifier_path,
                **identity
            )
        else:
            raise ValueError(f"Unknown scheme: {scheme}")

    return handlers


def render_status_table(handlers: Dict[str, ChallengeHandler]) -> Table:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Scheme", style="cyan", width=12)
    table.add_column("State", width=40)
    table.add_column("Mutated", justify="right")
    table.add_column("Forwarded", justify="right")
    table.add_column("Fulfilled", justify="right")
    table.add_column("Errors", justify="right")

    for scheme, handler in handlers.items():
        status = handler.get_status()
        stats = handler.get_stats()
        state = status.get("state")
        if state is None and "intercepted_paths" in status:
            state = f"intercepted: {', '.join(status['intercepted_paths']) or '-'}"
        if isinstance(state, dict):
            state = ", ".join(f"{key}={value}" for key, value in state.items())

        errors = stats["errors"]
        table.add_row(
            scheme,
            str(state),
            str(stats["requests_mutated"]),
            str(stats["requests_forwarded"]),
            str(stats["requests_fulfilled"]),
            f"[red]{errors}[/red]" if errors else "0",
        )

    return table


async def run_session(
    config: ApplicationConfig,
    url: str,
    schemes: Optional[List[str]] = None,
    headless: Optional[bool] = None,
    hold_seconds: Optional[float] = None
) -> int:
    """
    Open `url` with the enabled controllers installed

    Returns:
        Process exit code
    """
    schemes = schemes or config.schemes.enabled_schemes
    headless = config.browser.headless if headless is None else headless
    hold_seconds = config.browser.hold_seconds if hold_seconds is None else hold_seconds

    api_key = config.resolve_api_key()
    if not api_key:
        console.print("[red]No oracle API key configured[/red]")
        console.print("  Set HYPER_API_KEY or run: python main.py --set-api-key hyper <key>")
        return 1

    oracle = HyperOracle(api_key)
    try:
        async with async_playwright() as p:
            launch_kwargs = {"headless": headless}
            if config.browser.browser_channel:
                launch_kwargs["channel"] = config.browser.browser_channel
            browser = await p.chromium.launch(**launch_kwargs)

            context_options = {}
            if config.browser.user_agent:
                context_options["user_agent"] = config.browser.user_agent
            context = await browser.new_context(**context_options)
            page = await context.new_page()

            ip_address = config.browser.ip_address
            if not ip_address:
                try:
                    ip_address = await fetch_ip_address_with_browser(
                        page, api_key, config.oracle.ip_lookup_url
                    )
                except IpLookupError as e:
                    logger.warning("Continuing without a resolved IP", error=str(e))

            handlers = build_handlers(config, oracle, schemes, ip_address)
            for handler in handlers.values():
                await handler.initialize(page, context)

            logger.info("Navigating", url=url, schemes=list(handlers))
            await page.goto(url)
            await asyncio.sleep(hold_seconds)

            console.print(render_status_table(handlers))

            await context.close()
            await browser.close()
    finally:
        await oracle.close()

    return 0


def run_session_command(config: ApplicationConfig, url: str, **kwargs) -> int:
    """CLI command to run an interception session"""
    return asyncio.run(run_session(config, url, **kwargs))
