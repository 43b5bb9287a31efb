"""
Public IP discovery through the browser

The oracle needs the IP the target sees, so the lookup runs from inside the
page and therefore goes through whatever proxy the browser uses.
"""

from typing import Any
import structlog

logger = structlog.get_logger()

DEFAULT_IP_LOOKUP_URL = "https://ip.hypersolutions.co/ip"

_IP_LOOKUP_SCRIPT = """
async ([url, apiKey]) => {
    const response = await fetch(url, {
        method: 'GET',
        headers: {'x-api-key': apiKey, 'Content-Type': 'application/json'}
    });
    if (!response.ok) {
        return {error: response.status};
    }
    return await response.json();
}
"""


class IpLookupError(RuntimeError):
    """The in-page IP lookup returned an error status or no address"""


async def fetch_ip_address_with_browser(
    page: Any,
    api_key: str,
    lookup_url: str = DEFAULT_IP_LOOKUP_URL
) -> str:
    """
    Resolve the browser's public IP address

    Args:
        page: Playwright page to run the lookup in
        api_key: Oracle API key, sent as x-api-key
        lookup_url: IP echo endpoint

    Returns:
        The IP address string
    """
    result = await page.evaluate(_IP_LOOKUP_SCRIPT, [lookup_url, api_key])

    if not isinstance(result, dict) or "error" in result:
        status = result.get("error") if isinstance(result, dict) else None
        logger.error("IP lookup failed", component="ip_lookup", status=status)
        raise IpLookupError(f"IP lookup failed with status {status}")

    ip = result.get("ip")
    if not ip:
        raise IpLookupError("IP lookup response has no 'ip' field")

    logger.info("Resolved public IP through browser", component="ip_lookup", ip=ip)
    return ip
