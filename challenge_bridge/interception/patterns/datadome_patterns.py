"""
DataDome traffic signatures

Slider captcha images and pages come from the captcha delivery hosts; the
interstitial challenge posts its answer back to the same delivery host.
"""

import re

from .base import TrafficSignature

DELIVERY_DOMAIN = "captcha-delivery.com"
IMAGE_HOST = "dd.prod.captcha-delivery.com"
PAGE_HOST = "geo.captcha-delivery.com"
INTERSTITIAL_SUBMIT_URL = "https://geo.captcha-delivery.com/interstitial/"


class DataDomePatterns:
    """Signatures for DataDome slider and interstitial traffic"""

    puzzle_image = TrafficSignature(
        name="datadome_puzzle_image",
        url_pattern=re.compile(re.escape(IMAGE_HOST) + r'/image/[^?#]*\.jpg', re.IGNORECASE)
    )

    piece_image = TrafficSignature(
        name="datadome_piece_image",
        url_pattern=re.compile(re.escape(IMAGE_HOST) + r'/image/[^?#]*\.frag\.png', re.IGNORECASE)
    )

    captcha_page = TrafficSignature(
        name="datadome_captcha_page",
        url_pattern=re.compile(re.escape(PAGE_HOST) + r'/captcha/\?(?:[^#]*&)?initialCid=')
    )

    interstitial_page = TrafficSignature(
        name="datadome_interstitial_page",
        url_pattern=re.compile(re.escape(PAGE_HOST) + r'/interstitial/\?(?:[^#]*&)?initialCid=')
    )

    interstitial_submit_route = re.compile(
        r'^' + re.escape(INTERSTITIAL_SUBMIT_URL) + r'(?:\?[^#]*)?$'
    )

    interstitial_submit = TrafficSignature(
        name="datadome_interstitial_submit",
        method="POST",
        url_pattern=interstitial_submit_route
    )

    def is_puzzle_image(self, url: str) -> bool:
        return self.puzzle_image.matches(url, "GET")

    def is_piece_image(self, url: str) -> bool:
        return self.piece_image.matches(url, "GET")

    def is_captcha_page(self, url: str) -> bool:
        return self.captcha_page.matches(url, "GET")

    def is_interstitial_page(self, url: str) -> bool:
        return self.interstitial_page.matches(url, "GET")

    def is_interstitial_submit(self, url: str, method: str) -> bool:
        return self.interstitial_submit.matches(url, method)

    def is_delivery_frame(self, url: str) -> bool:
        return DELIVERY_DOMAIN in url
