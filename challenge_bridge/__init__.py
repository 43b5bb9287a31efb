"""
Challenge Bridge

Intercepts a Playwright browser's traffic, captures anti-bot challenge
artifacts and rewrites outgoing challenge submissions with oracle-forged
payloads for Akamai, DataDome, Incapsula and Kasada.
"""

__version__ = "1.0.0"
