"""
Protection-scheme controllers

Each controller owns its capture record, gates and state machine and is
installed on a page with `initialize(page, context)`.
"""

from .akamai import AkamaiHandler
from .datadome import DataDomeHandler
from .incapsula import IncapsulaHandler, StaticIncapsulaHandler
from .kasada import KasadaHandler

__all__ = [
    "AkamaiHandler",
    "DataDomeHandler",
    "IncapsulaHandler",
    "StaticIncapsulaHandler",
    "KasadaHandler",
]
