"""
taiscam: configure, build and run TaiESM1 single-column (SCAM) cases
under Slurm.
"""

from . import config
from . import exceptions
from ._core import ScamCase, Stage
from .case import ResolvedCase, resolve_case
from .catalog import load_catalog

__all__ = [
    "ScamCase",
    "Stage",
    "ResolvedCase",
    "resolve_case",
    "load_catalog",
    "config",
    "exceptions",
]
