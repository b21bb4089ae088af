"""Rubrik CDM bootstrap SDK."""

from pypolaris.cdm.cdm import CDM, CDMOptions
from pypolaris.core.context import Context

__version__ = "0.1.0"

__all__ = ["CDM", "CDMOptions", "Context", "__version__"]
