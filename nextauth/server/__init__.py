"""
Flow dispatcher and the per-action handlers it routes to.
"""

from .handler import handle
from .types import InternalOptions, InternalRequest, InternalResponse

__all__ = ["handle", "InternalOptions", "InternalRequest", "InternalResponse"]
