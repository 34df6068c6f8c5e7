"""Tool system for the desktop agent.

Provides:
- Tool catalog with per-tool argument models
- Local backend implementing the tools on this machine
"""

from .catalog import (
    DEFAULT_TOOL_SPECS,
    ToolCatalog,
    ToolSpec,
)
from .local_backend import LocalToolBackend

__all__ = [
    "DEFAULT_TOOL_SPECS",
    "ToolCatalog",
    "ToolSpec",
    "LocalToolBackend",
]
