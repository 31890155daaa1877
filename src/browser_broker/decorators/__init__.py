# browser_broker/decorators/__init__.py
#
# Re-exports decorators from their respective modules.

from .ensure import ensure_broker_ready
from .envelope import tool_envelope

__all__ = [
    "ensure_broker_ready",
    "tool_envelope",
]
