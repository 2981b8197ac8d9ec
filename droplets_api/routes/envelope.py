"""Response envelope shared by every JSON endpoint."""

from typing import Any


def ok(data: Any = None) -> dict[str, Any]:
    """Success envelope: ``{"success": true, "data": ...}``."""
    return {"success": True, "data": data}
