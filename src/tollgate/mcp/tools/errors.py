"""Shared error payloads for MCP tools."""
from typing import Any, Dict

from tollgate.exceptions import PolicyViolation


def error_payload(error_type: str, message: str, **extra: Any) -> Dict[str, Any]:
    payload = {"status": "error", "error_type": error_type, "message": message}
    payload.update({k: v for k, v in extra.items() if v is not None})
    return payload


def rejected_payload(e: PolicyViolation) -> Dict[str, Any]:
    return {
        "status": "rejected",
        "reason": e.reason,
        "paths": e.paths,
        "message": str(e),
    }
