"""Promotion tools - staging to production."""
import asyncio
from typing import Optional

from tollgate.events import LoggingSink
from tollgate.exceptions import ConfigError, GitCommandError

from ..pipeline_manager import get_pipeline
from .errors import error_payload


def _manager():
    return get_pipeline().promotion


def register(mcp):
    @mcp.tool()
    def promotion_diff() -> dict:
        """
        Compare staging with production.

        Returns:
            dict with ahead_count, behind_count, commits[] and files[]
            (path, status added|modified|deleted, additions, deletions)
        """
        try:
            diff = _manager().get_diff()
        except ConfigError as e:
            return error_payload("config_error", str(e))
        except GitCommandError as e:
            return error_payload("git_error", str(e))
        return {"status": "ok", **diff.model_dump(mode="json")}

    @mcp.tool()
    def promotion_check() -> dict:
        """
        Run promotion safety checks without promoting.

        Returns:
            dict with passed and every violated condition in issues[]
        """
        try:
            result = _manager().run_safety_checks()
        except ConfigError as e:
            return error_payload("config_error", str(e))
        return {"status": "ok" if result.passed else "error", **result.model_dump(mode="json")}

    @mcp.tool()
    async def promote(performed_by: str, message: Optional[str] = None) -> dict:
        """
        Promote staging to production: safety checks, merge --no-ff, push.

        Args:
            performed_by: Who is promoting (recorded in the merge commit)
            message: Optional merge commit title

        Returns:
            dict with status, message, kind on failure, and the promotion
            record on success. fatal=true needs an operator.
        """
        try:
            manager = _manager()
        except ConfigError as e:
            return error_payload("config_error", str(e))
        result = await asyncio.to_thread(manager.promote, performed_by, message, LoggingSink())
        payload = result.model_dump(mode="json")
        payload["status"] = "ok" if result.success else "error"
        payload["fatal"] = result.fatal
        return payload

    @mcp.tool()
    def promotion_history(limit: int = 20) -> dict:
        """
        Recent production commits, newest first, with promotions flagged.

        Args:
            limit: Maximum number of commits
        """
        try:
            entries = _manager().get_history(limit)
        except ConfigError as e:
            return error_payload("config_error", str(e))
        except GitCommandError as e:
            return error_payload("git_error", str(e))
        return {"status": "ok", "history": [entry.model_dump(mode="json") for entry in entries]}
