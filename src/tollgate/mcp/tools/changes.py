"""Modification tools - the change-producer's entry point."""
import asyncio
from typing import Any, Dict, List

from pydantic import ValidationError

from tollgate.config import load_settings
from tollgate.events import LoggingSink
from tollgate.exceptions import ConfigError, GitCommandError, PolicyViolation
from tollgate.mutation import ProtectionPolicy
from tollgate.schemas import ModificationRequest

from ..pipeline_manager import get_pipeline
from .errors import error_payload, rejected_payload


def register(mcp):
    @mcp.tool()
    def classify_paths(paths: List[str]) -> dict:
        """
        Classify paths as ordinary, sensitive or protected.

        Protected paths are rejected by apply_changes; sensitive paths are
        allowed but flagged. Check before proposing changes.

        Args:
            paths: Paths relative to the working tree root

        Returns:
            dict with status and, per path, its class and matching patterns
        """
        try:
            settings = load_settings()
        except ConfigError as e:
            return error_payload("config_error", str(e))
        policy = ProtectionPolicy.from_settings(settings.mutation)
        return {"status": "ok", "paths": [policy.explain(p) for p in paths]}

    @mcp.tool()
    async def apply_changes(
        description: str,
        file_changes: List[Dict[str, Any]],
        skip_tests: bool = False,
    ) -> dict:
        """
        Apply file changes to staging: write atomically, migrate if the
        schema changed, commit, then gate on tests (reverting on failure).

        Args:
            description: What the change does; becomes the commit message
            file_changes: [{path, newContent, createIfMissing}] with full file contents
            skip_tests: Commit without running the test gate

        Returns:
            dict with status ("ok", "error" or "rejected") plus the result.
            "rejected" means a protected or out-of-tree path was targeted
            and nothing was touched; resubmit without those paths.
        """
        try:
            request = ModificationRequest.model_validate(
                {"description": description, "file_changes": file_changes, "skip_tests": skip_tests}
            )
        except ValidationError as e:
            return error_payload("invalid_request", str(e))

        try:
            pipeline = get_pipeline()
        except ConfigError as e:
            return error_payload("config_error", str(e))

        try:
            result = await asyncio.wrap_future(pipeline.submit(request, LoggingSink()))
        except PolicyViolation as e:
            return rejected_payload(e)

        payload = result.model_dump(mode="json")
        payload["status"] = "ok" if result.success else "error"
        payload["fatal"] = result.fatal
        return payload

    @mcp.tool()
    def repository_status() -> dict:
        """
        Show the staging working copy status and pipeline state.

        Returns:
            dict with status, repository (branch, changed paths, ahead/behind)
            and pipeline (state, busy, backups)
        """
        try:
            pipeline = get_pipeline()
            repo_status = pipeline.staging.status()
        except ConfigError as e:
            return error_payload("config_error", str(e))
        except GitCommandError as e:
            return error_payload("git_error", str(e))
        return {
            "status": "ok",
            "repository": repo_status.model_dump(mode="json"),
            "pipeline": pipeline.status(),
        }
