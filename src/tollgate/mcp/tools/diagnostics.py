"""Diagnostics and health check tools."""
import shutil
import sys
from datetime import datetime

from tollgate import __version__
from tollgate.exceptions import ConfigError

from ..pipeline_manager import get_pipeline

CAPABILITIES = [
    "classify",
    "apply",
    "status",
    "promotion",
]


def register(mcp):
    @mcp.tool()
    def health_check() -> dict:
        """
        Check MCP server health and pipeline configuration.

        Returns:
            dict with:
            - status: "healthy" if the server is functioning
            - version: Tollgate version
            - git_available: whether the git executable is on PATH
            - pipeline: staging/production paths and state, or the config error
            - recommendations: Suggested actions
        """
        recommendations = []
        git_available = shutil.which("git") is not None
        if not git_available:
            recommendations.append("Install git; every pipeline operation needs it.")

        pipeline_info = {"configured": False}
        try:
            pipeline = get_pipeline()
            pipeline_info = {"configured": True, **pipeline.status()}
            if pipeline.production is None:
                recommendations.append("Set repository.production_path to enable promotion.")
        except ConfigError as e:
            pipeline_info["error"] = str(e)
            recommendations.append("Create tollgate.toml or set TOLLGATE_STAGING_PATH.")

        return {
            "status": "healthy",
            "version": __version__,
            "python_version": sys.version.split()[0],
            "timestamp": datetime.now().isoformat(),
            "git_available": git_available,
            "pipeline": pipeline_info,
            "capabilities": CAPABILITIES,
            "recommendations": recommendations,
        }
