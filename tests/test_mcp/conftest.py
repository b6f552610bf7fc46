"""Shared fixtures for MCP tests."""
import json

import pytest
import pytest_asyncio

from tollgate.mcp import create_server
from tollgate.mcp.pipeline_manager import reset_pipeline, set_pipeline
from tollgate.pipeline import Pipeline

from ..conftest import make_settings


def unwrap_result(result):
    """
    Normalize FastMCP CallToolResult to plain Python data.

    Prefers structured_content (unwrapped if FastMCP wraps under 'result'),
    otherwise falls back to parsing text content when available.
    """
    structured = getattr(result, "structured_content", None)
    if structured is not None:
        if isinstance(structured, dict) and "result" in structured:
            return structured["result"]
        return structured

    content = getattr(result, "content", None) or []
    texts = [getattr(block, "text", None) for block in content if getattr(block, "text", None)]
    if len(texts) == 1:
        text = texts[0]
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    if texts:
        return texts

    return result


@pytest.fixture(autouse=True)
def clean_pipeline(temp_dir, monkeypatch):
    """Forget the cached pipeline and isolate config discovery."""
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", str(temp_dir))
    monkeypatch.delenv("TOLLGATE_CONFIG", raising=False)
    monkeypatch.delenv("TOLLGATE_STAGING_PATH", raising=False)
    monkeypatch.delenv("TOLLGATE_PRODUCTION_PATH", raising=False)
    reset_pipeline()
    yield
    reset_pipeline()


@pytest.fixture
def pipeline(remotes):
    """A pipeline over the throwaway remotes, installed for the tools."""
    built = Pipeline.from_settings(make_settings(remotes))
    set_pipeline(built)
    return built


@pytest.fixture
def staging_only_pipeline(remotes):
    built = Pipeline.from_settings(make_settings(remotes, repository={"production_path": None}))
    set_pipeline(built)
    return built


@pytest.fixture(scope="session")
def mcp_server():
    """Create an MCP server instance for testing."""
    return create_server()


@pytest_asyncio.fixture
async def mcp_client(mcp_server):
    """Async FastMCP client connected to in-process server."""
    from fastmcp import Client

    client = Client(mcp_server)
    async with client:
        yield client
