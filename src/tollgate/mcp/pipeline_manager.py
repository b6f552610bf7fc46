"""Pipeline lifecycle for the MCP server - lazy build, cached per process."""
import threading
from typing import Optional

from loguru import logger

from tollgate.config import load_settings
from tollgate.pipeline import Pipeline

_pipeline: Optional[Pipeline] = None
_lock = threading.Lock()


def get_pipeline() -> Pipeline:
    """
    Build the pipeline on first use from the discovered configuration.

    Raises:
        ConfigError: If configuration is missing or invalid
    """
    global _pipeline
    with _lock:
        if _pipeline is None:
            _pipeline = Pipeline.from_settings(load_settings())
            logger.info(f"MCP pipeline ready for {_pipeline.staging.path}")
        return _pipeline


def set_pipeline(pipeline: Optional[Pipeline]) -> None:
    """Install a prebuilt pipeline (tests, embedding)."""
    global _pipeline
    with _lock:
        _pipeline = pipeline


def reset_pipeline() -> None:
    """Shut down and forget the cached pipeline."""
    global _pipeline
    with _lock:
        if _pipeline is not None:
            _pipeline.shutdown(wait=True)
        _pipeline = None
