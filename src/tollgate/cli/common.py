"""
Common CLI helpers shared by the command modules.
"""

from typing import Optional

import typer

from tollgate.config import load_settings
from tollgate.exceptions import ConfigError
from tollgate.pipeline import Pipeline
from tollgate.promotion import PromotionManager
from tollgate.schemas import ErrorKind

from .config import CLIConfig
from .output import print_error


# Exit codes
EXIT_OK = 0
EXIT_USAGE = 1
EXIT_REJECTED = 2
EXIT_ROLLED_BACK = 3
EXIT_FATAL = 4


def exit_code_for(success: bool, kind: Optional[ErrorKind]) -> int:
    """
    Map a pipeline outcome to a process exit code.

    0 success, 2 rejected before any mutation, 3 failed after work
    started and was rolled back, 4 fatal state needing an operator.
    """
    if success:
        return EXIT_OK
    if kind is None:
        return EXIT_ROLLED_BACK
    if kind.fatal:
        return EXIT_FATAL
    if kind.rejected_before_mutation:
        return EXIT_REJECTED
    return EXIT_ROLLED_BACK


def load_pipeline_or_exit() -> Pipeline:
    """
    Build the pipeline from configuration or exit with code 1.

    Raises:
        typer.Exit: If configuration is missing or invalid
    """
    try:
        settings = load_settings(CLIConfig.config_path())
        return Pipeline.from_settings(settings)
    except ConfigError as e:
        print_error("CONFIG_ERROR", str(e), suggestions=["--config tollgate.toml", "TOLLGATE_STAGING_PATH=/path/to/staging"])
        raise typer.Exit(code=EXIT_USAGE)


def promotion_or_exit(pipeline: Pipeline) -> PromotionManager:
    try:
        return pipeline.promotion
    except ConfigError as e:
        print_error("CONFIG_ERROR", str(e), suggestions=["TOLLGATE_PRODUCTION_PATH=/path/to/production"])
        raise typer.Exit(code=EXIT_USAGE)
