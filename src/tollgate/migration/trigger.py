"""
MigrationTrigger: turn a schema-definition change into a migration.

Runs validate -> generate (named migration, applied to the dev
database) -> regenerate the data-access client, strictly in that order,
stopping at the first failing step. Only the schema file and the
migration-history directory are touched by the tools it runs; undoing
the source change on failure is the caller's job.
"""

import subprocess
import time
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from tollgate.config import MigrationSettings
from tollgate.logging_config import logger
from tollgate.mutation.policy import normalize_path
from tollgate.schemas import MigrationResult, MigrationStatus, MigrationStep


SCHEMA_PATH = "prisma/schema.prisma"
MIGRATIONS_DIR = "prisma/migrations"


def is_schema_change(paths: Iterable[str]) -> bool:
    """True if any path is the schema-definition file."""
    return any(normalize_path(p) == SCHEMA_PATH for p in paths)


def default_migration_name() -> str:
    return f"ai_generated_{int(time.time() * 1000)}"


class MigrationTrigger:
    """Runs the configured migration tool commands in a working copy."""

    def __init__(self, root: Path, settings: Optional[MigrationSettings] = None):
        self.root = Path(root)
        self.settings = settings or MigrationSettings()

    @property
    def schema_path(self) -> Path:
        return self.root / SCHEMA_PATH

    @property
    def migrations_dir(self) -> Path:
        return self.root / MIGRATIONS_DIR

    def schema_exists(self) -> bool:
        return self.schema_path.is_file()

    def read_schema(self) -> Optional[str]:
        if not self.schema_exists():
            return None
        return self.schema_path.read_text(encoding="utf-8")

    def list_migrations(self) -> List[str]:
        """Migration directory names, oldest first."""
        if not self.migrations_dir.is_dir():
            return []
        return sorted(p.name for p in self.migrations_dir.iterdir() if p.is_dir())

    def _run(self, step: str, template: Sequence[str], timeout: float, name: str = "") -> MigrationStep:
        argv = [arg.replace("{name}", name) for arg in template]
        logger.info(f"Migration step {step}: {' '.join(argv)}")
        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                cwd=str(self.root),
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            error = f"{step} timed out after {timeout:.0f}s"
            logger.error(error)
            return MigrationStep(
                name=step,
                success=False,
                command=argv,
                error=error,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
        except OSError as e:
            logger.error(f"Could not run {step} step: {e}")
            return MigrationStep(name=step, success=False, command=argv, error=str(e))

        duration = int((time.monotonic() - start) * 1000)
        success = proc.returncode == 0
        error = None
        if not success:
            error = (proc.stderr or proc.stdout).strip() or f"{step} exited with code {proc.returncode}"
            logger.error(f"Migration step {step} failed: {error}")

        return MigrationStep(
            name=step,
            success=success,
            command=argv,
            stdout=proc.stdout,
            stderr=proc.stderr,
            error=error,
            duration_ms=duration,
        )

    def validate_schema(self) -> MigrationStep:
        return self._run("validate", self.settings.validate_command, self.settings.validate_timeout)

    def generate_migration(self, name: str) -> MigrationStep:
        return self._run("generate", self.settings.generate_command, self.settings.generate_timeout, name)

    def generate_client(self) -> MigrationStep:
        return self._run("client", self.settings.client_command, self.settings.client_timeout)

    def status(self) -> MigrationStatus:
        """
        Report migration state.

        A non-zero exit from the status command means migrations are
        pending, not that the command failed.
        """
        step = self._run("status", self.settings.status_command, self.settings.status_timeout)
        output = (step.stdout + step.stderr).strip()
        # Timeouts and missing tools have no exit code to interpret
        error = step.error if not step.stdout and not step.stderr else None
        return MigrationStatus(
            up_to_date=step.success,
            migrations=self.list_migrations(),
            output=output,
            error=error,
        )

    def handle_schema_change(self, name: Optional[str] = None) -> MigrationResult:
        """Run validate -> generate -> client, stopping at the first failure."""
        name = name or default_migration_name()
        steps: List[MigrationStep] = []

        for run_step, label in (
            (self.validate_schema, "Schema validation failed"),
            (lambda: self.generate_migration(name), "Migration generation failed"),
            (self.generate_client, "Client generation failed"),
        ):
            step = run_step()
            steps.append(step)
            if not step.success:
                return MigrationResult(
                    success=False,
                    migration_name=name,
                    steps=steps,
                    error=f"{label}: {step.error}",
                )

        logger.info(f"Migration {name} generated and applied")
        return MigrationResult(success=True, migration_name=name, steps=steps)
