"""
Pipeline: wire every component for one staging (and optional production)
working copy, and own the single worker that runs modifications.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional

from tollgate.config import Settings, load_settings
from tollgate.events import EventSink
from tollgate.exceptions import ConfigError
from tollgate.gate import GateConfig, TestGate
from tollgate.locks import PipelineLocks
from tollgate.logging_config import logger
from tollgate.migration import MigrationTrigger
from tollgate.mutation import BackupStore, MutationEngine, OperationLedger, ProtectionPolicy
from tollgate.orchestrator import Orchestrator
from tollgate.paths import TollgatePaths
from tollgate.promotion import PromotionManager
from tollgate.schemas import Author, ModificationRequest, ModificationResult
from tollgate.vcs import Repository


class Pipeline:
    """All components for one deployment, built from Settings."""

    def __init__(
        self,
        settings: Settings,
        paths: TollgatePaths,
        policy: ProtectionPolicy,
        engine: MutationEngine,
        staging: Repository,
        test_gate: TestGate,
        migrations: MigrationTrigger,
        locks: PipelineLocks,
        orchestrator: Orchestrator,
        production: Optional[Repository] = None,
        promotion: Optional[PromotionManager] = None,
    ):
        self.settings = settings
        self.paths = paths
        self.policy = policy
        self.engine = engine
        self.staging = staging
        self.test_gate = test_gate
        self.migrations = migrations
        self.locks = locks
        self.orchestrator = orchestrator
        self.production = production
        self.promotion_manager = promotion
        # One worker: modifications never run side by side
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tollgate")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Pipeline":
        settings = settings or load_settings()
        repo_settings = settings.repository

        staging_root = Path(repo_settings.staging_path).expanduser().resolve()
        if not staging_root.is_dir():
            raise ConfigError(f"Staging path does not exist: {staging_root}")

        paths = TollgatePaths(staging_root, backups_dir=settings.mutation.backup_dir)
        paths.ensure_dirs()
        paths.ensure_backups_dir()

        author = Author(name=settings.author.name, email=settings.author.email)
        policy = ProtectionPolicy.from_settings(settings.mutation)
        engine = MutationEngine(
            staging_root,
            policy,
            BackupStore(paths.backups_dir),
            OperationLedger(settings.mutation.ledger_size),
            validate_content=settings.mutation.validate_content,
        )
        staging = Repository(staging_root, repo_settings.remote, repo_settings.git_timeout, author)
        test_gate = TestGate(staging_root, settings.tests)
        migrations = MigrationTrigger(staging_root, settings.migration)
        locks = PipelineLocks(paths, timeout=settings.pipeline.lock_timeout)
        orchestrator = Orchestrator(
            engine,
            staging,
            test_gate,
            migrations,
            locks,
            author,
            branch=repo_settings.staging_branch,
            push_after_commit=settings.pipeline.push_after_commit,
            gate_config=GateConfig.from_settings(settings.tests),
        )

        production = None
        promotion = None
        if repo_settings.production_path is not None:
            production_root = Path(repo_settings.production_path).expanduser().resolve()
            if not production_root.is_dir():
                raise ConfigError(f"Production path does not exist: {production_root}")
            production = Repository(production_root, repo_settings.remote, repo_settings.git_timeout, author)
            promotion = PromotionManager(
                staging,
                production,
                locks,
                remote=repo_settings.remote,
                staging_branch=repo_settings.staging_branch,
                production_branch=repo_settings.production_branch,
                author=author,
            )

        logger.debug(f"Pipeline ready for {staging_root}")
        return cls(
            settings,
            paths,
            policy,
            engine,
            staging,
            test_gate,
            migrations,
            locks,
            orchestrator,
            production=production,
            promotion=promotion,
        )

    @property
    def promotion(self) -> PromotionManager:
        """
        Raises:
            ConfigError: If no production working copy is configured
        """
        if self.promotion_manager is None:
            raise ConfigError("repository.production_path is not configured; promotion is unavailable")
        return self.promotion_manager

    def run(self, request: ModificationRequest, sink: Optional[EventSink] = None) -> ModificationResult:
        return self.orchestrator.run(request, sink)

    def submit(self, request: ModificationRequest, sink: Optional[EventSink] = None) -> "Future[ModificationResult]":
        """
        Queue a modification on the worker thread.

        The returned future is never cancelled once the run has started.
        """
        return self._executor.submit(self.orchestrator.run, request, sink)

    def status(self) -> Dict[str, Any]:
        return {
            "staging_path": str(self.staging.path),
            "production_path": str(self.production.path) if self.production else None,
            "state": self.orchestrator.state.value,
            "busy": self.locks.busy(),
            "backups": len(self.engine.backups.list()),
            "ledger_entries": len(self.engine.ledger),
        }

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=False)
