"""Configuration loading and auto-discovery."""
import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from tollgate.exceptions import ConfigError
from tollgate.logging_config import logger


# Paths the change-producer may never write.
DEFAULT_PROTECTED_PATTERNS = [
    # Authentication & security
    "src/lib/auth.ts",
    "src/lib/auth/**",
    "src/app/api/auth/**",
    "src/middleware.ts",
    # The mutation pipeline's own code
    "src/lib/code-modification/**",
    "src/lib/agents/**",
    "src/tollgate/**",
    # Environment & configuration
    ".env",
    ".env.*",
    "tollgate.toml",
    "pyproject.toml",
    "setup.cfg",
    "package.json",
    "package-lock.json",
    "tsconfig.json",
    "next.config.*",
    "jest.config.*",
    "playwright.config.*",
    # Version control & pipeline state
    ".git/**",
    ".gitignore",
    ".gitattributes",
    ".backups/**",
    ".tollgate/**",
    # Existing migrations are history
    "prisma/migrations/**",
    "prisma.config.ts",
    # Build output & dependencies
    "node_modules/**",
    ".next/**",
    "dist/**",
    "build/**",
    "out/**",
    "**/__pycache__/**",
    # CI/CD & deployment
    ".github/**",
    "Dockerfile",
    "docker-compose.yml",
    ".dockerignore",
    "ecosystem.config.js",
    # Root tool configuration
    "postcss.config.*",
    "tailwind.config.*",
    "eslint.config.*",
]

# Paths that may change but deserve extra scrutiny.
DEFAULT_SENSITIVE_PATTERNS = [
    "prisma/schema.prisma",
    "src/app/layout.tsx",
    "src/app/page.tsx",
    "src/lib/**/*.ts",
    "**/settings.py",
    "**/migrations/**",
]


DEFAULTS: Dict[str, Any] = {
    "repository": {
        "staging_path": ".",
        "production_path": None,
        "remote": "origin",
        "staging_branch": "staging",
        "production_branch": "main",
        "git_timeout": 60.0,
    },
    "author": {
        "name": "Tollgate Agent",
        "email": "agent@tollgate.local",
    },
    "mutation": {
        "backup_dir": None,
        "validate_content": True,
        "ledger_size": 1000,
        "protected_patterns": DEFAULT_PROTECTED_PATTERNS,
        "sensitive_patterns": DEFAULT_SENSITIVE_PATTERNS,
    },
    "tests": {
        "unit_command": ["python", "-m", "pytest", "tests/unit", "-q", "--junitxml={junit}"],
        "integration_command": ["python", "-m", "pytest", "tests/integration", "-q", "--junitxml={junit}"],
        "e2e_command": ["python", "-m", "pytest", "tests/e2e", "-q", "--junitxml={junit}"],
        "coverage_args": ["--cov", "--cov-report=json:{coverage}"],
        "coverage_threshold": 70.0,
        "timeout": 120.0,
        "run_unit": True,
        "run_integration": True,
        "run_e2e": False,
        "collect_coverage": False,
        "ok_exit_codes": [0, 5],
    },
    "migration": {
        "validate_command": ["prisma", "validate"],
        "generate_command": ["prisma", "migrate", "dev", "--name", "{name}"],
        "client_command": ["prisma", "generate"],
        "status_command": ["prisma", "migrate", "status"],
        "validate_timeout": 15.0,
        "generate_timeout": 30.0,
        "client_timeout": 60.0,
        "status_timeout": 15.0,
    },
    "pipeline": {
        "push_after_commit": True,
        "lock_timeout": 30.0,
    },
}


class RepositorySettings(BaseModel):
    staging_path: Path = Path(".")
    production_path: Optional[Path] = None
    remote: str = "origin"
    staging_branch: str = "staging"
    production_branch: str = "main"
    git_timeout: float = 60.0


class AuthorSettings(BaseModel):
    name: str = "Tollgate Agent"
    email: str = "agent@tollgate.local"


class MutationSettings(BaseModel):
    backup_dir: Optional[Path] = None
    validate_content: bool = True
    ledger_size: int = Field(default=1000, gt=0)
    protected_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_PROTECTED_PATTERNS))
    sensitive_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_PATTERNS))


class GateSettings(BaseModel):
    """Test Gate commands. `{junit}` and `{coverage}` are report-path placeholders."""
    unit_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["tests"]["unit_command"]))
    integration_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["tests"]["integration_command"]))
    e2e_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["tests"]["e2e_command"]))
    coverage_args: List[str] = Field(default_factory=lambda: list(DEFAULTS["tests"]["coverage_args"]))
    coverage_threshold: float = Field(default=70.0, ge=0, le=100)
    timeout: float = Field(default=120.0, gt=0)
    run_unit: bool = True
    run_integration: bool = True
    run_e2e: bool = False
    collect_coverage: bool = False
    # Exit codes that do not by themselves fail a subset (pytest: 5 = nothing collected)
    ok_exit_codes: List[int] = Field(default_factory=lambda: [0, 5])


class MigrationSettings(BaseModel):
    """Migration commands. `{name}` is replaced by the migration name."""
    validate_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["migration"]["validate_command"]))
    generate_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["migration"]["generate_command"]))
    client_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["migration"]["client_command"]))
    status_command: List[str] = Field(default_factory=lambda: list(DEFAULTS["migration"]["status_command"]))
    validate_timeout: float = 15.0
    generate_timeout: float = 30.0
    client_timeout: float = 60.0
    status_timeout: float = 15.0


class PipelineSettings(BaseModel):
    push_after_commit: bool = True
    lock_timeout: float = Field(default=30.0, ge=0)


class Settings(BaseModel):
    """Validated Tollgate configuration."""
    repository: RepositorySettings = Field(default_factory=RepositorySettings)
    author: AuthorSettings = Field(default_factory=AuthorSettings)
    mutation: MutationSettings = Field(default_factory=MutationSettings)
    tests: GateSettings = Field(default_factory=GateSettings)
    migration: MigrationSettings = Field(default_factory=MigrationSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)


def find_config_path() -> Optional[Path]:
    """
    Locate the configuration file.

    Priority:
    1. TOLLGATE_CONFIG environment variable
    2. ./tollgate.toml (project config)
    3. ~/.config/tollgate/config.toml (user config)
    """
    config_paths = []

    env_config = os.environ.get("TOLLGATE_CONFIG")
    if env_config:
        config_paths.append(Path(env_config))

    config_paths.append(Path("tollgate.toml"))
    config_paths.append(Path.home() / ".config" / "tollgate" / "config.toml")

    for path in config_paths:
        if path.exists():
            return path

    return None


def load_config(path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """
    Load configuration from file.

    Returns:
        Configuration dict or None if no config found

    Raises:
        ConfigError: If the file exists but is not valid TOML
    """
    path = path or find_config_path()
    if path is None:
        return None

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    logger.debug(f"Loaded config from {path}")
    return data


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence."""
    result = copy.deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _env_overrides() -> Dict[str, Any]:
    repository: Dict[str, Any] = {}
    staging = os.environ.get("TOLLGATE_STAGING_PATH")
    production = os.environ.get("TOLLGATE_PRODUCTION_PATH")
    if staging:
        repository["staging_path"] = staging
    if production:
        repository["production_path"] = production
    return {"repository": repository} if repository else {}


def load_settings(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """
    Build validated settings: DEFAULTS < config file < environment < overrides.

    Raises:
        ConfigError: If the merged configuration does not validate
    """
    merged = copy.deepcopy(DEFAULTS)

    file_config = load_config(config_path)
    if file_config:
        merged = deep_merge(merged, file_config)

    merged = deep_merge(merged, _env_overrides())

    if overrides:
        merged = deep_merge(merged, overrides)

    try:
        return Settings.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
