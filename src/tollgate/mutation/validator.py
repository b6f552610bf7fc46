"""
ContentValidator: reject malformed file contents before any write.

Content kinds form a closed set. The kind is looked up from the file
suffix and each kind has one pure check; unknown suffixes are plain text.
"""

import json
import tomllib
from enum import Enum
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tollgate.schemas import FileChange


class ContentKind(str, Enum):
    PYTHON = "python"
    JSON = "json"
    TOML = "toml"
    TEXT = "text"


KIND_BY_SUFFIX: Dict[str, ContentKind] = {
    ".py": ContentKind.PYTHON,
    ".pyi": ContentKind.PYTHON,
    ".json": ContentKind.JSON,
    ".toml": ContentKind.TOML,
}


def content_kind(path: str) -> ContentKind:
    return KIND_BY_SUFFIX.get(PurePosixPath(path).suffix.lower(), ContentKind.TEXT)


def _check_python(path: str, content: str) -> Optional[str]:
    try:
        compile(content, path, "exec")
    except SyntaxError as e:
        return f"line {e.lineno}: {e.msg}"
    except ValueError as e:
        # Null bytes in source
        return str(e)
    return None


def _check_json(path: str, content: str) -> Optional[str]:
    try:
        json.loads(content)
    except json.JSONDecodeError as e:
        return f"line {e.lineno}: {e.msg}"
    return None


def _check_toml(path: str, content: str) -> Optional[str]:
    try:
        tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        return str(e)
    return None


def _check_text(path: str, content: str) -> Optional[str]:
    return None


CHECKS: Dict[ContentKind, Callable[[str, str], Optional[str]]] = {
    ContentKind.PYTHON: _check_python,
    ContentKind.JSON: _check_json,
    ContentKind.TOML: _check_toml,
    ContentKind.TEXT: _check_text,
}


def validate_content(path: str, content: str) -> Optional[str]:
    """
    Validate one file's content.

    Returns:
        None if valid, otherwise a human-readable error
    """
    kind = content_kind(path)
    error = CHECKS[kind](path, content)
    if error is None:
        return None
    return f"{path}: invalid {kind.value} content ({error})"


def validate_batch(changes: Sequence[FileChange]) -> List[Tuple[str, str]]:
    """Validate every change; returns (path, error) pairs for the invalid ones."""
    errors = []
    for change in changes:
        error = validate_content(change.path, change.new_content)
        if error is not None:
            errors.append((change.path, error))
    return errors
