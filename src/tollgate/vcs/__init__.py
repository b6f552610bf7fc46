"""
Version-control package: git subprocess wrapper and working-copy manager.
"""

from .git import run_git
from .repository import Repository, parse_log, parse_status

__all__ = ["Repository", "run_git", "parse_log", "parse_status"]
