"""
CLI Command Modules

Each module contains a logical group of related commands.
"""

from tollgate.cli import changes, promotion

__all__ = ["changes", "promotion"]
