"""
Tollgate - Safe mutation and promotion pipeline

Policy-checked atomic file changes, a commit/test/revert gate on a
staging branch, and guarded staging-to-production promotion.
"""

__version__ = "0.4.0"

from tollgate.config import Settings, load_settings
from tollgate.exceptions import PolicyViolation, TollgateError
from tollgate.pipeline import Pipeline
from tollgate.schemas import FileChange, ModificationRequest, ModificationResult, PromotionResult

__all__ = [
    "__version__",
    "Pipeline",
    "Settings",
    "load_settings",
    "FileChange",
    "ModificationRequest",
    "ModificationResult",
    "PromotionResult",
    "PolicyViolation",
    "TollgateError",
]
