from .manager import PromotionManager, build_merge_message, classify_file

__all__ = ["PromotionManager", "build_merge_message", "classify_file"]
