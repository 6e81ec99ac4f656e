from mergeusers.models.merge_log import MergeLog

__all__ = ["MergeLog"]
