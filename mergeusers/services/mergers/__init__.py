from mergeusers.services.mergers.base import MergeContext, TableMerger
from mergeusers.services.mergers.default import DefaultTableMerger
from mergeusers.services.mergers.quiz_attempts import QuizAttemptsMerger
from mergeusers.services.mergers.registry import get_merger_class, list_mergers, register

__all__ = [
    "DefaultTableMerger",
    "MergeContext",
    "QuizAttemptsMerger",
    "TableMerger",
    "get_merger_class",
    "list_mergers",
    "register",
]
