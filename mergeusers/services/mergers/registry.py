"""Registry of table mergers. Add new mergers here, or reference them as "package.module:ClassName"."""
import importlib
import logging

from mergeusers.core.errors import ConfigurationError
from mergeusers.services.mergers.base import TableMerger

logger = logging.getLogger(__name__)

_mergers: dict[str, type[TableMerger]] = {}


def register(name: str, merger_class: type[TableMerger]) -> None:
    """Register a table merger class under a short name (e.g. 'default')."""
    _mergers[name] = merger_class
    logger.debug("Registered table merger: %s", name)


def list_mergers() -> list[str]:
    return list(_mergers.keys())


def _import_class(path: str) -> object:
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Unknown table merger: {path}. Available: {list_mergers()}")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load table merger {path}: {e}") from e


def get_merger_class(identifier: str) -> type[TableMerger]:
    """Resolve a configured identifier to a TableMerger subclass. Raises ConfigurationError otherwise."""
    merger_class = _mergers.get(identifier)
    if merger_class is None:
        merger_class = _import_class(identifier)
    if not (isinstance(merger_class, type) and issubclass(merger_class, TableMerger)):
        raise ConfigurationError(f"{identifier} is not a TableMerger")
    return merger_class


def _init_registry() -> None:
    from mergeusers.services.mergers.default import DefaultTableMerger
    from mergeusers.services.mergers.quiz_attempts import QuizAttemptsMerger

    register("default", DefaultTableMerger)
    register("quiz_attempts", QuizAttemptsMerger)


# Register built-in mergers on first import
_init_registry()
