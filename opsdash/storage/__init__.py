from .filesystem import FilesystemStateStore
from .memory import MemoryStateStore
from .sqlite import SQLiteStateStore

__all__ = ["FilesystemStateStore", "MemoryStateStore", "SQLiteStateStore", "build_state_store"]


def build_state_store(config):
    """Build the StateStore named by a StateConfig."""
    if config.backend == "sqlite":
        return SQLiteStateStore(db_path=config.sqlite_path)
    if config.backend == "memory":
        return MemoryStateStore()
    return FilesystemStateStore(root=config.root)
