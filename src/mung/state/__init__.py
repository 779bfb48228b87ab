from .file_store import FileAlertStore
from .store import AlertStore, PersistenceError

__all__ = [
    "AlertStore",
    "FileAlertStore",
    "PersistenceError",
]
