from .backend import BackendClient, BackendError
from .cache import QueryCache
from .context import ClientContext
from .session import FileStorage, MemoryStorage, SessionStore

__all__ = [
    "BackendClient",
    "BackendError",
    "ClientContext",
    "FileStorage",
    "MemoryStorage",
    "QueryCache",
    "SessionStore",
]
