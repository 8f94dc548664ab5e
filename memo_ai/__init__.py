# Memo AI package

from .client import (
    MemoClient,
    MemoError,
    MemoNotFoundError,
    MemoServerError,
    MemoValidationError,
)
from .config import VERSION as __version__

__all__ = [
    "__version__",
    "MemoClient",
    "MemoError",
    "MemoNotFoundError",
    "MemoValidationError",
    "MemoServerError",
]
