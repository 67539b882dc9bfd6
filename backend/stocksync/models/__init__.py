from .documents import StoredDocument
from .cache import CachePartition

__all__ = [
    'StoredDocument',
    'CachePartition',
]
