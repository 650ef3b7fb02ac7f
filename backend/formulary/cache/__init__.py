"""
Response cache for composed answers.
"""
from .response_cache import (
    ResponseCache,
    CacheEntry,
    make_cache_key
)

__all__ = [
    'ResponseCache',
    'CacheEntry',
    'make_cache_key'
]
