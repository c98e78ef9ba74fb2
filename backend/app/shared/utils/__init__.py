"""
Shared Utility Functions
"""
from app.shared.utils.cache import (
    app_cache,
    SimpleCache,
    CACHE_KEY_CONVERSATIONS,
    CACHE_PATTERN_CONVERSATIONS,
    get_conversations_cache_key
)
from app.shared.utils.exceptions import (
    EntityNotFoundError,
    DuplicateEntityError,
    ValidationFailedError,
    UnrecognizedPayloadError,
    TransientPersistenceError
)

__all__ = [
    "app_cache",
    "SimpleCache",
    "CACHE_KEY_CONVERSATIONS",
    "CACHE_PATTERN_CONVERSATIONS",
    "get_conversations_cache_key",
    "EntityNotFoundError",
    "DuplicateEntityError",
    "ValidationFailedError",
    "UnrecognizedPayloadError",
    "TransientPersistenceError",
]
