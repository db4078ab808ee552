"""
Core Broker Components
"""

from .dispatcher import OAuthDispatcher
from .registry import AuthenticatorRegistry
from .state import CallbackState, StateCodec
from .storage import MemoryTokenStore, PostgresTokenStore
from .subjects import Subject, SubjectResolver
from .tokens import PersonalAccessTokenManager

__all__ = [
    "OAuthDispatcher",
    "AuthenticatorRegistry",
    "CallbackState",
    "StateCodec",
    "MemoryTokenStore",
    "PostgresTokenStore",
    "Subject",
    "SubjectResolver",
    "PersonalAccessTokenManager",
]
