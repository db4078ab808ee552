"""
Base OAuth Authenticator
Abstract base class for OAuth1 and OAuth2 authenticators
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, List, TYPE_CHECKING
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog
from authlib.common.errors import AuthlibBaseError
from pydantic import BaseModel

if TYPE_CHECKING:
    from oauth_broker.core.storage import TokenStore

logger = structlog.get_logger()


class ProtocolVersion(str, Enum):
    """OAuth protocol spoken by an authenticator"""
    OAUTH1 = "oauth1"
    OAUTH2 = "oauth2"


class ProviderConfig(BaseModel):
    """Base configuration for OAuth providers"""
    client_id: str
    client_secret: Optional[str] = None
    endpoint_url: str
    scopes: List[str] = []


class OAuthToken(BaseModel):
    """Access credential handed back to API callers"""
    token: str
    scope: Optional[str] = None


class OAuthAuthenticationError(AuthlibBaseError):
    """Raised when the provider rejects or fails an OAuth exchange"""
    error = "oauth_authentication_failed"


class OAuthAuthenticator(ABC):
    """Abstract base class for OAuth authenticators"""

    name: str
    protocol: ProtocolVersion

    def __init__(
        self,
        config: ProviderConfig,
        store: "TokenStore",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.store = store
        self.transport = transport

    @property
    def endpoint_url(self) -> str:
        return self.config.endpoint_url.rstrip("/")

    @abstractmethod
    async def get_authenticate_url(self, callback_url: str, state: str, scopes: List[str]) -> str:
        """Build the provider authorization URL for a new flow"""
        pass

    @abstractmethod
    async def callback(self, request_url: str, scopes: List[str], user_id: str) -> str:
        """Complete the flow from the provider redirect, store the token and return the user id"""
        pass

    async def get_token(self, user_key: str) -> Optional[OAuthToken]:
        """Look up the stored token for a user id or user name"""
        token = await self.store.get(self.name, user_key)
        if token is None:
            return None
        return OAuthToken(token=token, scope=self.get_scopes_string() or None)

    async def invalidate_token(self, token: str) -> bool:
        """Revoke a token, dropping the stored copy once the provider accepts.

        Returns False when the token is unknown or the provider refuses it;
        the stored token is kept in that case.
        """
        if not await self.store.find(self.name, token):
            return False
        if not await self.revoke(token):
            logger.warning("Provider refused token revocation", provider=self.name)
            return False
        await self.store.delete_token(self.name, token)
        return True

    async def revoke(self, token: str) -> bool:
        """Provider-side revocation, a no-op unless the provider supports it"""
        return True

    def http_client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=30.0, **kwargs)

    def get_scopes_string(self, scopes: Optional[List[str]] = None) -> str:
        """Convert scopes list to space-separated string"""
        return " ".join(scopes or self.config.scopes)

    @staticmethod
    def strip_query(url: str) -> str:
        parts = urlsplit(url)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
