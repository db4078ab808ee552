"""
Bitbucket Server OAuth Authenticator
OAuth 1.0a (RSA-SHA1) flow against Bitbucket Server application links
"""

from typing import List, Optional
from urllib.parse import urlencode, urlsplit, parse_qs

import httpx
import structlog
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth1Client
from authlib.oauth1 import SIGNATURE_RSA_SHA1

from .base import OAuthAuthenticator, OAuthAuthenticationError, ProtocolVersion, ProviderConfig

logger = structlog.get_logger()


class BitbucketServerConfig(ProviderConfig):
    """Bitbucket Server consumer configuration, client_id is the consumer key"""
    private_key: str


class BitbucketServerAuthenticator(OAuthAuthenticator):
    """Bitbucket Server OAuth1 authenticator"""

    name = "bitbucket-server"
    protocol = ProtocolVersion.OAUTH1

    def __init__(self, config: BitbucketServerConfig, store, transport=None):
        super().__init__(config, store, transport)
        base = f"{self.endpoint_url}/plugins/servlet/oauth"
        self.request_token_endpoint = f"{base}/request-token"
        self.authorization_endpoint = f"{base}/authorize"
        self.access_token_endpoint = f"{base}/access-token"
        self.whoami_endpoint = f"{self.endpoint_url}/plugins/servlet/applinks/whoami"

    def _client(self, **kwargs) -> AsyncOAuth1Client:
        return AsyncOAuth1Client(
            client_id=self.config.client_id,
            rsa_key=self.config.private_key,
            signature_method=SIGNATURE_RSA_SHA1,
            transport=self.transport,
            timeout=30.0,
            **kwargs,
        )

    async def get_authenticate_url(self, callback_url: str, state: str, scopes: List[str]) -> str:
        # OAuth1 has no state parameter, so it rides on the callback URL
        oauth_callback = f"{callback_url}?{urlencode({'state': state})}"
        try:
            async with self._client(redirect_uri=oauth_callback) as client:
                request_token = await client.fetch_request_token(self.request_token_endpoint)
                return client.create_authorization_url(
                    self.authorization_endpoint, request_token["oauth_token"]
                )
        except (httpx.HTTPError, AuthlibBaseError, ValueError) as e:
            logger.error("Request token fetch failed", provider=self.name, error=str(e))
            raise OAuthAuthenticationError(description=f"{self.name} request token failed") from e

    async def callback(self, request_url: str, scopes: List[str], user_id: Optional[str]) -> str:
        params = parse_qs(urlsplit(request_url).query)
        oauth_token = params.get("oauth_token", [None])[0]
        verifier = params.get("oauth_verifier", [None])[0]
        if not oauth_token or not verifier:
            raise OAuthAuthenticationError(description="OAuth token or verifier is missing")

        try:
            async with self._client(token=oauth_token) as client:
                access_token = await client.fetch_access_token(self.access_token_endpoint, verifier)
                if not user_id:
                    response = await client.get(self.whoami_endpoint)
                    response.raise_for_status()
                    user_id = response.text.strip()
        except (httpx.HTTPError, AuthlibBaseError, ValueError) as e:
            logger.error("Access token exchange failed", provider=self.name, error=str(e))
            raise OAuthAuthenticationError(description=f"{self.name} access token failed") from e

        await self.store.put(self.name, user_id, access_token["oauth_token"])
        logger.info("Stored OAuth token", provider=self.name, user_id=user_id)
        return user_id
