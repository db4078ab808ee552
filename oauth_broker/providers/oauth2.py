"""
OAuth2 Authenticator
Authorization-code flow shared by the OAuth 2.0 providers
"""

from abc import abstractmethod
from typing import Dict, Any, List, Optional
from urllib.parse import urlencode, urlsplit, parse_qs

import httpx
import structlog
from pydantic import BaseModel

from .base import OAuthAuthenticator, OAuthAuthenticationError, ProtocolVersion

logger = structlog.get_logger()


class TokenResponse(BaseModel):
    """Standardized token response"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    scope: Optional[str] = None


class UserInfo(BaseModel):
    """Standardized provider user information"""
    id: str
    username: str
    email: Optional[str] = None
    raw_data: Dict[str, Any] = {}


class OAuth2Authenticator(OAuthAuthenticator):
    """Base class for OAuth 2.0 authorization-code authenticators"""

    protocol = ProtocolVersion.OAUTH2

    authorization_path = "/oauth/authorize"
    token_path = "/oauth/token"

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.endpoint_url}{self.authorization_path}"

    @property
    def token_endpoint(self) -> str:
        return f"{self.endpoint_url}{self.token_path}"

    async def get_authenticate_url(self, callback_url: str, state: str, scopes: List[str]) -> str:
        """Generate authorization URL"""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": callback_url,
            "scope": self.get_scopes_string(scopes),
            "state": state,
            "response_type": "code",
        }
        return f"{self.authorization_endpoint}?{urlencode(params)}"

    async def callback(self, request_url: str, scopes: List[str], user_id: Optional[str]) -> str:
        params = parse_qs(urlsplit(request_url).query)
        if "error" in params:
            raise OAuthAuthenticationError(
                description=f"{self.name} OAuth error: {params['error'][0]}"
            )
        code = params.get("code", [None])[0]
        if not code:
            raise OAuthAuthenticationError(description="Authorization code is missing")

        token_response = await self.exchange_code_for_token(code, self.strip_query(request_url))

        # Anonymous flows are keyed by the provider login
        if not user_id:
            try:
                user_info = await self.get_user_info(token_response.access_token)
            except httpx.HTTPError as e:
                raise OAuthAuthenticationError(description=f"{self.name} user lookup failed") from e
            user_id = user_info.username

        await self.store.put(self.name, user_id, token_response.access_token)
        logger.info("Stored OAuth token", provider=self.name, user_id=user_id)
        return user_id

    async def exchange_code_for_token(self, code: str, redirect_uri: str) -> TokenResponse:
        """Exchange authorization code for access token"""
        data = {
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }

        headers = {
            "Accept": "application/json",
            "User-Agent": "OAuthBroker/1.0",
        }

        logger.info("Exchanging code for token", provider=self.name, code_length=len(code))

        try:
            async with self.http_client() as client:
                response = await client.post(self.token_endpoint, data=data, headers=headers)
                response.raise_for_status()
                token_data = response.json()
        except httpx.HTTPError as e:
            logger.error("Token exchange failed", provider=self.name, error=str(e))
            raise OAuthAuthenticationError(description=f"{self.name} token exchange failed") from e

        if "error" in token_data:
            logger.error(
                "Provider OAuth error",
                provider=self.name,
                error=token_data.get("error"),
                description=token_data.get("error_description"),
            )
            raise OAuthAuthenticationError(
                description=f"{self.name} OAuth error: {token_data.get('error_description', token_data['error'])}"
            )

        return TokenResponse(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_in=token_data.get("expires_in"),
            token_type=token_data.get("token_type", "Bearer"),
            scope=token_data.get("scope"),
        )

    @abstractmethod
    async def get_user_info(self, access_token: str) -> UserInfo:
        """Get provider user information using access token"""
