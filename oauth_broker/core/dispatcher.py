"""
OAuth Dispatcher
Routes authenticate/callback/token requests to the registered authenticators
"""

from typing import List, Optional
from urllib.parse import urlsplit, urlunsplit, parse_qs, parse_qsl, urlencode

import httpx
import structlog
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from oauth_broker.providers.base import (
    OAuthAuthenticator,
    OAuthAuthenticationError,
    OAuthToken,
    ProtocolVersion,
)
from .errors import NotFoundError, ServerError, UnauthorizedError
from .registry import AuthenticatorRegistry
from .state import CallbackState, StateCodec, state_from_url
from .storage import TokenStoreError
from .subjects import Subject
from .tokens import PersonalAccessTokenManager, ScmError

logger = structlog.get_logger()

ERROR_QUERY_NAME = "error_code"
ACCESS_DENIED = "access_denied"


class LinkParameter(BaseModel):
    name: str
    default_value: Optional[str] = None
    required: bool = False
    description: Optional[str] = None


class Link(BaseModel):
    href: str
    rel: str
    method: str = "GET"
    produces: Optional[str] = None
    consumes: Optional[str] = None
    parameters: List[LinkParameter] = []


class OAuthAuthenticatorDescriptor(BaseModel):
    name: str
    endpoint_url: str
    protocol: ProtocolVersion
    links: List[Link] = []


def append_error_code(url: str, error: str = ACCESS_DENIED) -> str:
    """Append error_code to a redirect URL, re-encoding its existing query"""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append((ERROR_QUERY_NAME, error))
    return urlunsplit(parts._replace(query=urlencode(query)))


class OAuthDispatcher:
    """Dispatches OAuth operations by provider name"""

    def __init__(
        self,
        registry: AuthenticatorRegistry,
        token_manager: PersonalAccessTokenManager,
        state_codec: StateCodec,
        error_page: str = "/error/access-denied",
    ):
        self.registry = registry
        self.token_manager = token_manager
        self.state_codec = state_codec
        self.error_page = error_page

    def get_authenticator(self, provider_name: Optional[str]) -> OAuthAuthenticator:
        """Get OAuth authenticator by provider name"""
        oauth = self.registry.get(provider_name)
        if oauth is None:
            logger.warning("Unsupported OAuth provider", provider=provider_name)
            raise NotFoundError(f"Unsupported OAuth provider {provider_name}")
        return oauth

    async def authenticate(
        self,
        provider_name: str,
        scopes: Optional[List[str]],
        redirect_after_login: Optional[str],
        callback_url: str,
        subject: Optional[Subject] = None,
    ) -> RedirectResponse:
        """Redirect to the provider authorization URL"""
        oauth = self.get_authenticator(provider_name)
        scopes = scopes or []

        state = CallbackState(
            oauth_provider=provider_name,
            scope=scopes,
            redirect_after_login=redirect_after_login,
            user_id=_known_user_id(subject),
        )

        try:
            auth_url = await oauth.get_authenticate_url(
                callback_url, self.state_codec.encode(state), scopes
            )
        except OAuthAuthenticationError as e:
            raise ServerError(f"Unable to start {provider_name} authentication: {e.description}") from e

        logger.info("Redirecting to OAuth provider", provider=provider_name, protocol=oauth.protocol.value)
        return RedirectResponse(auth_url, status_code=307)

    async def callback(
        self,
        request_url: str,
        error_values: Optional[List[str]] = None,
        subject: Optional[Subject] = None,
    ) -> RedirectResponse:
        """Complete the flow and redirect back to the post-login URL"""
        state = self.state_codec.decode(state_from_url(request_url))
        if error_values is None:
            error_values = parse_qs(urlsplit(request_url).query).get("error")

        if error_values and ACCESS_DENIED in error_values:
            logger.info("OAuth access denied", provider=state.oauth_provider)
            if state.redirect_after_login:
                return RedirectResponse(append_error_code(state.redirect_after_login), status_code=307)
            return RedirectResponse(self.error_page, status_code=307)

        oauth = self.get_authenticator(state.oauth_provider)
        user_id = state.user_id or _known_user_id(subject)

        try:
            await oauth.callback(request_url, state.scope, user_id)
        except OAuthAuthenticationError as e:
            logger.error("OAuth callback failed", provider=state.oauth_provider, error=str(e))
            if state.redirect_after_login:
                return RedirectResponse(append_error_code(state.redirect_after_login), status_code=307)
            return RedirectResponse(self.error_page, status_code=307)
        except TokenStoreError as e:
            raise ServerError(str(e)) from e

        logger.info("OAuth callback completed", provider=state.oauth_provider)
        return RedirectResponse(state.redirect_after_login or "/", status_code=307)

    def get_registered_authenticators(self, authenticate_url: str) -> List[OAuthAuthenticatorDescriptor]:
        """Describe every registered provider with its authenticate link"""
        result = []
        for oauth in self.registry.authenticators():
            link = Link(
                href=authenticate_url,
                rel="Authenticate URL",
                method="GET",
                parameters=[
                    LinkParameter(name="oauth_provider", required=True, default_value=oauth.name),
                    LinkParameter(name="mode", required=True, default_value="federated_login"),
                ],
            )
            result.append(
                OAuthAuthenticatorDescriptor(
                    name=oauth.name,
                    endpoint_url=oauth.endpoint_url,
                    protocol=oauth.protocol,
                    links=[link],
                )
            )
        return result

    async def get_token(self, provider_name: str, subject: Optional[Subject]) -> OAuthToken:
        """Stored token for the subject, by user id then user name"""
        oauth = self.get_authenticator(provider_name)
        if subject is None or subject.is_anonymous:
            raise UnauthorizedError("Authentication required")

        try:
            token = await oauth.get_token(subject.user_id)
            if token is None:
                token = await oauth.get_token(subject.user_name)
        except (TokenStoreError, httpx.HTTPError) as e:
            raise ServerError(str(e)) from e

        if token is not None:
            return token
        raise UnauthorizedError(f"OAuth token for user {subject.user_id} was not found")

    async def invalidate_token(self, provider_name: str, subject: Optional[Subject]) -> None:
        """Revoke the subject's stored token for a provider"""
        oauth = self.get_authenticator(provider_name)
        if subject is None or subject.is_anonymous:
            raise UnauthorizedError("Authentication required")
        not_found = UnauthorizedError(f"OAuth token for provider {provider_name} was not found")

        try:
            personal_token = await self.token_manager.get(subject, provider_name)
            if personal_token is None or not await oauth.invalidate_token(personal_token.token):
                raise not_found
        except (ScmError, TokenStoreError, httpx.HTTPError) as e:
            logger.warning("Token invalidation failed", provider=provider_name, error=str(e))
            raise not_found from e

        logger.info("OAuth token invalidated", provider=provider_name, user_id=subject.user_id)


def _known_user_id(subject: Optional[Subject]) -> Optional[str]:
    if subject is None or subject.is_anonymous:
        return None
    return subject.user_id
