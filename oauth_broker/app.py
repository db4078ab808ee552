"""
OAuth Broker Service
Redirect/callback broker in front of the provider-specific OAuth authenticators
"""

import os
import logging
from typing import List, Optional

import structlog
from fastapi import FastAPI, Depends, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

from .core.dispatcher import OAuthDispatcher, OAuthAuthenticatorDescriptor
from .core.errors import BrokerError, UnauthorizedError
from .core.registry import AuthenticatorRegistry
from .core.state import StateCodec
from .core.storage import MemoryTokenStore, PostgresTokenStore, TokenStore
from .core.subjects import ANONYMOUS, Subject, SubjectResolver
from .core.tokens import PersonalAccessTokenManager
from .providers.base import OAuthToken
from .providers.bitbucket import BitbucketServerAuthenticator, BitbucketServerConfig
from .providers.github import GitHubAuthenticator, GitHubConfig
from .providers.gitlab import GitLabAuthenticator, GitLabConfig

# Configure structured logging
logging.basicConfig(
    format="%(message)s",
    level=os.getenv("LOG_LEVEL", "INFO"),
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Environment configuration
JWT_SECRET = os.getenv("JWT_SECRET", "dev-jwt-secret-change-in-production")
STATE_SECRET = os.getenv("STATE_SECRET", JWT_SECRET)
DATABASE_URL = os.getenv("DATABASE_URL")
ACCESS_DENIED_ERROR_PAGE = os.getenv("ACCESS_DENIED_ERROR_PAGE", "/error/access-denied")

GITHUB_CLIENT_ID = os.getenv("GITHUB_CLIENT_ID")
GITHUB_CLIENT_SECRET = os.getenv("GITHUB_CLIENT_SECRET")
GITLAB_CLIENT_ID = os.getenv("GITLAB_CLIENT_ID")
GITLAB_CLIENT_SECRET = os.getenv("GITLAB_CLIENT_SECRET")
GITLAB_ENDPOINT = os.getenv("GITLAB_ENDPOINT", "https://gitlab.com")
BITBUCKET_SERVER_ENDPOINT = os.getenv("BITBUCKET_SERVER_ENDPOINT")
BITBUCKET_CONSUMER_KEY = os.getenv("BITBUCKET_CONSUMER_KEY")
BITBUCKET_PRIVATE_KEY = os.getenv("BITBUCKET_PRIVATE_KEY")

# CORS allowed origins
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000",
).split(",")

SERVICE_VERSION = "0.1.0"


def build_registry(store: TokenStore) -> AuthenticatorRegistry:
    """Register every provider whose credentials are configured"""
    registry = AuthenticatorRegistry()
    if GITHUB_CLIENT_ID and GITHUB_CLIENT_SECRET:
        registry.register(GitHubAuthenticator(
            GitHubConfig(client_id=GITHUB_CLIENT_ID, client_secret=GITHUB_CLIENT_SECRET),
            store,
        ))
    if GITLAB_CLIENT_ID and GITLAB_CLIENT_SECRET:
        registry.register(GitLabAuthenticator(
            GitLabConfig(
                client_id=GITLAB_CLIENT_ID,
                client_secret=GITLAB_CLIENT_SECRET,
                endpoint_url=GITLAB_ENDPOINT,
            ),
            store,
        ))
    if BITBUCKET_SERVER_ENDPOINT and BITBUCKET_CONSUMER_KEY and BITBUCKET_PRIVATE_KEY:
        registry.register(BitbucketServerAuthenticator(
            BitbucketServerConfig(
                client_id=BITBUCKET_CONSUMER_KEY,
                endpoint_url=BITBUCKET_SERVER_ENDPOINT,
                private_key=BITBUCKET_PRIVATE_KEY,
            ),
            store,
        ))

    logger.info("OAuth providers configured", providers=registry.names())
    return registry


# Initialize broker components
token_store: TokenStore = PostgresTokenStore(DATABASE_URL) if DATABASE_URL else MemoryTokenStore()
subject_resolver = SubjectResolver(JWT_SECRET)
dispatcher = OAuthDispatcher(
    registry=build_registry(token_store),
    token_manager=PersonalAccessTokenManager(token_store),
    state_codec=StateCodec(STATE_SECRET),
    error_page=ACCESS_DENIED_ERROR_PAGE,
)

# Initialize FastAPI app
app = FastAPI(
    title="OAuth Broker Service",
    description="OAuth redirect/callback broker for SCM providers",
    version=SERVICE_VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Security scheme
security = HTTPBearer(auto_error=False)


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError):
    """Render broker errors as JSON with their mapped status"""
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


# Dependencies
def get_dispatcher() -> OAuthDispatcher:
    return dispatcher


def get_subject_resolver() -> SubjectResolver:
    return subject_resolver


async def get_optional_subject(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    resolver: SubjectResolver = Depends(get_subject_resolver),
) -> Subject:
    """Current subject, anonymous when no bearer token is sent"""
    if not credentials:
        return ANONYMOUS
    return resolver.resolve(credentials.credentials)


# API Endpoints
@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="healthy",
        service="oauth-broker",
        version=SERVICE_VERSION,
    )


@app.get("/oauth/authenticate", name="authenticate")
async def authenticate(
    request: Request,
    oauth_provider: str,
    scope: Optional[List[str]] = Query(default=None),
    redirect_after_login: Optional[str] = None,
    subject: Subject = Depends(get_optional_subject),
    oauth: OAuthDispatcher = Depends(get_dispatcher),
):
    """Start an OAuth flow with the named provider"""
    return await oauth.authenticate(
        oauth_provider,
        scope,
        redirect_after_login,
        str(request.url_for("callback")),
        subject,
    )


@app.get("/oauth/callback", name="callback")
async def callback(
    request: Request,
    error: Optional[List[str]] = Query(default=None),
    subject: Subject = Depends(get_optional_subject),
    oauth: OAuthDispatcher = Depends(get_dispatcher),
):
    """Provider redirect target"""
    return await oauth.callback(str(request.url), error, subject)


@app.get("/oauth", response_model=List[OAuthAuthenticatorDescriptor])
async def registered_authenticators(
    request: Request,
    oauth: OAuthDispatcher = Depends(get_dispatcher),
):
    """Directory of registered OAuth providers"""
    return oauth.get_registered_authenticators(str(request.url_for("authenticate")))


@app.get("/oauth/token", response_model=OAuthToken)
async def get_token(
    oauth_provider: str,
    subject: Subject = Depends(get_optional_subject),
    oauth: OAuthDispatcher = Depends(get_dispatcher),
):
    """Stored OAuth token of the current user, authentication required"""
    return await oauth.get_token(oauth_provider, subject)


@app.delete("/oauth/token", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_token(
    oauth_provider: str,
    subject: Subject = Depends(get_optional_subject),
    oauth: OAuthDispatcher = Depends(get_dispatcher),
):
    """Revoke the current user's OAuth token"""
    await oauth.invalidate_token(oauth_provider, subject)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("oauth_broker.app:app", host="0.0.0.0", port=8003, reload=True, log_config=None)
