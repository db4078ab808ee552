"""
OAuth Authenticators
Provider-specific OAuth1 and OAuth2 implementations
"""

from .base import OAuthAuthenticator, OAuthAuthenticationError, OAuthToken, ProtocolVersion
from .bitbucket import BitbucketServerAuthenticator, BitbucketServerConfig
from .github import GitHubAuthenticator, GitHubConfig
from .gitlab import GitLabAuthenticator, GitLabConfig
from .oauth2 import OAuth2Authenticator

__all__ = [
    "OAuthAuthenticator",
    "OAuthAuthenticationError",
    "OAuthToken",
    "ProtocolVersion",
    "OAuth2Authenticator",
    "BitbucketServerAuthenticator",
    "BitbucketServerConfig",
    "GitHubAuthenticator",
    "GitHubConfig",
    "GitLabAuthenticator",
    "GitLabConfig",
]
