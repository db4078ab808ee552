"""
GitHub OAuth Authenticator
Implementation of GitHub OAuth 2.0 flow
"""

import structlog

from .base import ProviderConfig
from .oauth2 import OAuth2Authenticator, UserInfo

logger = structlog.get_logger()


class GitHubConfig(ProviderConfig):
    """GitHub-specific configuration"""
    endpoint_url: str = "https://github.com"
    api_url: str = "https://api.github.com"
    scopes: list[str] = ["repo", "user:email", "read:user"]


class GitHubAuthenticator(OAuth2Authenticator):
    """GitHub OAuth authenticator"""

    name = "github"

    authorization_path = "/login/oauth/authorize"
    token_path = "/login/oauth/access_token"

    def __init__(self, config: GitHubConfig, store, transport=None):
        super().__init__(config, store, transport)
        self.user_info_endpoint = f"{config.api_url}/user"
        self.revoke_endpoint = f"{config.api_url}/applications/{config.client_id}/token"

    def _api_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"token {access_token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "OAuthBroker/1.0",
        }

    async def get_user_info(self, access_token: str) -> UserInfo:
        """Get GitHub user information"""
        async with self.http_client() as client:
            response = await client.get(self.user_info_endpoint, headers=self._api_headers(access_token))
            response.raise_for_status()
            user_data = response.json()

        return UserInfo(
            id=str(user_data["id"]),
            username=user_data["login"],
            email=user_data.get("email"),
            raw_data=user_data,
        )

    async def revoke(self, token: str) -> bool:
        """Delete the app authorization token through the GitHub applications API"""
        async with self.http_client() as client:
            response = await client.request(
                "DELETE",
                self.revoke_endpoint,
                auth=(self.config.client_id, self.config.client_secret or ""),
                json={"access_token": token},
                headers={"Accept": "application/vnd.github.v3+json", "User-Agent": "OAuthBroker/1.0"},
            )

        # 404 means GitHub no longer knows the token
        if response.status_code == 404:
            logger.info("GitHub token already revoked", provider=self.name)
            return True
        response.raise_for_status()
        return True
