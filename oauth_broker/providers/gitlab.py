"""
GitLab OAuth Authenticator
GitLab.com or self-managed instances over OAuth 2.0
"""

from .base import ProviderConfig
from .oauth2 import OAuth2Authenticator, UserInfo


class GitLabConfig(ProviderConfig):
    endpoint_url: str = "https://gitlab.com"
    scopes: list[str] = ["api", "write_repository", "openid"]


class GitLabAuthenticator(OAuth2Authenticator):
    """GitLab OAuth authenticator"""

    name = "gitlab"

    async def get_user_info(self, access_token: str) -> UserInfo:
        async with self.http_client() as client:
            response = await client.get(
                f"{self.endpoint_url}/api/v4/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            user_data = response.json()

        return UserInfo(
            id=str(user_data["id"]),
            username=user_data["username"],
            email=user_data.get("email"),
            raw_data=user_data,
        )

    async def revoke(self, token: str) -> bool:
        async with self.http_client() as client:
            response = await client.post(
                f"{self.endpoint_url}/oauth/revoke",
                data={
                    "client_id": self.config.client_id,
                    "client_secret": self.config.client_secret,
                    "token": token,
                },
            )
        return response.status_code == 200
