"""
Shared fixtures for the OAuth broker test suites
"""
from typing import List, Optional
from urllib.parse import urlencode, urlsplit, parse_qs

import pytest
from cryptography.fernet import Fernet

from oauth_broker.core.dispatcher import OAuthDispatcher
from oauth_broker.core.registry import AuthenticatorRegistry
from oauth_broker.core.state import StateCodec
from oauth_broker.core.storage import MemoryTokenStore
from oauth_broker.core.subjects import Subject
from oauth_broker.core.tokens import PersonalAccessTokenManager
from oauth_broker.providers.base import (
    OAuthAuthenticator,
    OAuthAuthenticationError,
    ProtocolVersion,
    ProviderConfig,
)

class StubAuthenticator(OAuthAuthenticator):
    """Authenticator that records calls instead of talking to a provider"""

    def __init__(self, name: str, protocol: ProtocolVersion, store, fail_callback: bool = False):
        super().__init__(
            ProviderConfig(client_id=f"{name}-client", endpoint_url=f"https://{name}.example.com/"),
            store,
        )
        self.name = name
        self.protocol = protocol
        self.fail_callback = fail_callback
        self.revoke_result = True
        self.callbacks = []

    async def get_authenticate_url(self, callback_url: str, state: str, scopes: List[str]) -> str:
        params = {"redirect_uri": callback_url, "state": state, "scope": " ".join(scopes)}
        return f"{self.endpoint_url}/authorize?{urlencode(params)}"

    async def callback(self, request_url: str, scopes: List[str], user_id: Optional[str]) -> str:
        self.callbacks.append((request_url, scopes, user_id))
        if self.fail_callback:
            raise OAuthAuthenticationError(description="provider rejected the code")
        code = parse_qs(urlsplit(request_url).query)["code"][0]
        await self.store.put(self.name, user_id, f"token-for-{code}")
        return user_id

    async def revoke(self, token: str) -> bool:
        return self.revoke_result


@pytest.fixture
def cipher():
    """Fernet cipher with a throwaway key"""
    return Fernet(Fernet.generate_key())


@pytest.fixture
def store(cipher):
    return MemoryTokenStore(cipher)


@pytest.fixture
def github(store):
    return StubAuthenticator("github", ProtocolVersion.OAUTH2, store)


@pytest.fixture
def bitbucket(store):
    return StubAuthenticator("bitbucket-server", ProtocolVersion.OAUTH1, store)


@pytest.fixture
def registry(github, bitbucket):
    return AuthenticatorRegistry([github, bitbucket])


@pytest.fixture
def state_secret():
    return "test_state_secret_123"


@pytest.fixture
def jwt_secret():
    return "test_jwt_secret_123"


@pytest.fixture
def stub_authenticator(store):
    """Factory for extra stub authenticators sharing the fixture store"""
    def make(name, protocol=ProtocolVersion.OAUTH2):
        return StubAuthenticator(name, protocol, store)
    return make


@pytest.fixture
def state_codec(state_secret):
    return StateCodec(state_secret)


@pytest.fixture
def dispatcher(registry, store, state_codec):
    return OAuthDispatcher(
        registry=registry,
        token_manager=PersonalAccessTokenManager(store),
        state_codec=state_codec,
        error_page="https://che.example.com/error/access-denied",
    )


@pytest.fixture
def subject():
    return Subject(user_id="user-123", user_name="jdoe")
