"""
Authenticator Registry
Single provider-name keyed registry for OAuth1 and OAuth2 authenticators
"""

from typing import Dict, List, Optional

from oauth_broker.providers.base import OAuthAuthenticator, ProtocolVersion


class AuthenticatorRegistry:
    """Registered authenticators, each tagged with its protocol version"""

    def __init__(self, authenticators: Optional[List[OAuthAuthenticator]] = None):
        self._authenticators: Dict[str, OAuthAuthenticator] = {}
        for authenticator in authenticators or []:
            self.register(authenticator)

    def register(self, authenticator: OAuthAuthenticator) -> None:
        if authenticator.name in self._authenticators:
            raise ValueError(f"Provider '{authenticator.name}' is already registered")
        self._authenticators[authenticator.name] = authenticator

    def get(self, name: Optional[str]) -> Optional[OAuthAuthenticator]:
        if name is None:
            return None
        return self._authenticators.get(name)

    def names(self, protocol: Optional[ProtocolVersion] = None) -> List[str]:
        return sorted(
            name
            for name, authenticator in self._authenticators.items()
            if protocol is None or authenticator.protocol == protocol
        )

    def authenticators(self) -> List[OAuthAuthenticator]:
        return [self._authenticators[name] for name in self.names()]
