"""
Personal Access Tokens
Subject-level view over stored SCM credentials
"""

from typing import Optional

import structlog
from pydantic import BaseModel

from .storage import TokenStore, TokenStoreError
from .subjects import Subject

logger = structlog.get_logger()


class ScmError(Exception):
    """Base class for token manager failures"""


class ScmPersistenceError(ScmError):
    """The credential backend could not be read or written"""


class ScmUnauthorizedError(ScmError):
    """The subject is not allowed to access the credential"""


class ScmCommunicationError(ScmError):
    """The SCM provider could not be reached"""


class PersonalAccessToken(BaseModel):
    provider: str
    user_id: str
    user_name: str
    token: str
    scm_url: Optional[str] = None


class PersonalAccessTokenManager:
    """Looks up and removes stored tokens on behalf of a subject"""

    def __init__(self, store: TokenStore):
        self.store = store

    async def get(
        self, subject: Subject, provider: str, scm_url: Optional[str] = None
    ) -> Optional[PersonalAccessToken]:
        if subject.is_anonymous:
            raise ScmUnauthorizedError("Anonymous subjects have no personal access tokens")
        try:
            token = await self.store.get(provider, subject.user_id)
            if token is None:
                token = await self.store.get(provider, subject.user_name)
        except TokenStoreError as e:
            raise ScmPersistenceError(str(e)) from e

        if token is None:
            logger.debug("No personal access token", provider=provider, user_id=subject.user_id)
            return None

        return PersonalAccessToken(
            provider=provider,
            user_id=subject.user_id,
            user_name=subject.user_name,
            token=token,
            scm_url=scm_url,
        )
