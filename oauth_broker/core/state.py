"""
Callback State
Signed encoding of the parameters round-tripped through the provider
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import urlsplit, parse_qs

import jwt
from jwt import InvalidTokenError
from pydantic import BaseModel, ValidationError

from .errors import BadRequestError


class InvalidStateError(BadRequestError):
    """Raised for missing, tampered or expired state values"""


class CallbackState(BaseModel):
    """Authenticate-time parameters needed again at callback time"""
    oauth_provider: str
    scope: List[str] = []
    redirect_after_login: Optional[str] = None
    user_id: Optional[str] = None


class StateCodec:
    """Signs and verifies CallbackState values"""

    def __init__(self, secret_key: str, algorithm: str = "HS256", max_age: timedelta = timedelta(minutes=10)):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.max_age = max_age

    def encode(self, state: CallbackState) -> str:
        now = datetime.now(timezone.utc)
        payload = state.model_dump(exclude_none=True)
        payload.update({"iat": now, "exp": now + self.max_age})
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode(self, value: Optional[str]) -> CallbackState:
        if not value:
            raise InvalidStateError("Missing state parameter")
        try:
            payload = jwt.decode(value, self.secret_key, algorithms=[self.algorithm])
        except InvalidTokenError as e:
            raise InvalidStateError(f"Invalid state parameter: {str(e)}") from e
        payload.pop("iat", None)
        payload.pop("exp", None)
        try:
            return CallbackState(**payload)
        except ValidationError as e:
            raise InvalidStateError("Malformed state parameter") from e


def state_from_url(url: str) -> Optional[str]:
    """Extract the state query parameter from a callback URL"""
    values = parse_qs(urlsplit(url).query).get("state")
    return values[0] if values else None
