"""
Subject Resolution
Identifies the platform user behind a request
"""

from typing import Optional, Dict, Any

import jwt
from jwt import InvalidTokenError
from pydantic import BaseModel

from .errors import UnauthorizedError


class Subject(BaseModel):
    """Platform user on whose behalf tokens are stored"""
    user_id: str
    user_name: str
    token: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id == ANONYMOUS.user_id


ANONYMOUS = Subject(user_id="0000-00-0000", user_name="Anonymous")


class SubjectResolver:
    """Verifies platform bearer tokens (HS256 JWT) and builds subjects"""

    def __init__(self, secret_key: str, algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify and decode JWT token"""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except InvalidTokenError as e:
            raise UnauthorizedError(f"Invalid token: {str(e)}") from e

    def resolve(self, token: str) -> Subject:
        payload = self.verify_token(token)
        user_id = payload.get("sub")
        if not user_id:
            raise UnauthorizedError("Token has no subject")
        return Subject(
            user_id=str(user_id),
            user_name=payload.get("username") or str(user_id),
            token=token,
        )
