"""
Token Storage
Encrypted persistence of OAuth tokens keyed by provider and user
"""

import os
import base64
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import psycopg2
import structlog
from cryptography.fernet import Fernet, InvalidToken

logger = structlog.get_logger()


class TokenStoreError(Exception):
    """Raised when the storage backend cannot be read or written"""


def build_cipher(encryption_key: Optional[str] = None) -> Fernet:
    """Create the Fernet cipher used for tokens at rest"""
    encryption_key = encryption_key or os.getenv("ENCRYPTION_KEY")
    if not encryption_key:
        # Generate a key for development (should be set in production)
        encryption_key = Fernet.generate_key().decode()
        logger.warning("No ENCRYPTION_KEY found, using generated key for development")

    if isinstance(encryption_key, str):
        encryption_key = encryption_key.encode()

    return Fernet(encryption_key)


class TokenStore(ABC):
    """Provider/user keyed token storage with encryption at rest"""

    def __init__(self, cipher: Optional[Fernet] = None):
        self.cipher_suite = cipher or build_cipher()

    @abstractmethod
    async def get(self, provider: str, user_key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def put(self, provider: str, user_key: str, token: str) -> None:
        pass

    @abstractmethod
    async def delete(self, provider: str, user_key: str) -> None:
        pass

    @abstractmethod
    async def find(self, provider: str, token: str) -> List[str]:
        """Return the user keys holding the given token"""
        pass

    async def delete_token(self, provider: str, token: str) -> int:
        """Remove every entry holding the given token"""
        user_keys = await self.find(provider, token)
        for user_key in user_keys:
            await self.delete(provider, user_key)
        return len(user_keys)

    def _encrypt_token(self, token: str) -> str:
        """Encrypt token for secure storage"""
        encrypted_bytes = self.cipher_suite.encrypt(token.encode())
        return base64.b64encode(encrypted_bytes).decode()

    def _decrypt_token(self, encrypted_token: str) -> str:
        """Decrypt token from storage"""
        try:
            encrypted_bytes = base64.b64decode(encrypted_token.encode())
            return self.cipher_suite.decrypt(encrypted_bytes).decode()
        except (InvalidToken, ValueError) as e:
            logger.error("Token decryption failed", error=str(e))
            raise TokenStoreError("Stored token could not be decrypted") from e


class MemoryTokenStore(TokenStore):
    """In-process token store, the default when no database is configured"""

    def __init__(self, cipher: Optional[Fernet] = None):
        super().__init__(cipher)
        self._tokens: Dict[Tuple[str, str], str] = {}

    async def get(self, provider: str, user_key: str) -> Optional[str]:
        encrypted = self._tokens.get((provider, user_key))
        if encrypted is None:
            return None
        return self._decrypt_token(encrypted)

    async def put(self, provider: str, user_key: str, token: str) -> None:
        self._tokens[(provider, user_key)] = self._encrypt_token(token)

    async def delete(self, provider: str, user_key: str) -> None:
        self._tokens.pop((provider, user_key), None)

    async def find(self, provider: str, token: str) -> List[str]:
        return [
            user_key
            for (entry_provider, user_key), encrypted in list(self._tokens.items())
            if entry_provider == provider and self._decrypt_token(encrypted) == token
        ]


class PostgresTokenStore(TokenStore):
    """Token store backed by a PostgreSQL table"""

    TABLE = "oauth_tokens"

    def __init__(self, database_url: str, cipher: Optional[Fernet] = None):
        super().__init__(cipher)
        self.database_url = database_url
        self._schema_ready = False

    def get_connection(self):
        """Get database connection"""
        return psycopg2.connect(self.database_url)

    def _execute(self, query: str, params: tuple, fetch: bool = False) -> List[tuple]:
        try:
            conn = self.get_connection()
            try:
                create_schema = not self._schema_ready
                with conn.cursor() as cur:
                    if create_schema:
                        cur.execute(f"""
                            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                                provider TEXT NOT NULL,
                                user_key TEXT NOT NULL,
                                token TEXT NOT NULL,
                                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                                PRIMARY KEY (provider, user_key)
                            )
                        """)
                    cur.execute(query, params)
                    rows = cur.fetchall() if fetch else []
                conn.commit()
                if create_schema:
                    self._schema_ready = True
                return rows
            finally:
                conn.close()
        except psycopg2.Error as e:
            logger.error("Token store query failed", error=str(e))
            raise TokenStoreError(str(e)) from e

    async def _run(self, query: str, params: tuple, fetch: bool = False) -> List[tuple]:
        return await asyncio.to_thread(self._execute, query, params, fetch)

    async def get(self, provider: str, user_key: str) -> Optional[str]:
        rows = await self._run(
            f"SELECT token FROM {self.TABLE} WHERE provider = %s AND user_key = %s",
            (provider, user_key),
            fetch=True,
        )
        if not rows:
            return None
        return self._decrypt_token(rows[0][0])

    async def put(self, provider: str, user_key: str, token: str) -> None:
        await self._run(f"""
            INSERT INTO {self.TABLE} (provider, user_key, token)
            VALUES (%s, %s, %s)
            ON CONFLICT (provider, user_key)
            DO UPDATE SET token = EXCLUDED.token, updated_at = CURRENT_TIMESTAMP
        """, (provider, user_key, self._encrypt_token(token)))

    async def delete(self, provider: str, user_key: str) -> None:
        await self._run(
            f"DELETE FROM {self.TABLE} WHERE provider = %s AND user_key = %s",
            (provider, user_key),
        )

    async def find(self, provider: str, token: str) -> List[str]:
        # Fernet output is salted, so matching happens after decryption
        rows = await self._run(
            f"SELECT user_key, token FROM {self.TABLE} WHERE provider = %s",
            (provider,),
            fetch=True,
        )
        return [user_key for user_key, encrypted in rows if self._decrypt_token(encrypted) == token]
