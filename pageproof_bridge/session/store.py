"""
Session Store
=============
Persists a PageProof login session to disk, encrypted with Fernet.

The stored document is tagged with the login email and a SHA-256 hash of
the password; a session saved under different credentials is ignored on
load so a credential change forces a fresh login. Every file access runs
under the store's ResourceLock. Callbacks registered with ``on_change`` run
after every save and clear.
"""

import asyncio
import base64
import hashlib
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from cryptography.fernet import Fernet, InvalidToken

from ..locking import ResourceLock

logger = structlog.get_logger(__name__)

EMAIL_TAG = "__email"
PASSWORD_HASH_TAG = "__passwordHash"

_PBKDF2_SALT = b"pageproof-bridge-session-v1"
_PBKDF2_ITERATIONS = 100_000


def derive_fernet_key(encryption_key: str) -> bytes:
    """Derive a Fernet key from an arbitrary key string via PBKDF2."""
    dk = hashlib.pbkdf2_hmac(
        "sha256", encryption_key.encode(), _PBKDF2_SALT, _PBKDF2_ITERATIONS,
    )
    return base64.urlsafe_b64encode(dk)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


class SessionStore:
    """
    Encrypted, credential-tagged session file.
    
    Example:
        store = SessionStore("./session.json", os.environ["SESSION_ENCRYPTION_KEY"])
        session = await store.load(email, password)
        if session is None:
            session = await login(email, password)
            await store.save(session, email, password)
    """
    
    def __init__(self, path: Union[str, Path], encryption_key: str):
        if not encryption_key:
            raise ValueError("encryption_key is required")
        self.path = Path(path)
        self._fernet = Fernet(derive_fernet_key(encryption_key))
        self.lock = ResourceLock(f"session:{self.path.name}")
        self._listeners: List[Callable[[], Any]] = []
    
    def on_change(self, callback: Callable[[], Any]) -> None:
        self._listeners.append(callback)
    
    def _changed(self) -> None:
        for callback in self._listeners:
            callback()
    
    def _read_document(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            logger.info("session_file_not_found", path=str(self.path))
            return None
        token = self.path.read_bytes()
        return json.loads(self._fernet.decrypt(token).decode("utf-8"))
    
    def _write_document(self, document: Dict[str, Any]) -> None:
        token = self._fernet.encrypt(json.dumps(document).encode("utf-8"))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(token)
    
    async def _read_safely(self) -> Optional[Dict[str, Any]]:
        try:
            document = await asyncio.to_thread(self._read_document)
        except (InvalidToken, ValueError, OSError) as e:
            logger.warning("session_read_failed", path=str(self.path), error=type(e).__name__)
            return None
        if document is not None and not isinstance(document, dict):
            logger.warning("session_read_failed", path=str(self.path), error="not_a_mapping")
            return None
        return document
    
    async def load(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Return the stored session for these credentials.
        
        None when the file is missing or unreadable, or when it was saved
        under a different email or password.
        """
        password_hash = hash_password(password)
        async with self.lock.exclusive():
            document = await self._read_safely()
        if document is None:
            return None
        if document.get(EMAIL_TAG) != email or document.get(PASSWORD_HASH_TAG) != password_hash:
            logger.info("session_credentials_changed")
            return None
        document.pop(EMAIL_TAG, None)
        document.pop(PASSWORD_HASH_TAG, None)
        logger.info("session_loaded")
        return document
    
    async def save(self, session: Dict[str, Any], email: str, password: str) -> None:
        """Encrypt and write the session tagged with the credentials."""
        document = dict(session)
        document[EMAIL_TAG] = email
        document[PASSWORD_HASH_TAG] = hash_password(password)
        async with self.lock.exclusive():
            try:
                await asyncio.to_thread(self._write_document, document)
            except OSError:
                logger.exception("session_save_failed", path=str(self.path))
                raise
        logger.info("session_saved")
        self._changed()
    
    async def current_user(self) -> Optional[str]:
        """Email the stored session was saved under, if any."""
        async with self.lock.exclusive():
            document = await self._read_safely()
        if document is None:
            return None
        return document.get(EMAIL_TAG)
    
    async def clear(self) -> bool:
        """Delete the session file. Returns True if a file was removed."""
        async with self.lock.exclusive():
            try:
                await asyncio.to_thread(self.path.unlink)
            except FileNotFoundError:
                return False
        logger.info("session_cleared", path=str(self.path))
        self._changed()
        return True
