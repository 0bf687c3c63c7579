"""
Session
=======
Encrypted persistence for the PageProof login session.
"""

from .store import EMAIL_TAG, PASSWORD_HASH_TAG, SessionStore, derive_fernet_key, hash_password

__all__ = [
    "EMAIL_TAG",
    "PASSWORD_HASH_TAG",
    "SessionStore",
    "derive_fernet_key",
    "hash_password",
]
