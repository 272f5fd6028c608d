# app/utils/security.py

"""
Password hashing for customer, seller and admin accounts.
passlib with sha256_crypt has a pure-python backend, so no native bcrypt build is needed.
"""

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["sha256_crypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Salted SHA-256 crypt hash of the plain password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """True when the plain password matches the stored hash; accounts without a hash never match."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)
