from __future__ import annotations

import bcrypt

# bcrypt only looks at the first 72 bytes and newer releases reject longer input
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # Federated (firebase) accounts carry no password and can never log in this way
    if not hashed_password:
        return False
    return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
