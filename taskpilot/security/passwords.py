from __future__ import annotations

import bcrypt

PASSWORD_MIN_LENGTH = 8
# bcrypt only reads the first 72 bytes of its input.
PASSWORD_MAX_LENGTH = 72


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
