import bcrypt
from flask import current_app


def validate_password(plain_password) -> list:
    """Return a list of problems; empty when the password is acceptable."""
    min_length = current_app.config.get("PASSWORD_MIN_LENGTH", 6)
    if not isinstance(plain_password, str) or not plain_password:
        return ["Password is required"]
    errors = []
    if len(plain_password) < min_length:
        errors.append(f"Password must be at least {min_length} characters")
    # bcrypt ignores everything past 72 bytes
    if len(plain_password.encode("utf-8")) > 72:
        errors.append("Password is too long")
    return errors


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False
