import hashlib
import hmac
import secrets

PBKDF2_ITERATIONS = 60_000
HASH_PREFIX = "pbkdf2_sha256"


def get_password_hash(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return f"{HASH_PREFIX}${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str | None) -> bool:
    if not stored or password is None:
        return False

    if not stored.startswith(f"{HASH_PREFIX}$"):
        # Rows written before hashing was introduced hold the raw password.
        return hmac.compare_digest(password.encode("utf-8"), stored.encode("utf-8"))

    try:
        _, iterations_raw, salt, expected = stored.split("$", 3)
        iterations = int(iterations_raw)
    except ValueError:
        return False

    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return hmac.compare_digest(digest.hex(), expected)
