from Crypto.Hash import SHA512
from Crypto.Protocol.KDF import PBKDF2
from Crypto.Random import get_random_bytes
import base64
import hmac

# Security constants
PBKDF2_ITERATIONS = 600000
PBKDF2_DIGEST = "sha512"
SALT_BYTES = 16
KEY_BYTES = 64


def _derive(password, salt, iterations):
    return PBKDF2(password.encode('utf-8'), salt, dkLen=KEY_BYTES,
                  count=iterations, hmac_hash_module=SHA512)


def hash_password(password, iterations=PBKDF2_ITERATIONS):
    """
    Hash a password for storage.

    Format: ``pbkdf2_sha512$<iterations>$<salt b64>$<key b64>``
    """
    salt = get_random_bytes(SALT_BYTES)
    key = _derive(password, salt, iterations)
    return "$".join([
        f"pbkdf2_{PBKDF2_DIGEST}",
        str(iterations),
        base64.b64encode(salt).decode('utf-8'),
        base64.b64encode(key).decode('utf-8'),
    ])


def verify_password(password, password_hash):
    """Check a password against a stored hash. Malformed hashes never verify."""
    try:
        scheme, iterations, salt_b64, key_b64 = password_hash.split("$")
        if scheme != f"pbkdf2_{PBKDF2_DIGEST}":
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(key_b64)
        key = _derive(password, salt, int(iterations))
    except (ValueError, TypeError):
        return False
    return hmac.compare_digest(key, expected)
