"""
Node Identity
-------------
Each peer owns an Ed25519 key pair. Its transport address is derived from the
public key, so a peer can only claim an address it can sign for. Keys live
for the lifetime of the process.
"""

import base64

from Crypto.Hash import SHA256
from Crypto.PublicKey import ECC
from Crypto.Random import get_random_bytes
from Crypto.Signature import eddsa

from ..core.types import Address

ADDRESS_PREFIX = "dsk_"
NONCE_SIZE = 32

# Handshake roles, mixed into what each side signs
INITIATOR = "initiator"
RESPONDER = "responder"


def address_from_public_key(public_key: str) -> Address:
    """
    Derive an address from a base64 DER public key.

    Raises:
        ValueError: If the key is not valid base64
    """
    der = base64.b64decode(public_key, validate=True)
    digest = SHA256.new(der).digest()
    b32_encoded = base64.b32encode(digest[:16]).decode('utf-8').lower().rstrip('=')
    return ADDRESS_PREFIX + b32_encoded


def new_nonce() -> str:
    return base64.b64encode(get_random_bytes(NONCE_SIZE)).decode('utf-8')


def challenge_bytes(role: str, nonce: str, address: Address) -> bytes:
    """What a peer signs to prove it owns ``address`` in answer to ``nonce``."""
    return f"deslack-hello:{role}:{nonce}:{address}".encode('utf-8')


def verify_signature(public_key: str, data: bytes, signature: str) -> bool:
    """Check a base64 Ed25519 signature. Malformed input verifies as False."""
    try:
        key = ECC.import_key(base64.b64decode(public_key, validate=True))
        eddsa.new(key, 'rfc8032').verify(data, base64.b64decode(signature, validate=True))
        return True
    except (ValueError, TypeError):
        return False


class NodeIdentity:
    """A peer's signing key and the address derived from it."""

    def __init__(self, private_key: ECC.EccKey):
        if not private_key.has_private():
            raise ValueError("A node identity needs a private key")
        self.private_key = private_key
        self.public_key = base64.b64encode(
            private_key.public_key().export_key(format='DER')
        ).decode('utf-8')
        self.address = address_from_public_key(self.public_key)

    @classmethod
    def generate(cls) -> 'NodeIdentity':
        return cls(ECC.generate(curve='Ed25519'))

    def sign(self, data: bytes) -> str:
        signature = eddsa.new(self.private_key, 'rfc8032').sign(data)
        return base64.b64encode(signature).decode('utf-8')
