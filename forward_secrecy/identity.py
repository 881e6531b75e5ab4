"""
Long-term identities of the two session parties.

The identity store owns our long-term X25519 key pair and only ever hands
out DH results, never the secret key. Sessions hold it by reference.
"""

import base64
from dataclasses import dataclass

from .primitives import (
    KEY_LENGTH,
    generate_dh_keypair,
    public_key_from_secret,
    dh_exchange,
)


def _check_identity(identity: str) -> None:
    if not isinstance(identity, str) or not identity:
        raise ValueError("Identity must be a non-empty string")
    if not identity.isascii():
        raise ValueError(f"Identity must be ASCII: {identity!r}")


class IdentityStore:
    """
    Our own identity and long-term key pair.

    Args:
        identity: Stable identity handle, e.g. "ECHOECHO"
        secret_key: Raw 32-byte X25519 secret key
    """

    def __init__(self, identity: str, secret_key: bytes):
        _check_identity(identity)
        if len(secret_key) != KEY_LENGTH:
            raise ValueError(f"Secret key must be {KEY_LENGTH} bytes; got {len(secret_key)}")
        self._identity = identity
        self._secret_key = bytes(secret_key)
        self._public_key = public_key_from_secret(self._secret_key)

    @classmethod
    def generate(cls, identity: str) -> 'IdentityStore':
        """Create an identity with a fresh random key pair"""
        secret_key, _ = generate_dh_keypair()
        return cls(identity, secret_key)

    @classmethod
    def from_base64(cls, identity: str, secret_key_b64: str) -> 'IdentityStore':
        return cls(identity, base64.b64decode(secret_key_b64))

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def public_key(self) -> bytes:
        return self._public_key

    def dh(self, peer_public_key: bytes) -> bytes:
        """
        DH between our long-term secret key and a peer public key.

        Raises:
            InvalidPeerKey: If the peer key is malformed or of low order
        """
        return dh_exchange(self._secret_key, peer_public_key)

    def contact(self) -> 'PeerContact':
        """Our public half as the peer sees it"""
        return PeerContact(identity=self._identity, public_key=self._public_key)

    def __repr__(self) -> str:
        return f"IdentityStore(identity={self._identity!r})"


@dataclass(frozen=True)
class PeerContact:
    """
    Peer identity a session is bound to.

    Attributes:
        identity: Peer's stable identity handle
        public_key: Peer's raw 32-byte long-term public key
    """
    identity: str
    public_key: bytes

    def __post_init__(self):
        _check_identity(self.identity)
        if not isinstance(self.public_key, bytes) or len(self.public_key) != KEY_LENGTH:
            raise ValueError(f"Public key must be {KEY_LENGTH} bytes")
