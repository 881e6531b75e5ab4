"""
Cryptographic Primitives for the Forward Secrecy Session

This module provides the foundational operations the DH session is built on:
X25519 key agreement, the BLAKE2b key derivation function, AES-256-GCM for
the messaging layer and helpers to wipe secret buffers.
"""

import os
import hmac
import hashlib
from typing import Tuple, Union
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, InvalidPeerKey


KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16

KDF_PERSONAL = b"3ma-e2e"

# hashlib.blake2b parameter limits
_BLAKE2B_MAX_KEY = 64
_BLAKE2B_MAX_SALT = 16

_ZERO_SECRET = b"\x00" * KEY_LENGTH


def generate_dh_keypair() -> Tuple[bytes, bytes]:
    """
    Generate a Curve25519 Diffie-Hellman keypair for key exchange.

    Returns:
        Tuple of (raw private key, raw public key), 32 bytes each
    """
    private_key = X25519PrivateKey.generate()
    return private_key.private_bytes_raw(), serialize_public_key(private_key.public_key())


def public_key_from_secret(secret_key: bytes) -> bytes:
    """Derive the raw X25519 public key for a raw secret key"""
    if len(secret_key) != KEY_LENGTH:
        raise ValueError(f"Secret key must be {KEY_LENGTH} bytes; got {len(secret_key)}")
    private_key = X25519PrivateKey.from_private_bytes(bytes(secret_key))
    return serialize_public_key(private_key.public_key())


def dh_exchange(private_key: Union[bytes, bytearray], public_key: bytes) -> bytes:
    """
    Perform Diffie-Hellman key exchange.

    Args:
        private_key: Our raw private key
        public_key: Their raw public key

    Returns:
        32-byte shared secret

    Raises:
        InvalidPeerKey: If the public key is malformed or of low order
    """
    peer_key = deserialize_public_key(public_key)
    own_key = X25519PrivateKey.from_private_bytes(bytes(private_key))
    try:
        shared = own_key.exchange(peer_key)
    except ValueError as e:
        # Raised by the backend for an all-zero result
        raise InvalidPeerKey(f"DH with peer key failed: {e}") from e
    if constant_time_compare(shared, _ZERO_SECRET):
        raise InvalidPeerKey("Peer public key is a low-order point")
    return shared


def derive_key(key: bytes, salt: bytes, length: int = KEY_LENGTH) -> bytes:
    """
    Keyed BLAKE2b key derivation.

    Args:
        key: Input key material
        salt: Domain separation label
        length: Output length in bytes

    Returns:
        Derived key
    """
    key = bytes(key)
    if len(key) > _BLAKE2B_MAX_KEY:
        key = hashlib.blake2b(key, digest_size=_BLAKE2B_MAX_KEY).digest()
    if len(salt) > _BLAKE2B_MAX_SALT:
        salt = hashlib.blake2b(salt, digest_size=_BLAKE2B_MAX_SALT).digest()
    return hashlib.blake2b(
        key=key,
        salt=salt,
        person=KDF_PERSONAL,
        digest_size=length,
    ).digest()


def encrypt_message(key: bytes, plaintext: bytes, associated_data: bytes = b"") -> bytes:
    """
    Encrypt a message using AES-256-GCM.

    Args:
        key: 32-byte encryption key
        plaintext: Message to encrypt
        associated_data: Additional authenticated data

    Returns:
        nonce (12 bytes) + ciphertext + tag (16 bytes)
    """
    nonce = os.urandom(NONCE_LENGTH)
    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(nonce, plaintext, associated_data)
    return nonce + ciphertext


def decrypt_message(key: bytes, ciphertext: bytes, associated_data: bytes = b"") -> bytes:
    """
    Decrypt a message using AES-256-GCM.

    Args:
        key: 32-byte encryption key
        ciphertext: nonce + encrypted message + tag
        associated_data: Additional authenticated data

    Returns:
        Decrypted plaintext

    Raises:
        CryptoError: If decryption fails
    """
    if len(ciphertext) < NONCE_LENGTH + TAG_LENGTH:
        raise CryptoError("Ciphertext too short")

    nonce = ciphertext[:NONCE_LENGTH]
    actual_ciphertext = ciphertext[NONCE_LENGTH:]

    aesgcm = AESGCM(key)
    try:
        return aesgcm.decrypt(nonce, actual_ciphertext, associated_data)
    except Exception as e:
        raise CryptoError(f"Decryption failed: {str(e)}") from e


def serialize_public_key(public_key: X25519PublicKey) -> bytes:
    """Serialize X25519 public key to bytes"""
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw
    )


def deserialize_public_key(key_bytes: bytes) -> X25519PublicKey:
    """
    Deserialize bytes to X25519 public key.

    Raises:
        InvalidPeerKey: If the input is not a 32-byte key
    """
    if not isinstance(key_bytes, (bytes, bytearray)) or len(key_bytes) != KEY_LENGTH:
        raise InvalidPeerKey(f"Public key must be {KEY_LENGTH} bytes")
    return X25519PublicKey.from_public_bytes(bytes(key_bytes))


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison to prevent timing attacks.

    Args:
        a: First byte string
        b: Second byte string

    Returns:
        True if equal, False otherwise
    """
    return hmac.compare_digest(a, b)


def secure_erase(buffer: bytearray) -> None:
    """Overwrite a secret buffer with zeros in place"""
    for i in range(len(buffer)):
        buffer[i] = 0
