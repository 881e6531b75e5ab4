"""
Forward security sessions for end-to-end encrypted messaging.

Implements a pairwise DH session with:
- 2DH key agreement usable before the peer's ephemeral key is known
- 4DH key agreement binding both long-term and both ephemeral keys
- KDF ratchets for per-message key rotation with bounded catch-up
"""

from .config import ForwardSecrecyConfig
from .errors import (
    CryptoError,
    DHSessionError,
    InvalidPeerKey,
    IdentityMismatch,
    AlreadyEstablished,
    IllegalSessionState,
    RatchetError,
    RatchetExhausted,
    RatchetRegression,
    RatchetSkipTooLarge,
)
from .identity import IdentityStore, PeerContact
from .ratchet import KDFRatchet
from .session import (
    DHSession,
    DHSessionID,
    Direction,
    Generation,
    Role,
    SessionState,
    create_initiator_session,
    create_responder_session,
)
from .status import ForwardSecurityStatusListener, LoggingStatusListener

__all__ = [
    'ForwardSecrecyConfig',
    'CryptoError',
    'DHSessionError',
    'InvalidPeerKey',
    'IdentityMismatch',
    'AlreadyEstablished',
    'IllegalSessionState',
    'RatchetError',
    'RatchetExhausted',
    'RatchetRegression',
    'RatchetSkipTooLarge',
    'IdentityStore',
    'PeerContact',
    'KDFRatchet',
    'DHSession',
    'DHSessionID',
    'Direction',
    'Generation',
    'Role',
    'SessionState',
    'create_initiator_session',
    'create_responder_session',
    'ForwardSecurityStatusListener',
    'LoggingStatusListener',
]
