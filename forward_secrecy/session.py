"""
DH Session

Pairwise forward security session between two identities.

The initiator sends its ephemeral public key and can encrypt right away
with the 2DH chain, which only needs its own ephemeral key and both
long-term keys. The responder replies with its own ephemeral public key;
from then on both parties use the 4DH chain, which mixes in every
combination of long-term and ephemeral keys. Ephemeral private keys are
wiped as soon as the 4DH chain keys have been derived.
"""

import os
import logging
import threading
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Tuple

from .config import DEFAULT_CONFIG, ForwardSecrecyConfig
from .errors import AlreadyEstablished, IdentityMismatch, IllegalSessionState, InvalidPeerKey, RatchetExhausted
from .identity import IdentityStore, PeerContact
from .primitives import (
    generate_dh_keypair,
    dh_exchange,
    derive_key,
    constant_time_compare,
    secure_erase,
)
from .ratchet import KDFRatchet
from .status import ForwardSecurityStatusListener

logger = logging.getLogger(__name__)

SESSION_ID_LENGTH = 16

KE_SALT_2DH_PREFIX = b"ke-2dh-"
KE_SALT_4DH_PREFIX = b"ke-4dh-"


class Role(Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"


class Direction(Enum):
    OUTGOING = "outgoing"
    INCOMING = "incoming"


class Generation(Enum):
    TWO_DH = "2dh"
    FOUR_DH = "4dh"


class SessionState(Enum):
    """
    INITIATOR_2DH: initiator waiting for the responder's ephemeral key
    RESPONDER_4DH: responder with 4DH ratchets, still accepting 2DH messages
    ESTABLISHED: 4DH only, all 2DH ratchets discarded
    """
    INITIATOR_2DH = "initiator-2dh"
    RESPONDER_4DH = "responder-4dh"
    ESTABLISHED = "established"


@dataclass(frozen=True)
class DHSessionID:
    """Random session identifier chosen by the initiator"""
    value: bytes

    def __post_init__(self):
        if not isinstance(self.value, bytes) or len(self.value) != SESSION_ID_LENGTH:
            raise ValueError(f"Session ID must be {SESSION_ID_LENGTH} bytes")

    @classmethod
    def generate(cls) -> 'DHSessionID':
        return cls(os.urandom(SESSION_ID_LENGTH))

    @classmethod
    def from_hex(cls, value: str) -> 'DHSessionID':
        return cls(bytes.fromhex(value))

    def __str__(self) -> str:
        return self.value.hex()


def _check_peer(identity_store: IdentityStore, peer: PeerContact):
    if identity_store.identity == peer.identity:
        raise ValueError("Cannot create a session with our own identity")


class DHSession:
    """
    Forward security session with one peer.

    Use DHSession.initiate() or DHSession.respond() (or the module level
    create_* functions) rather than calling the constructor directly.
    All public operations are serialized by a per-session lock.
    """

    def __init__(self, session_id: DHSessionID, role: Role, identity_store: IdentityStore,
                 peer: PeerContact, my_ephemeral_public_key: bytes,
                 my_ephemeral_private_key: Optional[bytes] = None,
                 config: Optional[ForwardSecrecyConfig] = None,
                 listener: Optional[ForwardSecurityStatusListener] = None):
        _check_peer(identity_store, peer)
        self.id = session_id
        self.role = role
        self.identity_store = identity_store
        self.peer = peer
        self.config = config or DEFAULT_CONFIG
        self.listener = listener or ForwardSecurityStatusListener()

        self.my_ephemeral_public_key = my_ephemeral_public_key
        self._my_ephemeral_private_key: Optional[bytearray] = (
            bytearray(my_ephemeral_private_key) if my_ephemeral_private_key is not None else None
        )
        self.peer_ephemeral_public_key: Optional[bytes] = None

        self.my_ratchet_2dh: Optional[KDFRatchet] = None
        self.peer_ratchet_2dh: Optional[KDFRatchet] = None
        self.my_ratchet_4dh: Optional[KDFRatchet] = None
        self.peer_ratchet_4dh: Optional[KDFRatchet] = None

        self._lock = threading.RLock()

    @classmethod
    def initiate(cls, identity_store: IdentityStore, peer: PeerContact,
                 config: Optional[ForwardSecrecyConfig] = None,
                 listener: Optional[ForwardSecurityStatusListener] = None) -> 'DHSession':
        """
        Start a new session as initiator.

        Args:
            identity_store: Our identity
            peer: Identity and long-term public key of the peer

        Returns:
            Session with usable 2DH ratchets

        Raises:
            InvalidPeerKey: If the peer long-term key is of low order
        """
        _check_peer(identity_store, peer)
        # Validates the peer key before any ephemeral secret exists
        dh_static_static = identity_store.dh(peer.public_key)

        ephemeral_private, ephemeral_public = generate_dh_keypair()
        session = cls(DHSessionID.generate(), Role.INITIATOR, identity_store, peer,
                      ephemeral_public, ephemeral_private, config, listener)
        try:
            dh_ephemeral_static = dh_exchange(session._my_ephemeral_private_key, peer.public_key)
            session.my_ratchet_2dh, session.peer_ratchet_2dh = session._derive_ratchets(
                KE_SALT_2DH_PREFIX, dh_static_static + dh_ephemeral_static
            )
        except Exception:
            session._erase_ephemeral_private_key()
            raise

        session.listener.new_session_initiated(session, peer)
        return session

    @classmethod
    def respond(cls, session_id: DHSessionID, peer_ephemeral_public_key: bytes,
                identity_store: IdentityStore, peer: PeerContact,
                config: Optional[ForwardSecrecyConfig] = None,
                listener: Optional[ForwardSecurityStatusListener] = None) -> 'DHSession':
        """
        Create the responder side of a session from the initiator's ephemeral key.

        Args:
            session_id: Session ID chosen by the initiator
            peer_ephemeral_public_key: Initiator's ephemeral public key
            identity_store: Our identity
            peer: Identity and long-term public key of the initiator

        Returns:
            Session with 4DH ratchets and the incoming 2DH ratchet

        Raises:
            InvalidPeerKey: If the ephemeral key is malformed or of low order
        """
        _check_peer(identity_store, peer)
        if not isinstance(session_id, DHSessionID):
            session_id = DHSessionID(bytes(session_id))
        try:
            dh_static_static = identity_store.dh(peer.public_key)
            dh_static_ephemeral = identity_store.dh(peer_ephemeral_public_key)
        except InvalidPeerKey:
            logger.warning("Rejected handshake for session %s from %s: invalid peer key",
                           session_id, peer.identity)
            raise

        ephemeral_private, ephemeral_public = generate_dh_keypair()
        ephemeral_private = bytearray(ephemeral_private)
        try:
            dh_ephemeral_static = dh_exchange(ephemeral_private, peer.public_key)
            dh_ephemeral_ephemeral = dh_exchange(ephemeral_private, peer_ephemeral_public_key)
        finally:
            secure_erase(ephemeral_private)

        session = cls(session_id, Role.RESPONDER, identity_store, peer,
                      ephemeral_public, None, config, listener)
        session.peer_ephemeral_public_key = bytes(peer_ephemeral_public_key)

        # Responder never sends with 2DH
        unused_ratchet, session.peer_ratchet_2dh = session._derive_ratchets(
            KE_SALT_2DH_PREFIX, dh_static_static + dh_static_ephemeral
        )
        unused_ratchet.discard()
        session.my_ratchet_4dh, session.peer_ratchet_4dh = session._derive_ratchets(
            KE_SALT_4DH_PREFIX,
            dh_static_static + dh_static_ephemeral + dh_ephemeral_static + dh_ephemeral_ephemeral
        )

        session.listener.responder_session_established(session, peer)
        return session

    def _derive_ratchets(self, salt_prefix: bytes, key_material: bytes) -> Tuple[KDFRatchet, KDFRatchet]:
        """
        Derive the (my, peer) ratchet pair of one generation.

        Each direction is salted with the identity of the party sending on it,
        so our outgoing chain is the peer's incoming chain.
        """
        my_chain_key = derive_key(key_material, salt_prefix + self.identity_store.identity.encode('ascii'))
        peer_chain_key = derive_key(key_material, salt_prefix + self.peer.identity.encode('ascii'))
        return (
            KDFRatchet(my_chain_key, self.config.initial_counter, self.config.max_skip),
            KDFRatchet(peer_chain_key, self.config.initial_counter, self.config.max_skip),
        )

    def process_accept(self, peer_ephemeral_public_key: bytes, peer_public_key: bytes):
        """
        Complete the key exchange on the initiator side.

        Args:
            peer_ephemeral_public_key: Responder's ephemeral public key
            peer_public_key: Responder's long-term public key

        Raises:
            AlreadyEstablished: If the 4DH ratchets have already been derived
            IdentityMismatch: If peer_public_key is not the key the session is bound to
            InvalidPeerKey: If the ephemeral key is malformed or of low order
        """
        with self._lock:
            if self.my_ratchet_4dh is not None or self._my_ephemeral_private_key is None:
                raise AlreadyEstablished(f"Session {self.id} already has 4DH ratchets")
            if not constant_time_compare(bytes(peer_public_key), self.peer.public_key):
                raise IdentityMismatch(f"Long-term key of {self.peer.identity} does not match session {self.id}")

            try:
                dh_static_static = self.identity_store.dh(self.peer.public_key)
                dh_static_ephemeral = self.identity_store.dh(peer_ephemeral_public_key)
                dh_ephemeral_static = dh_exchange(self._my_ephemeral_private_key, self.peer.public_key)
                dh_ephemeral_ephemeral = dh_exchange(self._my_ephemeral_private_key, peer_ephemeral_public_key)
            except InvalidPeerKey:
                logger.warning("Rejected accept for session %s from %s: invalid peer key",
                               self.id, self.peer.identity)
                raise

            # Initiator terms first, same order as the responder
            self.my_ratchet_4dh, self.peer_ratchet_4dh = self._derive_ratchets(
                KE_SALT_4DH_PREFIX,
                dh_static_static + dh_ephemeral_static + dh_static_ephemeral + dh_ephemeral_ephemeral
            )
            self.peer_ephemeral_public_key = bytes(peer_ephemeral_public_key)

            self._erase_ephemeral_private_key()
            self._discard_2dh()

        self.listener.initiator_session_established(self, self.peer)

    def discard_2dh_ratchets(self):
        """
        Drop the 2DH ratchets once they are no longer needed.

        The responder calls this when the first 4DH message from the
        initiator has arrived.

        Raises:
            IllegalSessionState: If the 4DH ratchets have not been derived yet
        """
        with self._lock:
            if self.my_ratchet_4dh is None:
                raise IllegalSessionState(f"Session {self.id} has no 4DH ratchets yet")
            transitioned = self.state is SessionState.RESPONDER_4DH
            self._discard_2dh()

        if transitioned:
            self.listener.first_4dh_message_received(self, self.peer)

    def _erase_ephemeral_private_key(self):
        if self._my_ephemeral_private_key is not None:
            secure_erase(self._my_ephemeral_private_key)
            self._my_ephemeral_private_key = None

    def _discard_2dh(self):
        for ratchet in (self.my_ratchet_2dh, self.peer_ratchet_2dh):
            if ratchet is not None:
                ratchet.discard()
        self.my_ratchet_2dh = None
        self.peer_ratchet_2dh = None

    @property
    def my_ephemeral_private_key(self) -> Optional[bytes]:
        """Our ephemeral private key, None once wiped"""
        with self._lock:
            if self._my_ephemeral_private_key is None:
                return None
            return bytes(self._my_ephemeral_private_key)

    @property
    def state(self) -> SessionState:
        with self._lock:
            if self.my_ratchet_4dh is None:
                return SessionState.INITIATOR_2DH
            if self.my_ratchet_2dh is not None or self.peer_ratchet_2dh is not None:
                return SessionState.RESPONDER_4DH
            return SessionState.ESTABLISHED

    @property
    def is_4dh_established(self) -> bool:
        return self.state is not SessionState.INITIATOR_2DH

    def ratchet(self, direction: Direction, generation: Generation) -> KDFRatchet:
        """
        Look up one of the four ratchets.

        Raises:
            RatchetExhausted: If the ratchet does not exist (yet or any more)
        """
        with self._lock:
            if generation is Generation.TWO_DH:
                ratchet = self.my_ratchet_2dh if direction is Direction.OUTGOING else self.peer_ratchet_2dh
            else:
                ratchet = self.my_ratchet_4dh if direction is Direction.OUTGOING else self.peer_ratchet_4dh
            if ratchet is None:
                raise RatchetExhausted(
                    f"No {direction.value} {generation.value} ratchet in session {self.id} ({self.state.value})"
                )
            return ratchet

    def current_encryption_key(self, direction: Direction, generation: Generation) -> bytes:
        with self._lock:
            return self.ratchet(direction, generation).current_encryption_key

    def associated_data(self, direction: Direction, generation: Generation) -> bytes:
        """
        AEAD associated data for the message at the ratchet's current counter.

        Binds a ciphertext to the session ID, the DH generation and the
        counter, so it only decrypts with the matching key on the peer side.
        """
        with self._lock:
            counter = self.ratchet(direction, generation).counter
            return self.id.value + generation.value.encode('ascii') + counter.to_bytes(8, 'big')

    def turn(self, direction: Direction, generation: Generation):
        with self._lock:
            self.ratchet(direction, generation).turn()

    def turn_until(self, direction: Direction, generation: Generation, target_counter_value: int) -> int:
        """
        Catch a ratchet up to the counter value of a received message.

        Returns:
            Number of turns performed
        """
        with self._lock:
            turns = self.ratchet(direction, generation).turn_until(target_counter_value)

        if turns > 0:
            self.listener.messages_skipped(self.id, self.peer, turns)
        return turns

    def __str__(self) -> str:
        return f"{self.id} ({self.role.value}, {self.state.value}, peer={self.peer.identity})"

    def __repr__(self) -> str:
        return f"DHSession(id={self.id}, role={self.role.value}, state={self.state.value}, peer={self.peer.identity!r})"


def create_initiator_session(identity_store: IdentityStore, peer: PeerContact,
                             config: Optional[ForwardSecrecyConfig] = None,
                             listener: Optional[ForwardSecurityStatusListener] = None) -> DHSession:
    """Start a new session with a peer as initiator"""
    return DHSession.initiate(identity_store, peer, config, listener)


def create_responder_session(session_id: DHSessionID, peer_ephemeral_public_key: bytes,
                             identity_store: IdentityStore, peer: PeerContact,
                             config: Optional[ForwardSecrecyConfig] = None,
                             listener: Optional[ForwardSecurityStatusListener] = None) -> DHSession:
    """Accept a session initiated by a peer"""
    return DHSession.respond(session_id, peer_ephemeral_public_key, identity_store, peer, config, listener)
