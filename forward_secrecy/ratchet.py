"""
KDF Ratchet

A one-way hash chain. Every turn replaces the chain key with a KDF of
itself, so a captured chain key reveals nothing about the keys of earlier
counter values. The per-message encryption key is derived from the current
chain key with a separate label and never feeds back into the chain.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import DEFAULT_CONFIG, MAX_COUNTER
from .errors import RatchetExhausted, RatchetRegression, RatchetSkipTooLarge
from .primitives import KEY_LENGTH, derive_key, secure_erase

logger = logging.getLogger(__name__)

KDF_SALT_CHAIN_KEY = b"kdf-ck"
KDF_SALT_ENCRYPTION_KEY = b"kdf-aek"


@dataclass
class RatchetState:
    """
    State of a single KDF ratchet.

    Attributes:
        chain_key: Current chain key, None once discarded
        counter: Counter value belonging to the current chain key
    """
    chain_key: Optional[bytearray]
    counter: int


class KDFRatchet:
    """
    Symmetric key ratchet for one direction of one DH generation.

    Not thread-safe: the owning session serializes access.
    """

    def __init__(self, chain_key: bytes, counter: Optional[int] = None,
                 max_skip: Optional[int] = None):
        """
        Initialize a ratchet.

        Args:
            chain_key: Initial 32-byte chain key
            counter: Counter value of the initial chain key
            max_skip: Largest number of turns a single turn_until may perform
        """
        if len(chain_key) != KEY_LENGTH:
            raise ValueError(f"Chain key must be {KEY_LENGTH} bytes; got {len(chain_key)}")
        if counter is None:
            counter = DEFAULT_CONFIG.initial_counter
        if not 0 <= counter <= MAX_COUNTER:
            raise ValueError(f"Counter out of range: {counter}")

        self.state = RatchetState(chain_key=bytearray(chain_key), counter=counter)
        self.max_skip = DEFAULT_CONFIG.max_skip if max_skip is None else max_skip

    @property
    def counter(self) -> int:
        return self.state.counter

    @property
    def is_discarded(self) -> bool:
        return self.state.chain_key is None

    @property
    def current_encryption_key(self) -> bytes:
        """Encryption key for the current counter value"""
        return derive_key(self._chain_key(), KDF_SALT_ENCRYPTION_KEY)

    def _chain_key(self) -> bytearray:
        if self.state.chain_key is None:
            raise RatchetExhausted(f"Ratchet has been discarded at counter {self.state.counter}")
        return self.state.chain_key

    def turn(self):
        """
        Advance the ratchet by one step.

        Raises:
            RatchetExhausted: If the ratchet was discarded or the counter is at its maximum
        """
        chain_key = self._chain_key()
        if self.state.counter >= MAX_COUNTER:
            raise RatchetExhausted("Ratchet counter exhausted")

        next_chain_key = bytearray(derive_key(chain_key, KDF_SALT_CHAIN_KEY))
        secure_erase(chain_key)
        self.state.chain_key = next_chain_key
        self.state.counter += 1

    def turn_until(self, target_counter_value: int) -> int:
        """
        Turn the ratchet until it reaches a counter value.

        Args:
            target_counter_value: Counter value to stop at

        Returns:
            Number of turns performed

        Raises:
            RatchetExhausted: If the ratchet was discarded or the target overflows the counter
            RatchetRegression: If the target lies behind the current counter
            RatchetSkipTooLarge: If more than max_skip turns would be needed
        """
        self._chain_key()
        current = self.state.counter
        if target_counter_value < current:
            raise RatchetRegression(current, target_counter_value)
        if target_counter_value - current > self.max_skip:
            raise RatchetSkipTooLarge(current, target_counter_value, self.max_skip)
        if target_counter_value > MAX_COUNTER:
            raise RatchetExhausted(f"Target counter out of range: {target_counter_value}")

        turns = 0
        while self.state.counter < target_counter_value:
            self.turn()
            turns += 1

        if turns:
            logger.debug("Ratchet turned %d times to counter %d", turns, self.state.counter)
        return turns

    def discard(self):
        """Wipe the chain key. Only the counter remains readable."""
        if self.state.chain_key is not None:
            secure_erase(self.state.chain_key)
            self.state.chain_key = None

    def copy(self) -> 'KDFRatchet':
        """Independent ratchet with the same chain key and counter"""
        return KDFRatchet(bytes(self._chain_key()), self.state.counter, self.max_skip)

    def __repr__(self) -> str:
        status = "discarded" if self.is_discarded else "active"
        return f"KDFRatchet(counter={self.state.counter}, {status})"
