"""
Exceptions raised by the forward secrecy session core.

Every failure is one of a closed set of classes so callers can decide per
kind whether to drop a message, reject a handshake or tear a session down.
"""


class CryptoError(Exception):
    """Base exception for cryptographic errors"""
    pass


class DHSessionError(CryptoError):
    """A handshake step could not be applied to a session"""
    pass


class InvalidPeerKey(DHSessionError):
    """Peer public key is malformed or a low-order point"""
    pass


class IdentityMismatch(DHSessionError):
    """Peer long-term key differs from the one bound at session creation"""
    pass


class AlreadyEstablished(DHSessionError):
    """The 4DH chain of the session has already been derived"""
    pass


class IllegalSessionState(DHSessionError):
    """Operation is not valid in the current session state"""
    pass


class RatchetError(CryptoError):
    """Base exception for KDF ratchet failures"""
    pass


class RatchetExhausted(RatchetError):
    """The ratchet has no chain key left to turn or derive from"""
    pass


class RatchetRegression(RatchetError):
    """Target counter lies behind the current counter"""

    def __init__(self, current: int, target: int):
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot turn ratchet back from counter {current} to {target}"
        )


class RatchetSkipTooLarge(RatchetError):
    """Target counter lies further ahead than the configured maximum skip"""

    def __init__(self, current: int, target: int, max_skip: int):
        self.current = current
        self.target = target
        self.max_skip = max_skip
        super().__init__(
            f"Too many turns requested: {target - current} (max {max_skip})"
        )
