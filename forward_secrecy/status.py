"""
Status hooks for forward security sessions.

The messaging layer subscribes to handshake milestones through a listener.
The base class ignores every event; LoggingStatusListener writes them to
the log.
"""

import logging

logger = logging.getLogger(__name__)


class ForwardSecurityStatusListener:
    """Receives session lifecycle events. All hooks are no-ops by default."""

    def new_session_initiated(self, session, peer):
        pass

    def responder_session_established(self, session, peer):
        pass

    def initiator_session_established(self, session, peer):
        pass

    def first_4dh_message_received(self, session, peer):
        pass

    def messages_skipped(self, session_id, peer, num_skipped: int):
        pass


class LoggingStatusListener(ForwardSecurityStatusListener):
    """Logs every session event"""

    def __init__(self, log: logging.Logger = logger):
        self.log = log

    def new_session_initiated(self, session, peer):
        self.log.info("[ForwardSecurity] New initiator DH session %s, contact: %s", session, peer.identity)

    def responder_session_established(self, session, peer):
        self.log.info("[ForwardSecurity] Responder session established %s, contact: %s", session, peer.identity)

    def initiator_session_established(self, session, peer):
        self.log.info("[ForwardSecurity] Initiator session established %s, contact: %s", session, peer.identity)

    def first_4dh_message_received(self, session, peer):
        self.log.info("[ForwardSecurity] First 4DH message received in session %s with contact: %s",
                      session, peer.identity)

    def messages_skipped(self, session_id, peer, num_skipped: int):
        self.log.debug("[ForwardSecurity] Skipped %d messages in session %s with contact: %s",
                       num_skipped, session_id, peer.identity)
