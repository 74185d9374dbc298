"""Event names and the publish capability the core announces transitions through."""

import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

ORDER_CREATED = "order:created"
ORDER_ACCEPTED = "order:accepted"
ORDER_IN_PROGRESS = "order:in_progress"
ORDER_COMPLETED = "order:completed"
KEY_EXCHANGE_INITIATE = "p2p:initiateKeyExchange"
KEY_EXCHANGE = "p2p:keyExchange"
ENCRYPTED_COORDS = "p2p:encryptedCoords"

# opaque payloads relayed verbatim
RELAYED_EVENTS = {KEY_EXCHANGE, ENCRYPTED_COORDS}


class Publisher(Protocol):
    def publish(self, event: str, payload: dict, recipient: Optional[str] = None) -> None:
        """Fire-and-forget. recipient=None broadcasts to every subscriber."""


class NullPublisher:
    def publish(self, event: str, payload: dict, recipient: Optional[str] = None) -> None:
        logger.debug("no subscribers attached, dropping %s", event)
