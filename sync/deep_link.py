"""Shareable event links and acceptance of pending invitations."""
import logging
from typing import Optional
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

from events.exceptions import PotluckServiceError

logger = logging.getLogger(__name__)

LINK_SCHEME = 'https'
LINK_HOST = 'potluckapp.com'


def event_link(document_id: str) -> str:
    """Share link for an event."""
    return f"{LINK_SCHEME}://{LINK_HOST}/event/{document_id}"


def parse_event_link(url: str) -> Optional[str]:
    """
    Extract the event ID from a share link.

    Expects URLs of the form ``https://potluckapp.com/event/<eventID>``.

    Returns:
        The event ID, or None if the URL is not an event link
    """
    if not url:
        return None

    parsed = urlparse(url.strip())
    if parsed.scheme != LINK_SCHEME or parsed.hostname != LINK_HOST:
        return None

    parts = [part for part in parsed.path.split('/') if part]
    if len(parts) >= 2 and parts[0] == 'event':
        return parts[-1]
    return None


class DeepLinkHandler:
    """Holds an event link until a signed-in user can accept it."""

    def __init__(self, service):
        """
        Args:
            service: EventService used to add the accepting user
        """
        self.service = service
        self.pending_event_id: Optional[str] = None

    def handle_url(self, url: str) -> Optional[str]:
        event_id = parse_event_link(url)
        if event_id:
            self.pending_event_id = event_id
            logger.info(f"Deep link detected, pending event ID: {event_id}")
        return event_id

    def clear(self) -> None:
        self.pending_event_id = None

    def accept_pending(self, user_id: Optional[str]) -> Optional[str]:
        """
        Add ``user_id`` to the attendees of the pending event.

        The pending link is consumed whether or not the update succeeds.

        Returns:
            The event ID the user joined, or None
        """
        event_id = self.pending_event_id
        if not event_id or not user_id:
            return None

        self.clear()
        try:
            self.service.add_attendee(event_id, user_id)
        except (PotluckServiceError, ClientError, BotoCoreError) as e:
            logger.error(f"Error adding user via deep link: {e}")
            return None

        logger.info(f"User {user_id} added to event {event_id} via deep link")
        return event_id
