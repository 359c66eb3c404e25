"""Host and guest operations on Potluck events."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import requests

from events.decoder import (
    decode_event,
    encode_event,
    format_date_time,
    parse_date_time,
)
from events.exceptions import (
    EventNotFoundError,
    NotHostError,
    NotSignedInError,
    UserNotFoundError,
    ValidationError,
)
from events.models import (
    ATTENDEES_FIELD,
    INVITED_USERS_FIELD,
    DecodeFailure,
    PotluckEvent,
    UserProfile,
)
from sync.event_cache import merge_snapshots

logger = logging.getLogger(__name__)


class EventService:
    """Creates, edits and manages membership of events."""

    MAX_NAME_LENGTH = 200
    DEFAULT_ADDRESS = 'TBD'
    EDITABLE_FIELDS = frozenset(
        ['name', 'theme', 'address', 'dateTime', 'latitude', 'longitude']
    )

    def __init__(self, event_store, profile_store=None, geocoder=None):
        """
        Initialize the service.

        Args:
            event_store: EventStore holding event documents
            profile_store: ProfileStore used for attendee lookups
            geocoder: Geocoder used to resolve event addresses
        """
        self.event_store = event_store
        self.profile_store = profile_store
        self.geocoder = geocoder

    def create_event(
        self,
        host_uid: Optional[str],
        name: str,
        theme: str,
        date_time: datetime,
        address: str = ''
    ) -> str:
        """
        Create an event hosted by ``host_uid``.

        The host is the first attendee. When an address is given it is
        geocoded; a failed lookup still creates the event, just without
        coordinates.

        Returns:
            ID of the new event
        """
        if not host_uid:
            raise NotSignedInError("User is not signed in.")
        theme = '' if theme is None else theme
        address = '' if address is None else address
        _check_field_types({'name': name, 'theme': theme, 'address': address})
        if not name.strip():
            raise ValidationError("Please enter an event name.")
        if not isinstance(date_time, datetime):
            raise ValidationError("Please choose a date and time.")

        address = address.strip()
        coordinates = self._geocode(address) if address else None

        event = PotluckEvent(
            document_id='',
            name=name.strip()[:self.MAX_NAME_LENGTH],
            location=address or self.DEFAULT_ADDRESS,
            theme=theme,
            date_time=date_time,
            host_uid=host_uid,
            attendees=[host_uid],
            invited_users=[],
            latitude=coordinates[0] if coordinates else None,
            longitude=coordinates[1] if coordinates else None,
        )

        event_id = self.event_store.create_event(encode_event(event))
        logger.info(f"User {host_uid} created event {event_id}")
        return event_id

    def _geocode(self, address: str) -> Optional[Tuple[float, float]]:
        if self.geocoder is None:
            return None
        try:
            return self.geocoder.geocode(address)
        except requests.RequestException as e:
            logger.warning(f"Could not find coordinates for '{address}': {e}")
            return None

    def get_event(self, event_id: str) -> PotluckEvent:
        document = self.event_store.get_event(event_id)
        if document is None:
            raise EventNotFoundError(f"Event {event_id} does not exist")

        result = decode_event(event_id, document)
        if isinstance(result, DecodeFailure):
            raise EventNotFoundError(
                f"Event {event_id} is malformed: {result.reason}"
            )
        return result

    def update_event(
        self, requester_uid: Optional[str], event_id: str, updates: Dict[str, Any]
    ) -> None:
        """Apply host edits to name, theme, address, date or coordinates."""
        if not requester_uid:
            raise NotSignedInError("User is not signed in.")

        unknown = set(updates) - self.EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}"
            )
        _check_field_types(updates)
        if 'name' in updates and not updates['name'].strip():
            raise ValidationError("Please enter an event name.")

        updates = dict(updates)
        if 'dateTime' in updates:
            date_time = parse_date_time(updates['dateTime'])
            if date_time is None:
                raise ValidationError("Please choose a date and time.")
            updates['dateTime'] = format_date_time(date_time)

        self._require_host(requester_uid, event_id)
        self.event_store.update_event(event_id, updates)

    def delete_event(self, requester_uid: Optional[str], event_id: str) -> None:
        self._require_host(requester_uid, event_id)
        self.event_store.delete_event(event_id)

    def _require_host(self, requester_uid: Optional[str], event_id: str) -> PotluckEvent:
        if not requester_uid:
            raise NotSignedInError("User is not signed in.")
        event = self.get_event(event_id)
        if not event.is_hosted_by(requester_uid):
            raise NotHostError("Only the host can update event details.")
        return event

    def _require_host_or_self(
        self, requester_uid: Optional[str], event_id: str, uid: str
    ) -> PotluckEvent:
        """Members may remove themselves; anyone else needs the host."""
        if requester_uid and requester_uid == uid:
            return self.get_event(event_id)
        return self._require_host(requester_uid, event_id)

    def invite_user(
        self, requester_uid: Optional[str], event_id: str, invitee_uid: str
    ) -> bool:
        """Grant ``invitee_uid`` access to join the event. Host only."""
        if not invitee_uid:
            raise ValidationError("No user to invite.")
        self._require_host(requester_uid, event_id)
        return self.event_store.add_member(event_id, INVITED_USERS_FIELD, invitee_uid)

    def add_attendee(self, event_id: str, uid: str) -> bool:
        """
        Add ``uid`` to the attendees on their own behalf.

        The user is left in ``invitedUsers`` if they were invited.
        """
        if not uid:
            raise NotSignedInError("User is not signed in.")
        return self.event_store.add_member(event_id, ATTENDEES_FIELD, uid)

    def add_attendee_by_email(
        self, requester_uid: Optional[str], event_id: str, email: str
    ) -> UserProfile:
        """Look up a user by email and add them to the attendees. Host only."""
        if not isinstance(email, str) or not email.strip():
            raise ValidationError("Please enter an email address.")
        self._require_host(requester_uid, event_id)

        profile = self.profile_store.find_by_email(email)
        if profile is None:
            raise UserNotFoundError("User not found.")

        self.event_store.add_member(event_id, ATTENDEES_FIELD, profile.uid)
        return profile

    def remove_attendee(
        self, requester_uid: Optional[str], event_id: str, uid: str
    ) -> bool:
        """Remove ``uid`` from the attendees. Allowed for the host or ``uid`` itself."""
        event = self._require_host_or_self(requester_uid, event_id, uid)
        if event.is_hosted_by(uid):
            raise ValidationError("The host cannot be removed from the event.")
        return self.event_store.remove_member(event_id, ATTENDEES_FIELD, uid)

    def remove_invited_user(
        self, requester_uid: Optional[str], event_id: str, uid: str
    ) -> bool:
        self._require_host_or_self(requester_uid, event_id, uid)
        return self.event_store.remove_member(event_id, INVITED_USERS_FIELD, uid)

    def list_user_events(self, uid: Optional[str]) -> List[PotluckEvent]:
        """Events where ``uid`` attends or is invited, sorted by date."""
        if not uid:
            return []

        snapshots = [
            self.event_store.query_events(ATTENDEES_FIELD, uid),
            self.event_store.query_events(INVITED_USERS_FIELD, uid),
        ]
        return list(merge_snapshots(snapshots))

    def attendee_profiles(self, event: PotluckEvent) -> List[UserProfile]:
        if not event.attendees:
            return []
        return self.profile_store.get_profiles(event.attendees)


def _check_field_types(fields: Dict[str, Any]) -> None:
    """Reject values the event decoder would not read back."""
    for key in ('name', 'theme', 'address'):
        if key in fields and not isinstance(fields[key], str):
            raise ValidationError(f"Field {key} must be text.")

    for key in ('latitude', 'longitude'):
        value = fields.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Field {key} must be a number.")
