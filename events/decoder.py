"""Decoding of raw store documents into typed records."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from events.models import DecodeFailure, PotluckEvent, UserProfile

logger = logging.getLogger(__name__)


class DecodeError(ValueError):
    """Raised internally when a document field is missing or mistyped."""


class EventDecoder:
    """Decoder between store documents and PotluckEvent records."""

    REQUIRED_STRING_FIELDS = ('name', 'address', 'theme', 'hostUid')

    def decode(
        self, document_id: str, document: Dict[str, Any]
    ) -> Union[PotluckEvent, DecodeFailure]:
        """
        Decode a raw event document.

        Args:
            document_id: Store-assigned identifier of the document
            document: Raw document as returned by the store

        Returns:
            PotluckEvent on success, DecodeFailure describing the first
            missing or mistyped field otherwise
        """
        try:
            return self._decode(document_id, document)
        except DecodeError as e:
            logger.warning(f"Failed to decode event {document_id}: {e}")
            return DecodeFailure(document_id=document_id, reason=str(e))

    def _decode(self, document_id: str, document: Dict[str, Any]) -> PotluckEvent:
        if not isinstance(document, dict):
            raise DecodeError('document is not a mapping')

        values = {}
        for key in self.REQUIRED_STRING_FIELDS:
            values[key] = _require_string(document, key)

        if 'dateTime' not in document:
            raise DecodeError('missing field: dateTime')
        date_time = parse_date_time(document['dateTime'])
        if date_time is None:
            raise DecodeError(f"invalid dateTime: {document['dateTime']!r}")

        return PotluckEvent(
            document_id=document_id,
            name=values['name'],
            location=values['address'],
            theme=values['theme'],
            date_time=date_time,
            host_uid=values['hostUid'],
            attendees=_optional_uid_list(document, 'attendees'),
            invited_users=_optional_uid_list(document, 'invitedUsers'),
            latitude=_optional_number(document, 'latitude'),
            longitude=_optional_number(document, 'longitude'),
            created_at=parse_date_time(document.get('createdAt')),
            updated_at=parse_date_time(document.get('updatedAt')),
        )

    def encode(self, event: PotluckEvent) -> Dict[str, Any]:
        """
        Convert a PotluckEvent into its stored document form.

        The document ID is not part of the document body; coordinates
        are only written when present.
        """
        document = {
            'name': event.name,
            'address': event.location,
            'theme': event.theme,
            'dateTime': format_date_time(event.date_time),
            'hostUid': event.host_uid,
            'attendees': list(event.attendees),
            'invitedUsers': list(event.invited_users),
        }

        if event.latitude is not None:
            document['latitude'] = event.latitude
        if event.longitude is not None:
            document['longitude'] = event.longitude
        if event.created_at:
            document['createdAt'] = format_date_time(event.created_at)
        if event.updated_at:
            document['updatedAt'] = format_date_time(event.updated_at)

        return document


class ProfileDecoder:
    """Decoder between store documents and UserProfile records."""

    def decode(
        self, uid: str, document: Dict[str, Any]
    ) -> Union[UserProfile, DecodeFailure]:
        try:
            if not isinstance(document, dict):
                raise DecodeError('document is not a mapping')
            return UserProfile(
                uid=uid,
                first_name=_require_string(document, 'firstName'),
                last_name=_require_string(document, 'lastName'),
                email=_optional_string(document, 'email'),
                dietary_preference=_optional_string(document, 'dietaryPreference'),
                allergies=_optional_uid_list(document, 'allergies'),
            )
        except DecodeError as e:
            logger.warning(f"Failed to decode profile {uid}: {e}")
            return DecodeFailure(document_id=uid, reason=str(e))

    def encode(self, profile: UserProfile) -> Dict[str, Any]:
        return {
            'firstName': profile.first_name,
            'lastName': profile.last_name,
            'email': profile.email.lower(),
            'dietaryPreference': profile.dietary_preference,
            'allergies': list(profile.allergies),
        }


def parse_date_time(value: Any) -> Optional[datetime]:
    """
    Parse an instant stored as datetime, ISO 8601 string or epoch seconds.

    Naive values are interpreted as UTC.

    Returns:
        Timezone-aware datetime or None if the value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float, Decimal)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        parsed = _parse_iso_string(value)
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_iso_string(value: str) -> Optional[datetime]:
    value = value.strip()
    if not value:
        return None

    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass

    # Formats fromisoformat rejects on older interpreters
    date_formats = [
        '%Y-%m-%dT%H:%M:%S.%fZ',
        '%Y-%m-%dT%H:%M:%SZ',
        '%Y-%m-%d %H:%M:%S',
    ]
    for fmt in date_formats:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    return None


def format_date_time(value: datetime) -> str:
    """Serialize an instant as an ISO 8601 string in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _require_string(document: Dict[str, Any], key: str) -> str:
    if key not in document or document[key] is None:
        raise DecodeError(f'missing field: {key}')
    value = document[key]
    if not isinstance(value, str):
        raise DecodeError(f'field {key} is not a string')
    return value


def _optional_string(document: Dict[str, Any], key: str) -> str:
    value = document.get(key)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise DecodeError(f'field {key} is not a string')
    return value


def _optional_uid_list(document: Dict[str, Any], key: str) -> List[str]:
    value = document.get(key)
    if value is None:
        return []
    if not isinstance(value, (list, tuple, set)):
        raise DecodeError(f'field {key} is not a list')

    uids = []
    for item in value:
        if not isinstance(item, str):
            raise DecodeError(f'field {key} contains a non-string entry')
        if item not in uids:
            uids.append(item)
    return uids


def _optional_number(document: Dict[str, Any], key: str) -> Optional[float]:
    value = document.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise DecodeError(f'field {key} is not a number')
    return float(value)


_event_decoder = EventDecoder()
_profile_decoder = ProfileDecoder()


def decode_event(
    document_id: str, document: Dict[str, Any]
) -> Union[PotluckEvent, DecodeFailure]:
    return _event_decoder.decode(document_id, document)


def encode_event(event: PotluckEvent) -> Dict[str, Any]:
    return _event_decoder.encode(event)


def decode_profile(
    uid: str, document: Dict[str, Any]
) -> Union[UserProfile, DecodeFailure]:
    return _profile_decoder.decode(uid, document)


def encode_profile(profile: UserProfile) -> Dict[str, Any]:
    return _profile_decoder.encode(profile)
