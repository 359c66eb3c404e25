"""Unit tests for event and profile decoding."""
from datetime import datetime, timezone
from decimal import Decimal

from events.decoder import (
    decode_event,
    decode_profile,
    encode_event,
    encode_profile,
    format_date_time,
    parse_date_time,
)
from events.models import DecodeFailure, PotluckEvent, UserProfile


class TestDecodeEvent:
    """Test cases for decode_event."""

    def test_decode_valid_document(self, event_document):
        """Test a complete document decodes into a PotluckEvent."""
        event_document['latitude'] = Decimal('40.7128')
        event_document['longitude'] = Decimal('-74.006')
        event_document['invitedUsers'] = ['guest-1']

        event = decode_event('doc-1', event_document)

        assert isinstance(event, PotluckEvent)
        assert event.document_id == 'doc-1'
        assert event.name == 'Summer Potluck'
        assert event.location == '1 Main St'
        assert event.theme == 'BBQ'
        assert event.host_uid == 'host-1'
        assert event.date_time == datetime(2025, 7, 4, 18, 0, tzinfo=timezone.utc)
        assert event.attendees == ['host-1']
        assert event.invited_users == ['guest-1']
        assert event.latitude == 40.7128
        assert event.longitude == -74.006

    def test_decode_missing_name(self, event_document):
        """Test a document without a name is rejected, not half-built."""
        del event_document['name']

        result = decode_event('doc-2', event_document)

        assert isinstance(result, DecodeFailure)
        assert result.document_id == 'doc-2'
        assert 'name' in result.reason

    def test_decode_mistyped_host(self, event_document):
        """Test a non-string hostUid is rejected."""
        event_document['hostUid'] = 42

        result = decode_event('doc-3', event_document)

        assert isinstance(result, DecodeFailure)
        assert 'hostUid' in result.reason

    def test_decode_invalid_date(self, event_document):
        """Test an unparseable dateTime is rejected."""
        event_document['dateTime'] = 'next tuesday'

        result = decode_event('doc-4', event_document)

        assert isinstance(result, DecodeFailure)
        assert 'dateTime' in result.reason

    def test_decode_non_list_attendees(self, event_document):
        """Test attendees must be a list."""
        event_document['attendees'] = 'host-1'

        assert isinstance(decode_event('doc-5', event_document), DecodeFailure)

    def test_decode_non_numeric_latitude(self, event_document):
        """Test coordinates must be numbers."""
        event_document['latitude'] = 'north'

        assert isinstance(decode_event('doc-6', event_document), DecodeFailure)

    def test_decode_without_member_lists(self, event_document):
        """Test absent attendee lists decode as empty."""
        del event_document['attendees']
        del event_document['invitedUsers']

        event = decode_event('doc-7', event_document)

        assert event.attendees == []
        assert event.invited_users == []

    def test_decode_drops_duplicate_members(self, event_document):
        """Test duplicate member IDs collapse, keeping first-seen order."""
        event_document['attendees'] = ['b', 'a', 'b']

        event = decode_event('doc-8', event_document)

        assert event.attendees == ['b', 'a']

    def test_decode_non_mapping(self):
        """Test a non-dict document is rejected."""
        assert isinstance(decode_event('doc-9', None), DecodeFailure)


class TestParseDateTime:
    """Test cases for parse_date_time."""

    def test_iso_with_offset(self):
        parsed = parse_date_time('2025-07-04T20:00:00+02:00')
        assert parsed == datetime(2025, 7, 4, 18, 0, tzinfo=timezone.utc)

    def test_iso_with_zulu_suffix(self):
        parsed = parse_date_time('2025-07-04T18:00:00Z')
        assert parsed == datetime(2025, 7, 4, 18, 0, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        parsed = parse_date_time('2025-07-04 18:00:00')
        assert parsed.tzinfo is not None
        assert parsed == datetime(2025, 7, 4, 18, 0, tzinfo=timezone.utc)

    def test_epoch_seconds(self):
        parsed = parse_date_time(Decimal('0'))
        assert parsed == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_invalid_values(self):
        assert parse_date_time(None) is None
        assert parse_date_time(True) is None
        assert parse_date_time('') is None
        assert parse_date_time(['2025-07-04']) is None

    def test_format_date_time_converts_to_utc(self):
        parsed = parse_date_time('2025-07-04T20:00:00+02:00')
        assert format_date_time(parsed) == '2025-07-04T18:00:00+00:00'


class TestEncodeEvent:
    """Test cases for encode_event."""

    def test_encode_omits_missing_coordinates(self):
        event = PotluckEvent(
            document_id='',
            name='Picnic',
            location='Park',
            theme='',
            date_time=datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc),
            host_uid='host-1',
            attendees=['host-1'],
        )

        document = encode_event(event)

        assert document['address'] == 'Park'
        assert document['hostUid'] == 'host-1'
        assert document['dateTime'] == '2025-05-01T12:00:00+00:00'
        assert document['invitedUsers'] == []
        assert 'latitude' not in document
        assert 'longitude' not in document


class TestProfiles:
    """Test cases for profile decoding."""

    def test_decode_profile(self):
        profile = decode_profile('u1', {
            'firstName': 'Ada',
            'lastName': 'Lovelace',
            'email': 'ada@example.com',
            'dietaryPreference': 'Vegetarian',
            'allergies': ['Peanuts'],
        })

        assert isinstance(profile, UserProfile)
        assert profile.uid == 'u1'
        assert profile.allergies == ['Peanuts']
        assert profile.is_setup_complete

    def test_decode_profile_missing_last_name(self):
        result = decode_profile('u1', {'firstName': 'Ada'})
        assert isinstance(result, DecodeFailure)

    def test_setup_incomplete_with_blank_name(self):
        profile = UserProfile(uid='u1', first_name='Ada', last_name='  ')
        assert not profile.is_setup_complete

    def test_encode_profile_lowercases_email(self):
        profile = UserProfile(
            uid='u1', first_name='Ada', last_name='L', email='Ada@Example.COM'
        )
        assert encode_profile(profile)['email'] == 'ada@example.com'
