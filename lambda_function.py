"""AWS Lambda handler for Potluck event and profile actions."""
import json
import logging
import os
import time
from typing import Any, Callable, Dict

from events.decoder import encode_event, parse_date_time
from events.exceptions import (
    ConcurrentUpdateError,
    EventNotFoundError,
    NotHostError,
    NotSignedInError,
    UserNotFoundError,
    ValidationError,
)
from events.service import EventService
from geocoding.geocoder import Geocoder
from storage.event_store import EventStore
from storage.profile_store import ProfileStore
from sync.deep_link import DeepLinkHandler, event_link


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


ERROR_STATUS = [
    (ValidationError, 400),
    (NotSignedInError, 401),
    (NotHostError, 403),
    (EventNotFoundError, 404),
    (UserNotFoundError, 404),
    (ConcurrentUpdateError, 409),
]


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def _event_body(event) -> Dict[str, Any]:
    body = encode_event(event)
    body['event_id'] = event.document_id
    body['link'] = event_link(event.document_id)
    return body


def _require(payload: Dict[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value in (None, ''):
        raise ValidationError(f"Missing required parameter: {key}")
    return value


def _create_event(service, payload, user_id):
    date_time = parse_date_time(payload.get('dateTime'))
    if date_time is None:
        raise ValidationError("Please choose a date and time.")
    event_id = service.create_event(
        host_uid=user_id,
        name=payload.get('name', ''),
        theme=payload.get('theme', ''),
        date_time=date_time,
        address=payload.get('address', '')
    )
    return {'event_id': event_id, 'link': event_link(event_id)}


def _update_event(service, payload, user_id):
    updates = payload.get('updates') or {}
    if not isinstance(updates, dict):
        raise ValidationError("Parameter updates must be an object")
    service.update_event(user_id, _require(payload, 'event_id'), updates)
    return {'updated': True}


def _delete_event(service, payload, user_id):
    service.delete_event(user_id, _require(payload, 'event_id'))
    return {'deleted': True}


def _invite_user(service, payload, user_id):
    changed = service.invite_user(
        user_id, _require(payload, 'event_id'), _require(payload, 'invitee_uid')
    )
    return {'changed': changed}


def _add_attendee_by_email(service, payload, user_id):
    profile = service.add_attendee_by_email(
        user_id, _require(payload, 'event_id'), _require(payload, 'email')
    )
    return {'uid': profile.uid, 'message': f"{profile.first_name} invited!"}


def _remove_attendee(service, payload, user_id):
    changed = service.remove_attendee(
        user_id, _require(payload, 'event_id'), _require(payload, 'uid')
    )
    return {'changed': changed}


def _remove_invited_user(service, payload, user_id):
    changed = service.remove_invited_user(
        user_id, _require(payload, 'event_id'), _require(payload, 'uid')
    )
    return {'changed': changed}


def _accept_link(service, payload, user_id):
    if not user_id:
        raise NotSignedInError("User is not signed in.")
    handler = DeepLinkHandler(service)
    if not handler.handle_url(_require(payload, 'url')):
        raise ValidationError("Not an event link.")
    event_id = handler.accept_pending(user_id)
    if event_id is None:
        raise EventNotFoundError("Could not join the event.")
    return {'event_id': event_id}


def _list_events(service, payload, user_id):
    if not user_id:
        raise NotSignedInError("User is not signed in.")
    return {'events': [_event_body(event) for event in service.list_user_events(user_id)]}


def _save_profile(service, payload, user_id):
    if not user_id:
        raise NotSignedInError("User is not signed in.")
    profile = payload.get('profile')
    if not isinstance(profile, dict):
        raise ValidationError("Missing required parameter: profile")
    service.profile_store.save_profile(user_id, profile)
    return {'setup_complete': service.profile_store.is_setup_complete(user_id)}


def _get_profile(service, payload, user_id):
    uid = payload.get('uid') or user_id
    if not uid:
        raise NotSignedInError("User is not signed in.")
    profile = service.profile_store.get_profile(uid)
    if profile is None:
        raise UserNotFoundError("User not found.")
    return {
        'uid': profile.uid,
        'firstName': profile.first_name,
        'lastName': profile.last_name,
        'email': profile.email,
        'dietaryPreference': profile.dietary_preference,
        'allergies': profile.allergies,
        'setup_complete': profile.is_setup_complete
    }


ACTIONS: Dict[str, Callable[[EventService, Dict[str, Any], Any], Dict[str, Any]]] = {
    'create_event': _create_event,
    'update_event': _update_event,
    'delete_event': _delete_event,
    'invite_user': _invite_user,
    'add_attendee_by_email': _add_attendee_by_email,
    'remove_attendee': _remove_attendee,
    'remove_invited_user': _remove_invited_user,
    'accept_link': _accept_link,
    'list_events': _list_events,
    'save_profile': _save_profile,
    'get_profile': _get_profile,
}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for Potluck actions.

    Args:
        event: Payload with ``action``, the caller's ``user_id`` and
            action parameters, either inline or as a JSON ``body``
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    # Read configuration from environment variables
    events_table = os.environ.get('EVENTS_TABLE_NAME', 'potluck-events')
    profiles_table = os.environ.get('PROFILES_TABLE_NAME', 'potluck-users')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('GEOCODER_TIMEOUT_SECONDS', '30'))

    # Initialize logging
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()

    payload = event
    if isinstance(event.get('body'), str):
        try:
            payload = json.loads(event['body'])
        except ValueError:
            return _response(400, {'message': 'Request body is not valid JSON'})
    if not isinstance(payload, dict):
        return _response(400, {'message': 'Request body must be a JSON object'})

    action = payload.get('action')
    user_id = payload.get('user_id') or event.get('user_id')
    logger.info(f"Handling action {action}", extra={'user_id': user_id})

    handler = ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        return _response(400, {'message': f'Unknown action: {action}'})

    try:
        service = EventService(
            event_store=EventStore(table_name=events_table),
            profile_store=ProfileStore(table_name=profiles_table),
            geocoder=Geocoder(timeout=timeout_seconds)
        )
        response = _response(200, handler(service, payload, user_id))

    except Exception as e:
        duration = time.time() - start_time
        for error_type, status_code in ERROR_STATUS:
            if isinstance(e, error_type):
                logger.info(f"Action {action} rejected: {e}")
                return _response(status_code, {
                    'message': str(e),
                    'error_type': type(e).__name__
                })

        logger.error(
            f"Action {action} failed: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Action failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    duration = time.time() - start_time
    logger.info(
        f"Action {action} completed",
        extra={'duration_seconds': round(duration, 2)}
    )
    return response
