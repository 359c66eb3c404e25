"""DynamoDB-backed document store for Potluck events."""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from events.decoder import format_date_time
from events.exceptions import ConcurrentUpdateError, EventNotFoundError
from events.models import ATTENDEES_FIELD, INVITED_USERS_FIELD, DocumentChange
from storage.live_query import LiveQuery

logger = logging.getLogger(__name__)

MEMBER_FIELDS = (ATTENDEES_FIELD, INVITED_USERS_FIELD)


class EventStore:
    """Store for event documents keyed by ``event_id``."""

    KEY = 'event_id'

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB events table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized EventStore for table: {table_name}")

    def create_event(self, document: Dict[str, Any]) -> str:
        """
        Write a new event document.

        Args:
            document: Event document without an identifier

        Returns:
            The identifier assigned to the new document
        """
        event_id = uuid.uuid4().hex
        now = _now()

        item = to_item(document)
        item[self.KEY] = event_id
        item['createdAt'] = now
        item['updatedAt'] = now

        self.table.put_item(
            Item=item,
            ConditionExpression='attribute_not_exists(event_id)'
        )
        logger.info(f"Created event {event_id}")
        return event_id

    def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a single event document.

        Returns:
            The document without its key attribute, or None if absent
        """
        response = self.table.get_item(Key={self.KEY: event_id})
        item = response.get('Item')
        if item is None:
            return None
        return self._item_to_document(item)

    def query_events(self, field: str, uid: str) -> Dict[str, Dict[str, Any]]:
        """
        Find events whose member list ``field`` contains ``uid``.

        Args:
            field: Either ``attendees`` or ``invitedUsers``
            uid: User identity to look for

        Returns:
            Dictionary mapping event_id to document
        """
        _check_member_field(field)
        filter_expression = Attr(field).contains(uid)

        # Scan the table (paginated automatically by boto3)
        response = self.table.scan(FilterExpression=filter_expression)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                FilterExpression=filter_expression,
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items.extend(response.get('Items', []))

        documents = {}
        for item in items:
            documents[item[self.KEY]] = self._item_to_document(item)

        logger.debug(f"Query {field} contains {uid}: {len(documents)} events")
        return documents

    def update_event(self, event_id: str, updates: Dict[str, Any]) -> None:
        """
        Set the given fields on an existing event.

        Raises:
            EventNotFoundError: If the event does not exist
        """
        fields = dict(updates)
        fields['updatedAt'] = _now()

        names = {}
        values = {}
        assignments = []
        for i, (key, value) in enumerate(fields.items()):
            names[f'#f{i}'] = key
            values[f':v{i}'] = to_item(value)
            assignments.append(f'#f{i} = :v{i}')

        try:
            self.table.update_item(
                Key={self.KEY: event_id},
                UpdateExpression='SET ' + ', '.join(assignments),
                ConditionExpression='attribute_exists(event_id)',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise EventNotFoundError(f"Event {event_id} does not exist") from e
            raise

        logger.info(f"Updated event {event_id}: {sorted(updates)}")

    def add_member(self, event_id: str, field: str, uid: str) -> bool:
        """
        Add ``uid`` to a member list unless it is already present.

        Returns:
            True if the list changed
        """
        return self._update_members(
            event_id, field,
            lambda members: members if uid in members else members + [uid]
        )

    def remove_member(self, event_id: str, field: str, uid: str) -> bool:
        """
        Remove ``uid`` from a member list if present.

        Returns:
            True if the list changed
        """
        return self._update_members(
            event_id, field,
            lambda members: [member for member in members if member != uid]
        )

    def _update_members(
        self,
        event_id: str,
        field: str,
        transform: Callable[[List[str]], List[str]]
    ) -> bool:
        _check_member_field(field)

        document = self.get_event(event_id)
        if document is None:
            raise EventNotFoundError(f"Event {event_id} does not exist")

        members = list(document.get(field) or [])
        updated = transform(members)
        if updated == members:
            return False

        names = {'#members': field, '#updated': 'updatedAt'}
        values = {':members': updated, ':now': _now()}
        previous = document.get('updatedAt')
        if previous is None:
            condition = 'attribute_exists(event_id) AND attribute_not_exists(#updated)'
        else:
            condition = '#updated = :previous'
            values[':previous'] = previous

        try:
            self.table.update_item(
                Key={self.KEY: event_id},
                UpdateExpression='SET #members = :members, #updated = :now',
                ConditionExpression=condition,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                raise ConcurrentUpdateError(
                    f"Event {event_id} changed while updating {field}"
                ) from e
            raise

        logger.info(f"Updated {field} of event {event_id}: {len(updated)} members")
        return True

    def delete_event(self, event_id: str) -> None:
        """
        Delete an event document.

        Raises:
            ClientError: If the delete request fails
        """
        try:
            self.table.delete_item(Key={self.KEY: event_id})
        except ClientError as e:
            logger.error(f"Error deleting event {event_id}: {e}")
            raise
        logger.info(f"Deleted event {event_id}")

    def listen(
        self,
        field: str,
        uid: str,
        on_change: Callable[[List[DocumentChange]], None],
        poll_interval: float = 2.0
    ) -> LiveQuery:
        """
        Open a live subscription to events whose ``field`` contains ``uid``.

        Returns:
            The started LiveQuery; call ``remove()`` to release it
        """
        _check_member_field(field)
        query = LiveQuery(
            fetch=lambda: self.query_events(field, uid),
            on_change=on_change,
            poll_interval=poll_interval,
            name=f'{self.table_name}:{field}:{uid}'
        )
        query.start()
        return query

    def _item_to_document(self, item: Dict[str, Any]) -> Dict[str, Any]:
        document = from_item(item)
        document.pop(self.KEY, None)
        return document


def to_item(value: Any) -> Any:
    """Convert floats to Decimal recursively, as DynamoDB requires."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, datetime):
        return format_date_time(value)
    if isinstance(value, dict):
        return {key: to_item(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_item(item) for item in value]
    return value


def from_item(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int or float recursively."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {key: from_item(item) for key, item in value.items()}
    if isinstance(value, list):
        return [from_item(item) for item in value]
    return value


def _check_member_field(field: str) -> None:
    if field not in MEMBER_FIELDS:
        raise ValueError(f"Unsupported member field: {field}")


def _is_conditional_failure(error: ClientError) -> bool:
    return error.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException'


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
