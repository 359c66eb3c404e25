"""DynamoDB-backed storage for user profiles."""
import logging
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr

from events.decoder import decode_profile
from events.models import DecodeFailure, UserProfile
from storage.event_store import from_item, to_item

logger = logging.getLogger(__name__)


class ProfileStore:
    """Store for user profile documents keyed by ``uid``."""

    KEY = 'uid'
    BATCH_SIZE = 100  # DynamoDB batch_get_item limit

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB profiles table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized ProfileStore for table: {table_name}")

    def save_profile(self, uid: str, data: Dict[str, Any]) -> None:
        """
        Merge ``data`` into the stored profile, creating it if needed.

        Fields not present in ``data`` are left untouched.
        """
        fields = dict(data)
        if isinstance(fields.get('email'), str):
            fields['email'] = fields['email'].lower()
        if not fields:
            return

        names = {}
        values = {}
        assignments = []
        for i, (key, value) in enumerate(fields.items()):
            names[f'#f{i}'] = key
            values[f':v{i}'] = to_item(value)
            assignments.append(f'#f{i} = :v{i}')

        self.table.update_item(
            Key={self.KEY: uid},
            UpdateExpression='SET ' + ', '.join(assignments),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values
        )
        logger.info(f"Saved profile {uid}: {sorted(fields)}")

    def get_profile(self, uid: str) -> Optional[UserProfile]:
        response = self.table.get_item(Key={self.KEY: uid})
        item = response.get('Item')
        if item is None:
            return None
        return self._item_to_profile(item)

    def get_profiles(self, uids: Iterable[str]) -> List[UserProfile]:
        """
        Fetch several profiles at once.

        Missing and malformed profiles are skipped. The result follows
        the order of ``uids``.
        """
        unique_uids = list(dict.fromkeys(uid for uid in uids if uid))
        if not unique_uids:
            return []

        items = {}
        for i in range(0, len(unique_uids), self.BATCH_SIZE):
            batch = unique_uids[i:i + self.BATCH_SIZE]
            request = {
                self.table_name: {'Keys': [{self.KEY: uid} for uid in batch]}
            }

            while request:
                response = self.dynamodb.batch_get_item(RequestItems=request)
                for item in response.get('Responses', {}).get(self.table_name, []):
                    items[item[self.KEY]] = item
                request = response.get('UnprocessedKeys') or None

        profiles = []
        for uid in unique_uids:
            if uid in items:
                profile = self._item_to_profile(items[uid])
                if profile:
                    profiles.append(profile)

        logger.debug(f"Fetched {len(profiles)} of {len(unique_uids)} profiles")
        return profiles

    def find_by_email(self, email: str) -> Optional[UserProfile]:
        """Look up a profile by email address (case-insensitive)."""
        filter_expression = Attr('email').eq(email.strip().lower())

        response = self.table.scan(FilterExpression=filter_expression)
        items = response.get('Items', [])
        while not items and 'LastEvaluatedKey' in response:
            response = self.table.scan(
                FilterExpression=filter_expression,
                ExclusiveStartKey=response['LastEvaluatedKey']
            )
            items = response.get('Items', [])

        if not items:
            return None
        return self._item_to_profile(items[0])

    def is_setup_complete(self, uid: str) -> bool:
        """Whether the stored profile has both names filled in."""
        profile = self.get_profile(uid)
        return profile is not None and profile.is_setup_complete

    def _item_to_profile(self, item: Dict[str, Any]) -> Optional[UserProfile]:
        document = from_item(item)
        uid = document.pop(self.KEY)
        result = decode_profile(uid, document)
        if isinstance(result, DecodeFailure):
            return None
        return result
