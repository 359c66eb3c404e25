"""Shared test fixtures."""
import boto3
import pytest
from moto import mock_aws

from storage.event_store import EventStore
from storage.profile_store import ProfileStore


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never talks to a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb():
    """Mocked DynamoDB with the events and users tables."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name='us-east-1')

        resource.create_table(
            TableName='test-potluck-events',
            KeySchema=[{'AttributeName': 'event_id', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )
        resource.create_table(
            TableName='test-potluck-users',
            KeySchema=[{'AttributeName': 'uid', 'KeyType': 'HASH'}],
            AttributeDefinitions=[
                {'AttributeName': 'uid', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield resource


@pytest.fixture
def event_store(dynamodb):
    return EventStore('test-potluck-events')


@pytest.fixture
def profile_store(dynamodb):
    return ProfileStore('test-potluck-users')


@pytest.fixture
def event_document():
    """A valid stored event document hosted by host-1."""
    return {
        'name': 'Summer Potluck',
        'address': '1 Main St',
        'theme': 'BBQ',
        'dateTime': '2025-07-04T18:00:00+00:00',
        'hostUid': 'host-1',
        'attendees': ['host-1'],
        'invitedUsers': [],
    }
