"""Data models for Potluck events and profiles."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


ATTENDEES_FIELD = 'attendees'
INVITED_USERS_FIELD = 'invitedUsers'


@dataclass
class PotluckEvent:
    """A planned gathering as seen by the signed-in user."""
    document_id: str
    name: str
    location: str
    theme: str
    date_time: datetime
    host_uid: str
    attendees: List[str] = field(default_factory=list)
    invited_users: List[str] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_hosted_by(self, uid: str) -> bool:
        return bool(uid) and self.host_uid == uid

    def is_invited(self, uid: str) -> bool:
        return uid in self.attendees or uid in self.invited_users


class ChangeKind(Enum):
    """Kind of change reported by a live query."""
    ADDED = 'added'
    MODIFIED = 'modified'
    REMOVED = 'removed'


@dataclass
class DocumentChange:
    """Single document change within a change batch."""
    document_id: str
    kind: ChangeKind
    document: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DecodeFailure:
    """Reason a raw document could not be decoded."""
    document_id: str
    reason: str


@dataclass
class UserProfile:
    """Profile and dietary preferences of a user."""
    uid: str
    first_name: str
    last_name: str
    email: str = ''
    dietary_preference: str = ''
    allergies: List[str] = field(default_factory=list)

    @property
    def is_setup_complete(self) -> bool:
        """Profile setup is complete once both names are filled in."""
        return bool(self.first_name.strip()) and bool(self.last_name.strip())
