"""Event synchronization cache.

Merges the "user is an attendee" and "user is invited" live queries into a
single list of events without duplicates, sorted by date. The list is
republished to observers after every change batch.
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from events.decoder import decode_event
from events.models import (
    ATTENDEES_FIELD,
    INVITED_USERS_FIELD,
    ChangeKind,
    DecodeFailure,
    DocumentChange,
    PotluckEvent,
)

logger = logging.getLogger(__name__)

EventList = Tuple[PotluckEvent, ...]
Observer = Callable[[EventList], None]


def sort_events(events: Iterable[PotluckEvent]) -> EventList:
    """Sort events by date. Equal dates keep their incoming order."""
    return tuple(sorted(events, key=lambda event: event.date_time))


class EventSyncCache:
    """
    In-memory view of the events relevant to one user.

    Both subscriptions feed ``on_change_batch``. Entries are keyed by
    document ID, so an event matched by both queries is stored once and
    the latest notification wins. All mutation and publishing happens
    under a single lock.
    """

    DEFAULT_POLL_INTERVAL = 2.0
    QUERY_FIELDS = (ATTENDEES_FIELD, INVITED_USERS_FIELD)

    def __init__(
        self,
        store: Any,
        decode: Callable[[str, Dict[str, Any]], Any] = decode_event,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ):
        """
        Initialize the cache.

        Args:
            store: Event store providing ``listen`` and ``delete_event``
            decode: Function turning a raw document into a PotluckEvent
                or a DecodeFailure
            poll_interval: Seconds between polls of each live query
        """
        self.store = store
        self.decode = decode
        self.poll_interval = poll_interval
        self._lock = threading.RLock()
        self._events_by_id: Dict[str, PotluckEvent] = {}
        self._events: EventList = ()
        self._observers: List[Observer] = []
        self._subscriptions: List[Any] = []
        self._generation = 0
        self._stopped = False
        self._user_id: Optional[str] = None

    @property
    def events(self) -> EventList:
        """The most recently published, date-sorted events."""
        return self._events

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_running(self) -> bool:
        with self._lock:
            return bool(self._subscriptions) and not self._stopped

    def get(self, document_id: str) -> Optional[PotluckEvent]:
        with self._lock:
            return self._events_by_id.get(document_id)

    def add_observer(self, observer: Observer) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def start(self, user_id: Optional[str]) -> None:
        """
        Subscribe to the events where ``user_id`` attends or is invited.

        Without a user (signed out) this does nothing. Starting again
        releases the previous subscriptions and clears the cached events.
        """
        if not user_id:
            logger.debug("No signed-in user, event sync not started")
            return

        self.stop()

        with self._lock:
            self._generation += 1
            generation = self._generation
            self._stopped = False
            self._user_id = user_id
            if self._events_by_id:
                self._events_by_id.clear()
                self._publish()

        subscriptions = []
        for field in self.QUERY_FIELDS:
            subscriptions.append(
                self.store.listen(
                    field,
                    user_id,
                    self._handler_for(generation),
                    poll_interval=self.poll_interval
                )
            )

        with self._lock:
            if generation == self._generation:
                self._subscriptions = subscriptions
                subscriptions = []

        # stop() ran while subscribing
        for subscription in subscriptions:
            subscription.remove(wait=False)

        logger.info(f"Started event sync for user {user_id}")

    def stop(self) -> None:
        """
        Release both subscriptions. Safe to call more than once.

        Batches still in flight from the released subscriptions and local
        deletes are ignored, so the published events no longer change
        after this returns. The last published list remains readable.
        """
        with self._lock:
            subscriptions = self._subscriptions
            self._subscriptions = []
            self._generation += 1
            self._stopped = True

        for subscription in subscriptions:
            subscription.remove(wait=False)

        if subscriptions:
            logger.info(f"Stopped event sync for user {self._user_id}")

    def on_change_batch(self, changes: List[DocumentChange]) -> None:
        """
        Apply a batch of document changes and publish the result once.

        Added or modified documents that fail to decode are skipped;
        removals of unknown documents are ignored.
        """
        with self._lock:
            self._apply(self._generation, changes)

    def _handler_for(self, generation: int) -> Callable[[List[DocumentChange]], None]:
        def handle(changes: List[DocumentChange]) -> None:
            with self._lock:
                self._apply(generation, changes)
        return handle

    def _apply(self, generation: int, changes: List[DocumentChange]) -> None:
        if self._stopped or generation != self._generation:
            logger.debug(f"Ignoring {len(changes)} changes from a released subscription")
            return

        skipped = 0
        for change in changes:
            if change.kind is ChangeKind.REMOVED:
                self._events_by_id.pop(change.document_id, None)
                continue

            result = self.decode(change.document_id, change.document)
            if isinstance(result, DecodeFailure):
                skipped += 1
                continue
            self._events_by_id[change.document_id] = result

        if skipped:
            logger.info(f"Skipped {skipped} malformed event documents")

        self._publish()

    def _publish(self) -> None:
        self._events = sort_events(self._events_by_id.values())
        events = self._events

        for observer in list(self._observers):
            try:
                observer(events)
            except Exception as e:
                logger.error(f"Event observer failed: {e}", exc_info=True)

    def delete(self, document_id: str) -> threading.Thread:
        """
        Delete an event locally right away, then remotely in the background.

        A failed remote delete is logged only; the local removal is kept.
        After ``stop()`` only the remote delete is issued.

        Returns:
            The thread performing the remote delete
        """
        with self._lock:
            if not self._stopped:
                self._events_by_id.pop(document_id, None)
                self._publish()

        thread = threading.Thread(
            target=self._delete_remote,
            args=(document_id,),
            name=f'delete-event-{document_id}',
            daemon=True
        )
        thread.start()
        return thread

    def _delete_remote(self, document_id: str) -> None:
        try:
            self.store.delete_event(document_id)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting event {document_id}: {e}")


def merge_snapshots(
    snapshots: Iterable[Dict[str, Dict[str, Any]]],
    decode: Callable[[str, Dict[str, Any]], Any] = decode_event
) -> EventList:
    """
    Merge one-shot query results the same way the live cache does.

    Args:
        snapshots: Query results, each mapping document ID to document

    Returns:
        De-duplicated events sorted by date
    """
    cache = EventSyncCache(store=None, decode=decode)
    for snapshot in snapshots:
        cache.on_change_batch([
            DocumentChange(document_id, ChangeKind.ADDED, document)
            for document_id, document in snapshot.items()
        ])
    return cache.events
