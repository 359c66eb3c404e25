"""Polling live query that turns store snapshots into change batches."""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from events.models import ChangeKind, DocumentChange

logger = logging.getLogger(__name__)

Snapshot = Dict[str, Dict[str, Any]]


class LiveQuery:
    """
    Live subscription to a filtered set of documents.

    DynamoDB has no push listener, so the query is re-run every
    ``poll_interval`` seconds and each result is compared to the previous
    one. Differences are delivered to ``on_change`` as a single batch of
    DocumentChange objects, in the order they were observed.
    """

    def __init__(
        self,
        fetch: Callable[[], Snapshot],
        on_change: Callable[[List[DocumentChange]], None],
        poll_interval: float = 2.0,
        name: str = 'live-query'
    ):
        """
        Initialize the live query.

        Args:
            fetch: Callable returning the current documents keyed by ID
            on_change: Callback receiving each non-empty change batch
            poll_interval: Seconds between polls
            name: Name used for the polling thread and log lines
        """
        self.fetch = fetch
        self.on_change = on_change
        self.poll_interval = poll_interval
        self.name = name
        self._snapshot: Optional[Snapshot] = None
        self._stopped = threading.Event()
        self._poll_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_active(self) -> bool:
        return not self._stopped.is_set()

    def start(self) -> None:
        """Start polling on a daemon thread."""
        if self._stopped.is_set():
            raise RuntimeError(f"Live query {self.name} has been removed")
        if self._thread and self._thread.is_alive():
            return

        self._thread = threading.Thread(
            target=self._run, name=self.name, daemon=True
        )
        self._thread.start()
        logger.info(
            f"Started live query {self.name} "
            f"(poll interval {self.poll_interval}s)"
        )

    def _run(self) -> None:
        while not self._stopped.is_set():
            self.poll_once()
            self._stopped.wait(self.poll_interval)

    def poll_once(self) -> List[DocumentChange]:
        """
        Fetch the current result set and deliver its changes.

        Fetch errors are logged and leave the previous snapshot in place,
        so the subscriber simply sees no update for this round.

        Returns:
            The change batch that was delivered (possibly empty)
        """
        if self._stopped.is_set():
            return []

        with self._poll_lock:
            try:
                current = self.fetch()
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Live query {self.name} failed to fetch: {e}")
                return []

            changes = self._diff(self._snapshot or {}, current)
            self._snapshot = current

            if changes and not self._stopped.is_set():
                logger.debug(
                    f"Live query {self.name} delivering {len(changes)} changes"
                )
                self.on_change(changes)

        return changes

    def _diff(self, previous: Snapshot, current: Snapshot) -> List[DocumentChange]:
        """
        Compare two snapshots.

        Args:
            previous: Documents seen on the last poll
            current: Documents seen now

        Returns:
            Added and modified documents in result order, followed by
            removals in the order they were previously seen
        """
        changes = []

        for document_id, document in current.items():
            if document_id not in previous:
                changes.append(
                    DocumentChange(document_id, ChangeKind.ADDED, document)
                )
            elif previous[document_id] != document:
                changes.append(
                    DocumentChange(document_id, ChangeKind.MODIFIED, document)
                )

        for document_id, document in previous.items():
            if document_id not in current:
                changes.append(
                    DocumentChange(document_id, ChangeKind.REMOVED, document)
                )

        return changes

    def remove(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the subscription. Safe to call more than once.

        Args:
            wait: Join the polling thread before returning. Ignored when
                called from the polling thread itself.
            timeout: Maximum seconds to wait for the thread
        """
        if not self._stopped.is_set():
            self._stopped.set()
            logger.info(f"Removed live query {self.name}")

        thread = self._thread
        if (
            wait
            and thread is not None
            and thread is not threading.current_thread()
            and thread.is_alive()
        ):
            thread.join(timeout)
