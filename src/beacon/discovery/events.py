"""
Module providing the stream of discovered services that consumers subscribe to.
"""
import logging
import queue
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from beacon.discovery.record import ServiceRecord

RecordHandler = Callable[[ServiceRecord], None]
CompletionHandler = Callable[[], None]


class Subscription:
    """
    A registration of handlers with a :class:`DiscoveryEventStream`.

    Can be used as a context manager, unsubscribing on exit.
    """

    def __init__(
        self,
        stream: "DiscoveryEventStream",
        on_record: RecordHandler,
        on_completed: Optional[CompletionHandler] = None,
    ):
        self._stream = stream
        self.on_record = on_record
        self.on_completed = on_completed

    @property
    def active(self) -> bool:
        return self in self._stream

    def unsubscribe(self):
        self._stream.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unsubscribe()


class DiscoveryEventStream:
    """
    Delivers every :class:`ServiceRecord` published to all current subscribers.

    Records are delivered synchronously on the publishing thread, one publish at a
    time, so every subscriber sees the same records in the same order. Handlers may
    subscribe and unsubscribe at any time, including from within a handler; a new
    subscriber only receives records published after it subscribed.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()
        self._publish_lock = threading.RLock()
        self._completed = False

    @property
    def completed(self) -> bool:
        return self._completed

    def subscribe(
        self,
        on_record: RecordHandler,
        on_completed: Optional[CompletionHandler] = None,
    ) -> Subscription:
        """
        Add handlers to be called with each record published, and once when the stream completes.

        :param on_record: Called with every record published from now on.
        :param on_completed: Optional callable called when the stream completes. If it
            already has, this is called straight away.
        :return: The subscription, which can be used to unsubscribe.
        """
        subscription = Subscription(self, on_record, on_completed)
        with self._lock:
            if not self._completed:
                self._subscriptions.append(subscription)
                return subscription
        self._notify_completed(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, record: ServiceRecord) -> bool:
        """
        Deliver a record to every current subscriber.

        Exceptions raised by handlers are logged, and do not prevent delivery to the
        other subscribers.

        :return: ``False`` if the stream has completed and the record was dropped.
        """
        with self._publish_lock:
            with self._lock:
                if self._completed:
                    self.logger.debug(f"Dropping {record}, event stream completed.")
                    return False
                subscriptions = list(self._subscriptions)
            for subscription in subscriptions:
                try:
                    subscription.on_record(record)
                except Exception:
                    self.logger.exception(f"Error in discovery handler for {record}")
            return True

    def complete(self):
        """
        Signal that no further records will be published. Only the first call has any effect.
        """
        with self._publish_lock:
            with self._lock:
                if self._completed:
                    return
                self._completed = True
                subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            self._notify_completed(subscription)

    def _notify_completed(self, subscription: Subscription):
        if subscription.on_completed is None:
            return
        try:
            subscription.on_completed()
        except Exception:
            self.logger.exception("Error in discovery completion handler")

    @contextmanager
    def listen(self, maxsize: int = 0) -> Iterator["queue.Queue[Optional[ServiceRecord]]"]:
        """
        Subscribe a queue to the stream for the duration of the context.

        Records are put into the queue as they are published, and ``None`` is put
        once the stream completes. If the queue is bounded and full, further records
        are dropped.

        >>> stream = DiscoveryEventStream()
        >>> with stream.listen() as records:
        ...     _ = stream.publish(ServiceRecord("Example", "host.local", 8081))
        ...     records.get(block=False).port
        8081
        """
        records: "queue.Queue[Optional[ServiceRecord]]" = queue.Queue(maxsize)

        def put(record):
            try:
                records.put(record, block=False)
            except queue.Full:
                self.logger.warning(f"Discovery queue full, dropping {record}")

        def close():
            try:
                records.put(None, block=False)
            except queue.Full:
                self.logger.warning("Discovery queue full, could not signal completion")

        with self.subscribe(put, close):
            yield records

    def __contains__(self, subscription) -> bool:
        with self._lock:
            return subscription in self._subscriptions

    def __len__(self):
        with self._lock:
            return len(self._subscriptions)
