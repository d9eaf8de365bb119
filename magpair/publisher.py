"""
Rate-limited publisher for dipole interaction results.

This module provides the publish side of a magnet pair:
- CallbackQueue: FIFO of callables serviced by a background thread
- Topic: named channel with subscribers and connect/disconnect hooks
- InteractionPublisher: stages wrench and field messages and offers them
  on two topics, "<ns>/wrench" and "<ns>/mfs"

Threading model:
    The simulation thread calls publish_data() once per tick. A separate
    queue thread runs CallbackQueue.call_available() in a loop, executing
    subscription events (connect/disconnect) and message deliveries.

    The subscriber counter and the staged messages are guarded by one lock.
    Staging a result and enqueueing it for delivery happen under that lock,
    and messages are frozen once built, so the queue thread never sees a
    partially written message.

Publish policy:
    - Nothing is emitted while no subscriber is connected.
    - With update_rate > 0, a result is skipped when less than
      1/update_rate seconds of sim time have passed since the last emission.
"""

import queue
import threading
import warnings
from dataclasses import dataclass
from typing import Callable, List, Optional

from magpair.messages import Header, MagneticFieldStamped, WrenchStamped

# Seconds the queue thread blocks waiting for work before re-checking
QUEUE_TIMEOUT = 0.01


@dataclass
class PublishOptions:
    """Publishing settings for a magnet pair.

    Attributes
    ----------
    should_publish : bool
        Enable the publisher (default: False).
    update_rate : float
        Maximum emission rate [Hz]; 0 means every tick (default: 0).
    topic_ns : str, optional
        Topic namespace; defaults to the parent body name.
    """

    should_publish: bool = False
    update_rate: float = 0.0
    topic_ns: Optional[str] = None

    def __post_init__(self):
        self.update_rate = float(self.update_rate)
        if self.update_rate < 0:
            raise ValueError(f"update_rate must be non-negative, got {self.update_rate}")


class CallbackQueue:
    """Thread-safe FIFO of zero-argument callables."""

    def __init__(self):
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Enqueue `callback`; dropped if the queue is disabled."""
        if self._enabled:
            self._queue.put(callback)

    def call_available(self, timeout: float = QUEUE_TIMEOUT) -> int:
        """
        Run every queued callback.

        Blocks up to `timeout` seconds for the first one, then drains the
        rest without blocking.

        Returns
        -------
        int
            Number of callbacks executed.
        """
        if not self._enabled:
            return 0

        try:
            callback = self._queue.get(timeout=timeout) if timeout > 0 else self._queue.get_nowait()
        except queue.Empty:
            return 0

        n_called = 0
        while True:
            callback()
            n_called += 1
            if not self._enabled:
                break
            try:
                callback = self._queue.get_nowait()
            except queue.Empty:
                break
        return n_called

    def clear(self) -> None:
        """Drop all pending callbacks."""
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def disable(self) -> None:
        self._enabled = False

    def enable(self) -> None:
        self._enabled = True

    def __len__(self) -> int:
        return self._queue.qsize()


class Subscription:
    """Handle returned by Topic.subscribe()."""

    def __init__(self, topic: "Topic", callback: Callable):
        self.topic = topic
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self.topic._remove(self)


class Topic:
    """
    Named channel. Subscription changes and deliveries go through the
    owning CallbackQueue, so they run on the queue thread.
    """

    def __init__(
        self,
        name: str,
        callback_queue: CallbackQueue,
        on_connect: Callable[[], None],
        on_disconnect: Callable[[], None],
    ):
        self.name = name
        self._queue = callback_queue
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    @property
    def num_subscribers(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, callback: Callable) -> Subscription:
        """Deliver every future message on this topic to `callback(msg)`."""
        sub = Subscription(self, callback)
        with self._lock:
            self._subscribers.append(sub)
        self._queue.add_callback(self._on_connect)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub not in self._subscribers:
                return
            self._subscribers.remove(sub)
        self._queue.add_callback(self._on_disconnect)

    def publish(self, msg) -> None:
        self._queue.add_callback(lambda: self._deliver(msg))

    def _deliver(self, msg) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            if not sub.active:
                continue
            try:
                sub.callback(msg)
            except Exception as e:
                warnings.warn(
                    f"Subscriber on '{self.name}' raised {e!r}; message dropped for it",
                    RuntimeWarning
                )


class InteractionPublisher:
    """
    Publishes force/torque and magnetometer readings for one magnet pair.

    Parameters
    ----------
    topic_ns : str
        Namespace; topics are "<topic_ns>/wrench" and "<topic_ns>/mfs".
    field_frame_id : str
        Frame id stamped on field messages (the parent body name).
    update_rate : float
        Maximum emission rate [Hz]; 0 for unconstrained.

    Examples
    --------
    >>> pub = InteractionPublisher("capsule", "capsule", update_rate=0.0)
    >>> received = []
    >>> sub = pub.wrench_topic.subscribe(received.append)
    >>> pub.spin_once()          # services the connect event
    1
    >>> pub.publish_data([0, 0, 1e-6], [0, 0, 0], [1e-5, 0, 0], sim_time=0.5)
    True
    >>> pub.spin_once()          # delivers wrench (mfs has no subscriber)
    2
    >>> received[0].header.frame_id
    'world'
    """

    WRENCH_FRAME_ID = "world"

    def __init__(self, topic_ns: str, field_frame_id: str, update_rate: float = 0.0):
        if update_rate < 0:
            raise ValueError(f"update_rate must be non-negative, got {update_rate}")

        self.topic_ns = topic_ns
        self.field_frame_id = field_frame_id
        self.update_rate = float(update_rate)

        self.lock = threading.Lock()
        self._connect_count = 0
        self.last_time: Optional[float] = None
        self.messages_published = 0

        self.wrench_msg: Optional[WrenchStamped] = None
        self.mfs_msg: Optional[MagneticFieldStamped] = None

        self.queue = CallbackQueue()
        self.wrench_topic = Topic(f"{topic_ns}/wrench", self.queue, self.connect, self.disconnect)
        self.mfs_topic = Topic(f"{topic_ns}/mfs", self.queue, self.connect, self.disconnect)

        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Subscription bookkeeping (runs on the queue thread)
    # ------------------------------------------------------------------

    @property
    def connect_count(self) -> int:
        with self.lock:
            return self._connect_count

    def connect(self) -> None:
        with self.lock:
            self._connect_count += 1

    def disconnect(self) -> None:
        with self.lock:
            if self._connect_count == 0:
                warnings.warn(
                    f"Disconnect on '{self.topic_ns}' with no connected subscribers; ignored",
                    RuntimeWarning
                )
                return
            self._connect_count -= 1

    # ------------------------------------------------------------------
    # Queue thread lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the queue-servicing thread."""
        if self.running:
            return
        self.queue.enable()
        self._running.set()
        self._thread = threading.Thread(
            target=self._queue_thread,
            name=f"magpair-publisher-{self.topic_ns}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        """Drop pending work, stop the queue thread and join it."""
        self._running.clear()
        self.queue.clear()
        self.queue.disable()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _queue_thread(self) -> None:
        while self._running.is_set():
            self.queue.call_available(QUEUE_TIMEOUT)

    def spin_once(self, timeout: float = 0.0) -> int:
        """Service the queue on the calling thread (when no thread runs)."""
        return self.queue.call_available(timeout)

    # ------------------------------------------------------------------
    # Publishing (runs on the simulation thread)
    # ------------------------------------------------------------------

    def publish_data(self, force, torque, field, sim_time: float) -> bool:
        """
        Offer one interaction result for publication.

        Parameters
        ----------
        force, torque : array-like, shape (3,)
            Wrench on the parent dipole, world frame.
        field : array-like, shape (3,)
            Flux density at the parent dipole, parent body frame.
        sim_time : float
            Simulation time of the result [s].

        Returns
        -------
        bool
            True if messages were staged and enqueued, False if skipped
            (no subscribers, or rate limit).
        """
        with self.lock:
            if self._connect_count <= 0:
                return False

            if (
                self.update_rate > 0
                and self.last_time is not None
                and (sim_time - self.last_time) < (1.0 / self.update_rate)
            ):
                return False

            self.wrench_msg = WrenchStamped.build(
                Header.at(self.WRENCH_FRAME_ID, sim_time), force, torque
            )
            self.mfs_msg = MagneticFieldStamped.build(
                Header.at(self.field_frame_id, sim_time), field
            )

            self.wrench_topic.publish(self.wrench_msg)
            self.mfs_topic.publish(self.mfs_msg)

            self.last_time = sim_time
            self.messages_published += 1
            return True
