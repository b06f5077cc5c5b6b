"""Replay-latest change stream used by :class:`~entcache.cache.EntityCache`.

:class:`ChangeStream` is a small publish/subscribe primitive: every new
subscriber is immediately handed the most recent value, then receives each
later value until it unsubscribes. The stream stays open for the life of
its cache; only :meth:`ChangeStream.close` ends it.

Callbacks run synchronously inside :meth:`ChangeStream.emit`, in
subscription order. An exception raised by a callback propagates to the
code that triggered the emission.
"""

from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

V = TypeVar("V")


class Subscription:
    """Handle returned by :meth:`ChangeStream.subscribe`."""

    def __init__(self, stream: ChangeStream, observer: _Observer) -> None:
        self._stream: Optional[ChangeStream] = stream
        self._observer = observer

    @property
    def closed(self) -> bool:
        return self._stream is None

    def unsubscribe(self) -> None:
        """Stop receiving values. Calling this more than once is harmless."""
        if self._stream is not None:
            self._stream._remove(self._observer)
            self._stream = None

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *args: object) -> None:
        self.unsubscribe()


class _Observer:
    __slots__ = ("on_next", "on_complete")

    def __init__(
        self,
        on_next: Callable[[object], None],
        on_complete: Optional[Callable[[], None]],
    ) -> None:
        self.on_next = on_next
        self.on_complete = on_complete


class ChangeStream(Generic[V]):
    """A subscribable sequence of values that replays the latest one.

    Args:
        initial: Value handed to subscribers before anything is emitted.
    """

    def __init__(self, initial: V) -> None:
        self._value = initial
        self._observers: list[_Observer] = []
        self._closed = False

    @property
    def value(self) -> V:
        """The most recently emitted value."""
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._observers)

    def subscribe(
        self,
        on_next: Callable[[V], None],
        on_complete: Optional[Callable[[], None]] = None,
    ) -> Subscription:
        """Register *on_next* and call it right away with the latest value.

        On a closed stream nothing is replayed; *on_complete* is called
        immediately and the returned subscription is already closed.
        """
        observer = _Observer(on_next, on_complete)
        subscription = Subscription(self, observer)
        if self._closed:
            subscription._stream = None
            if on_complete is not None:
                on_complete()
            return subscription
        self._observers.append(observer)
        on_next(self._value)
        return subscription

    def emit(self, value: V) -> None:
        """Record *value* as the latest and deliver it to every subscriber."""
        if self._closed:
            return
        self._value = value
        for observer in list(self._observers):
            observer.on_next(value)

    def close(self) -> None:
        """Complete the stream and drop all subscribers."""
        if self._closed:
            return
        self._closed = True
        observers, self._observers = self._observers, []
        for observer in observers:
            if observer.on_complete is not None:
                observer.on_complete()

    def _remove(self, observer: _Observer) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            pass
