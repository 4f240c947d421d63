import threading

from acmecore.errors import Cancelled


def int_to_bytes(i, length=None):
    if length is None:
        length = max(1, (i.bit_length() + 7) // 8)
    return i.to_bytes(length, byteorder='big')


def curve_size(curve):
    # byte length of a single coordinate, P-521 rounds up to 66
    return (curve.key_size + 7) // 8


def backoff(initial, maximum, factor=2):
    delay = initial
    while True:
        yield min(delay, maximum)
        delay *= factor


class CancelToken:
    """Cooperative cancellation shared between a caller and its polls.

    Cancelling a token cancels every child derived from it, so one
    failed authorization poll can stop its siblings without touching
    the caller's own token.
    """

    def __init__(self, parent=None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children = []
        if parent is not None:
            parent._adopt(self)

    @property
    def cancelled(self):
        return self._event.is_set()

    def cancel(self):
        with self._lock:
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel()

    def child(self):
        return CancelToken(parent=self)

    def wait(self, timeout):
        return self._event.wait(timeout)

    def raise_if_cancelled(self):
        if self.cancelled:
            raise Cancelled('operation was cancelled')

    def _adopt(self, child):
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
        child.cancel()
