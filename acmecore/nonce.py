import logging
import threading

from acmecore.errors import ProtocolError
from acmecore.transport import check_response

REPLAY_NONCE_HEADER = 'Replay-Nonce'

log = logging.getLogger(__name__)


class NonceManager:
    """Single slot holding the next anti-replay nonce.

    A nonce leaves the slot the moment it is taken, so no two signed
    requests can ever carry the same value. The lock only guards the
    slot; network fetches happen outside of it.
    """

    def __init__(self, transport, new_nonce_url):
        self.transport = transport
        self.new_nonce_url = new_nonce_url
        self._lock = threading.Lock()
        self._nonce = None

    @property
    def held(self):
        with self._lock:
            return self._nonce

    def fetch(self):
        resp = self.transport.head(self.new_nonce_url)
        check_response(resp)
        nonce = resp.headers.get(REPLAY_NONCE_HEADER)
        if not nonce:
            raise ProtocolError(
                detail='no {} header from {}'.format(REPLAY_NONCE_HEADER, self.new_nonce_url),
                status=resp.status_code,
            )
        log.debug('fetched fresh nonce: %s', nonce)
        return nonce

    def take(self):
        with self._lock:
            nonce, self._nonce = self._nonce, None
        if nonce is None:
            nonce = self.fetch()
        return nonce

    def harvest(self, resp):
        nonce = resp.headers.get(REPLAY_NONCE_HEADER)
        if not nonce:
            return
        with self._lock:
            self._nonce = nonce
        log.debug('stored nonce: %s', nonce)

    def discard(self):
        with self._lock:
            self._nonce = None
