ACME_ERROR_PREFIX = 'urn:ietf:params:acme:error:'
ACME_ERROR_BAD_NONCE = ACME_ERROR_PREFIX + 'badNonce'
ACME_ERROR_MALFORMED = ACME_ERROR_PREFIX + 'malformed'
ACME_ERROR_ORDER_NOT_READY = ACME_ERROR_PREFIX + 'orderNotReady'


class ACMEError(Exception):
    pass


class UnsupportedKey(ACMEError):

    def __init__(self, detail='unknown key type; only RSA and ECDSA are supported'):
        super().__init__(detail)


class SignatureError(ACMEError):
    pass


class ConfigError(ACMEError):
    pass


class StorageError(ACMEError):
    pass


class NetworkError(ACMEError):
    pass


class Timeout(ACMEError):
    pass


class Cancelled(ACMEError):
    pass


class ProtocolError(ACMEError):
    """The CA rejected a request or answered with something unusable.

    ``type`` and ``detail`` come verbatim from the RFC 7807 problem
    document when the server sent one.
    """

    def __init__(self, type=None, detail=None, status=None, subproblems=None):
        self.type = type
        self.detail = detail
        self.status = status
        self.subproblems = subproblems or []
        super().__init__(type, detail, status)

    @classmethod
    def from_problem(cls, problem, status=None, **kwargs):
        return cls(
            type=problem.get('type'),
            detail=problem.get('detail'),
            status=status if status is not None else problem.get('status'),
            subproblems=problem.get('subproblems'),
            **kwargs
        )

    @property
    def code(self):
        if self.type and self.type.startswith(ACME_ERROR_PREFIX):
            return self.type[len(ACME_ERROR_PREFIX):]
        return None

    @property
    def is_bad_nonce(self):
        return self.type == ACME_ERROR_BAD_NONCE

    def __str__(self):
        parts = []
        if self.status is not None:
            parts.append('HTTP {}'.format(self.status))
        if self.type:
            parts.append(self.type)
        if self.detail:
            parts.append(self.detail)
        return ': '.join(parts) or 'ACME protocol error'


class ConflictError(ProtocolError):

    def __init__(self, location, **kwargs):
        self.location = location
        kwargs.setdefault('status', 409)
        super().__init__(**kwargs)
