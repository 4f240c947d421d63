from acmecore.errors import ConfigError, ProtocolError

STATUS_PENDING = 'pending'
STATUS_READY = 'ready'
STATUS_PROCESSING = 'processing'
STATUS_VALID = 'valid'
STATUS_INVALID = 'invalid'
STATUS_DEACTIVATED = 'deactivated'
STATUS_EXPIRED = 'expired'
STATUS_REVOKED = 'revoked'

# statuses that will never change once observed
TERMINAL_STATUSES = (
    STATUS_VALID,
    STATUS_INVALID,
    STATUS_DEACTIVATED,
    STATUS_EXPIRED,
    STATUS_REVOKED,
)

IDENTIFIER_DNS = 'dns'
IDENTIFIER_IPV4 = 'ipv4'
IDENTIFIER_IP = 'ip'


class Identifier:

    def __init__(self, type, value):
        self.type = type
        self.value = value

    @classmethod
    def coerce(cls, identifier):
        if isinstance(identifier, cls):
            return identifier
        if isinstance(identifier, str):
            return cls(IDENTIFIER_DNS, identifier)
        return cls.from_json(identifier)

    @classmethod
    def from_json(cls, obj):
        return cls(obj['type'], obj['value'])

    def to_json(self):
        return {'type': self.type, 'value': self.value}

    def __eq__(self, other):
        if not isinstance(other, Identifier):
            return NotImplemented
        return (self.type, self.value) == (other.type, other.value)

    def __hash__(self):
        return hash((self.type, self.value))

    def __repr__(self):
        return 'Identifier({!r}, {!r})'.format(self.type, self.value)


class ExternalAccountBinding:

    def __init__(self, kid, hmac_key):
        if not kid or not hmac_key:
            raise ConfigError('external account binding needs both a kid and an HMAC key')
        self.kid = kid
        self.hmac_key = hmac_key

    @classmethod
    def from_json(cls, obj):
        return cls(obj.get('eab_kid'), obj.get('eab_hmac_key'))

    def to_json(self):
        return {'eab_kid': self.kid, 'eab_hmac_key': self.hmac_key}


class Account:
    """An ACME account as the CA knows it.

    ``url`` and ``kid`` stay empty until the CA assigns them, after which
    they are fixed for the life of the account.
    """

    def __init__(self, private_key, contact=None, url='', kid='', external_binding=None, platform=''):
        self.private_key = private_key
        self.contact = list(contact or [])
        self.external_binding = external_binding
        self.platform = platform
        self._url = url
        self._kid = kid or url

    @property
    def url(self):
        return self._url

    @property
    def kid(self):
        return self._kid

    @property
    def registered(self):
        return bool(self._url)

    def bind(self, url):
        if self._url and self._url != url:
            raise ProtocolError(
                detail='account is already bound to {}, CA returned {}'.format(self._url, url),
            )
        self._url = url
        self._kid = url

    def to_json(self):
        info = {
            'url': self.url,
            'kid': self.kid,
            'contact': self.contact,
            'platform': self.platform,
        }
        if self.external_binding is not None:
            info['external_binding'] = self.external_binding.to_json()
        return info

    @classmethod
    def from_json(cls, obj, private_key):
        binding = obj.get('external_binding')
        if binding is not None:
            binding = ExternalAccountBinding.from_json(binding)
        return cls(
            private_key,
            contact=obj.get('contact'),
            url=obj.get('url', ''),
            kid=obj.get('kid', ''),
            external_binding=binding,
            platform=obj.get('platform', ''),
        )


class Challenge:

    def __init__(self, type, url, status=STATUS_PENDING, token=None,
                 validated=None, validation_record=None, error=None):
        self.type = type
        self.url = url
        self.status = status
        self.token = token
        self.validated = validated
        self.validation_record = validation_record or []
        self.error = error

    @classmethod
    def from_json(cls, obj):
        try:
            return cls(
                obj['type'],
                obj['url'],
                status=obj.get('status', STATUS_PENDING),
                token=obj.get('token'),
                validated=obj.get('validated'),
                validation_record=obj.get('validationRecord'),
                error=obj.get('error'),
            )
        except (KeyError, TypeError) as e:
            raise ProtocolError(detail='malformed challenge object: {}'.format(e)) from e

    def __repr__(self):
        return 'Challenge({!r}, {!r}, status={!r})'.format(self.type, self.url, self.status)


class Authorization:

    def __init__(self, url, identifier, status, challenges, expires=None, wildcard=False):
        self.url = url
        self.identifier = identifier
        self.status = status
        self.challenges = challenges
        self.expires = expires
        self.wildcard = wildcard

    @classmethod
    def from_json(cls, obj, url=None):
        try:
            return cls(
                url,
                Identifier.from_json(obj['identifier']),
                obj['status'],
                [Challenge.from_json(c) for c in obj.get('challenges', [])],
                expires=obj.get('expires'),
                wildcard=obj.get('wildcard', False),
            )
        except (KeyError, TypeError) as e:
            raise ProtocolError(detail='malformed authorization object: {}'.format(e)) from e

    @property
    def error(self):
        # the failed challenge carries the problem document
        for challenge in self.challenges:
            if challenge.error is not None:
                return challenge.error
        return None

    def __repr__(self):
        return 'Authorization({!r}, {!r}, status={!r})'.format(self.url, self.identifier, self.status)


class Order:

    def __init__(self, url, status, identifiers, authorizations, finalize,
                 expires=None, certificate=None, error=None):
        self.url = url
        self.status = status
        self.identifiers = identifiers
        self.authorizations = authorizations
        self.finalize = finalize
        self.expires = expires
        self.certificate = certificate
        self.error = error

    @classmethod
    def from_json(cls, obj, url=None):
        try:
            return cls(
                url,
                obj['status'],
                [Identifier.from_json(i) for i in obj.get('identifiers', [])],
                list(obj.get('authorizations', [])),
                obj['finalize'],
                expires=obj.get('expires'),
                certificate=obj.get('certificate'),
                error=obj.get('error'),
            )
        except (KeyError, TypeError) as e:
            raise ProtocolError(detail='malformed order object: {}'.format(e)) from e

    @property
    def terminal(self):
        return self.status in TERMINAL_STATUSES

    def update(self, obj):
        """Return the order as described by a fresh server response.

        Status only moves forward: a terminal order that comes back in a
        different state is rejected instead of silently resurrected.
        """
        updated = Order.from_json(obj, url=self.url)
        if self.terminal and updated.status != self.status:
            raise ProtocolError(
                detail='order {} moved from terminal status {} to {}'.format(
                    self.url, self.status, updated.status),
            )
        if not updated.identifiers:
            updated.identifiers = self.identifiers
        return updated

    def __repr__(self):
        return 'Order({!r}, status={!r})'.format(self.url, self.status)
