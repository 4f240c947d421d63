import logging

import appdirs

from acmecore.challenge import DEFAULT_CHALLENGE_TYPES
from acmecore.directory import LETS_ENCRYPT_DIRECTORY_URL
from acmecore.errors import ConfigError
from acmecore.keys import KEY_TYPE_EC, KEY_TYPE_RSA
from acmecore.messages import ExternalAccountBinding
from acmecore.transport import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT

APP_NAME = 'acmecore'

# names used by existing YAML config files, mapped onto Config fields
LEGACY_KEYS = {
    'dir': 'storage_dir',
    'email': 'contact',
    'external_account_binding': 'external_binding',
    'expire_check_duration': 'renew_before',
}

log = logging.getLogger(__name__)


class Config:
    """Everything the client needs, passed in explicitly at construction."""

    FIELDS = (
        'directory_url',
        'contact',
        'accept_tos',
        'external_binding',
        'platform',
        'storage_dir',
        'key_type',
        'key_size',
        'curve',
        'timeout',
        'verify_tls',
        'user_agent',
        'poll_attempts',
        'poll_backoff',
        'poll_max_backoff',
        'max_workers',
        'challenge_types',
        'renew_before',
    )

    def __init__(self, directory_url=LETS_ENCRYPT_DIRECTORY_URL, contact=None, accept_tos=False,
                 external_binding=None, platform='letsencrypt', storage_dir=None,
                 key_type=KEY_TYPE_EC, key_size=2048, curve='P-256',
                 timeout=DEFAULT_TIMEOUT, verify_tls=True, user_agent=DEFAULT_USER_AGENT,
                 poll_attempts=10, poll_backoff=1.0, poll_max_backoff=30.0, max_workers=4,
                 challenge_types=DEFAULT_CHALLENGE_TYPES, renew_before=30):
        # if contact email is just a string, make it a single-element list
        if isinstance(contact, str):
            contact = [contact]

        # use a platform-friendly directory for keys / certs
        if storage_dir is None:
            storage_dir = appdirs.user_data_dir(APP_NAME, APP_NAME)

        self.directory_url = directory_url
        self.contact = list(contact or [])
        self.accept_tos = accept_tos
        self.external_binding = external_binding
        self.platform = platform
        self.storage_dir = storage_dir
        self.key_type = key_type
        self.key_size = key_size
        self.curve = curve
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.user_agent = user_agent
        self.poll_attempts = poll_attempts
        self.poll_backoff = poll_backoff
        self.poll_max_backoff = poll_max_backoff
        self.max_workers = max_workers
        self.challenge_types = tuple(challenge_types)
        self.renew_before = renew_before

        self.validate()

    def validate(self):
        if not self.directory_url:
            raise ConfigError('directory_url must be set')
        if self.key_type not in (KEY_TYPE_RSA, KEY_TYPE_EC):
            raise ConfigError('key_type must be "rsa" or "ec", got {!r}'.format(self.key_type))
        if self.key_type == KEY_TYPE_RSA and self.key_size < 2048:
            raise ConfigError('RSA keys must be at least 2048 bits')
        if self.timeout <= 0:
            raise ConfigError('timeout must be positive')
        if self.poll_attempts < 1:
            raise ConfigError('poll_attempts must be at least 1')
        if self.poll_backoff <= 0 or self.poll_max_backoff < self.poll_backoff:
            raise ConfigError('poll backoff must be positive and not exceed poll_max_backoff')
        if self.max_workers < 1:
            raise ConfigError('max_workers must be at least 1')
        if not self.challenge_types:
            raise ConfigError('at least one challenge type is required')
        if self.renew_before < 0:
            raise ConfigError('renew_before must not be negative')
        if self.external_binding is not None and not isinstance(self.external_binding, ExternalAccountBinding):
            raise ConfigError('external_binding must be an ExternalAccountBinding')

    @classmethod
    def from_dict(cls, data):
        """Build a Config from an already parsed mapping (YAML, JSON, env)."""
        kwargs = {}
        for key, value in data.items():
            field = LEGACY_KEYS.get(key, key)
            if field not in cls.FIELDS:
                raise ConfigError('unknown config option: {}'.format(key))
            kwargs[field] = value

        binding = kwargs.get('external_binding')
        if isinstance(binding, (list, tuple)):
            # older configs list several bindings, the first one is used
            binding = binding[0] if binding else None
        if isinstance(binding, dict):
            binding = ExternalAccountBinding.from_json(binding)
        kwargs['external_binding'] = binding

        return cls(**kwargs)
