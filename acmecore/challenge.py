import hashlib
import logging
import os

from acmecore.errors import ConfigError, StorageError
from acmecore.rfc4648 import base64url

CHALLENGE_HTTP_01 = 'http-01'
CHALLENGE_DNS_01 = 'dns-01'
CHALLENGE_TLS_ALPN_01 = 'tls-alpn-01'

DEFAULT_CHALLENGE_TYPES = (CHALLENGE_HTTP_01, CHALLENGE_DNS_01)

HTTP_01_PATH = '/.well-known/acme-challenge/'
DNS_01_LABEL = '_acme-challenge'

log = logging.getLogger(__name__)


def key_authorization(token, private_key):
    # https://tools.ietf.org/html/rfc8555#section-8.1
    return '{}.{}'.format(token, private_key.thumbprint())


def dns_01_txt_value(keyauth):
    digest = hashlib.sha256(keyauth.encode()).digest()
    return base64url(digest)


def dns_01_record_name(domain):
    # wildcard authorizations are proven on the base domain
    if domain.startswith('*.'):
        domain = domain[2:]
    return '{}.{}'.format(DNS_01_LABEL, domain)


def http_01_path(token):
    return HTTP_01_PATH + token


class FirstSupported:
    """Picks the first offered challenge whose type we can solve."""

    def __init__(self, types=DEFAULT_CHALLENGE_TYPES):
        self.types = tuple(types)

    def __call__(self, authorization):
        for challenge in authorization.challenges:
            if challenge.type in self.types:
                return challenge
        offered = [c.type for c in authorization.challenges]
        raise ConfigError('no supported challenge for {}: offered {}, supported {}'.format(
            authorization.identifier.value, offered, list(self.types)))


class ChallengeSolver:
    """Provisions the response to a challenge before it is triggered."""

    types = ()

    def perform(self, authorization, challenge, keyauth):
        raise NotImplementedError

    def cleanup(self, authorization, challenge):
        pass


class HTTP01WebrootSolver(ChallengeSolver):
    types = (CHALLENGE_HTTP_01,)

    def __init__(self, webroot):
        self.webroot = webroot

    def path(self, challenge):
        return os.path.join(self.webroot, HTTP_01_PATH.strip('/'), challenge.token)

    def perform(self, authorization, challenge, keyauth):
        path = self.path(challenge)
        log.info('writing HTTP-01 response for %s: %s', authorization.identifier.value, path)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, 'w') as f:
                f.write(keyauth)
        except OSError as e:
            raise StorageError('failed to write HTTP-01 response {}: {}'.format(path, e)) from e

    def cleanup(self, authorization, challenge):
        path = self.path(challenge)
        if not os.path.exists(path):
            return
        try:
            os.remove(path)
        except OSError as e:
            raise StorageError('failed to remove HTTP-01 response {}: {}'.format(path, e)) from e
