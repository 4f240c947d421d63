import collections
import datetime
import itertools
import json
import threading

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID
import pytest
import requests
from requests.structures import CaseInsensitiveDict

from acmecore.config import Config
from acmecore.keys import ECPrivateKey, RSAPrivateKey
from acmecore.rfc4648 import base64url_decode
from acmecore.transport import Transport

DIRECTORY_URL = 'https://ca/directory'
DIRECTORY = {
    'newNonce': 'https://ca/nonce',
    'newAccount': 'https://ca/acct',
    'newOrder': 'https://ca/order',
    'revokeCert': 'https://ca/revoke',
    'keyChange': 'https://ca/key-change',
    'meta': {
        'termsOfService': 'https://ca/terms',
        'website': 'https://ca',
        'caaIdentities': ['ca'],
        'externalAccountRequired': False,
    },
}

Request = collections.namedtuple('Request', 'method url headers data')


def make_response(status=200, body=None, headers=None, text=None):
    resp = requests.Response()
    resp.status_code = status
    if body is not None:
        resp._content = json.dumps(body).encode()
        resp.headers['Content-Type'] = 'application/json'
    elif text is not None:
        resp._content = text.encode()
    else:
        resp._content = b''
    resp.encoding = 'utf-8'
    resp.headers.update(headers or {})
    return resp


def clone_response(resp):
    # routes repeat their last response, so hand out copies
    copy = requests.Response()
    copy.status_code = resp.status_code
    copy._content = resp._content
    copy.encoding = resp.encoding
    copy.headers = CaseInsensitiveDict(resp.headers)
    return copy


def problem(code, detail='', status=400):
    body = {
        'type': 'urn:ietf:params:acme:error:' + code,
        'detail': detail,
        'status': status,
    }
    resp = make_response(status, body)
    resp.headers['Content-Type'] = 'application/problem+json'
    return resp


class FakeCA:
    """Stands in for requests.Session, replaying canned responses per route.

    Each route hands out its queued responses in order and keeps
    repeating the last one. Every response gets a fresh Replay-Nonce.
    """

    def __init__(self, directory=DIRECTORY):
        self.directory = directory
        self.requests = []
        self.routes = {}
        self._nonces = itertools.count(1)
        self._lock = threading.Lock()
        self.on('GET', DIRECTORY_URL, make_response(200, directory))
        self.on('HEAD', directory['newNonce'], make_response(200))

    def on(self, method, url, *responses):
        self.routes[(method, url)] = list(responses)

    def request(self, method, url, headers=None, data=None, timeout=None, verify=None):
        with self._lock:
            request = Request(method, url, headers or {}, data)
            self.requests.append(request)
            queue = self.routes.get((method, url))
            if not queue:
                return make_response(404, {'detail': 'no route for {} {}'.format(method, url)})

            resp = queue.pop(0) if len(queue) > 1 else queue[0]
            if callable(resp):
                resp = resp(request)
            resp = clone_response(resp)
            resp.url = url
            resp.headers.setdefault('Replay-Nonce', 'nonce-{}'.format(next(self._nonces)))
            return resp

    def close(self):
        pass

    response = staticmethod(make_response)
    problem = staticmethod(problem)

    def sent(self, method, url=None):
        return [r for r in self.requests if r.method == method and (url is None or r.url == url)]

    @staticmethod
    def decode(request):
        jws = json.loads(request.data)
        protected = json.loads(base64url_decode(jws['protected']))
        payload = jws['payload']
        if payload:
            payload = json.loads(base64url_decode(payload))
        return protected, payload


@pytest.fixture
def fake_ca():
    return FakeCA()


@pytest.fixture
def transport(fake_ca):
    return Transport(session=fake_ca)


@pytest.fixture
def config(tmp_path):
    return Config(
        directory_url=DIRECTORY_URL,
        contact=['admin@example.org'],
        accept_tos=True,
        storage_dir=str(tmp_path),
        poll_attempts=5,
        poll_backoff=0.001,
        poll_max_backoff=0.01,
    )


@pytest.fixture(scope='session')
def ec_key():
    return ECPrivateKey.generate()


@pytest.fixture(scope='session')
def rsa_key():
    return RSAPrivateKey.generate()


def make_certificate(private_key, name, not_after):
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)])
    not_before = not_after - datetime.timedelta(days=90)
    cert = x509.CertificateBuilder(
        subject_name=subject,
        issuer_name=subject,
        public_key=private_key.public_key,
        serial_number=x509.random_serial_number(),
        not_valid_before=not_before,
        not_valid_after=not_after,
    ).add_extension(
        x509.SubjectAlternativeName([x509.DNSName(name)]),
        critical=False,
    ).sign(private_key.key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture
def certificate(ec_key):
    def factory(name='example.org', days=60):
        now = datetime.datetime.now(datetime.timezone.utc)
        return make_certificate(ec_key, name, now + datetime.timedelta(days=days))
    return factory
