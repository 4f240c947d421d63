import hashlib
import os
import tempfile

import pytest

from acmecore.challenge import FirstSupported, HTTP01WebrootSolver
from acmecore.challenge import dns_01_record_name, dns_01_txt_value, http_01_path, key_authorization
from acmecore.errors import ConfigError
from acmecore.messages import Authorization, Challenge, Identifier
from acmecore.rfc4648 import base64url


def make_authz(*types):
    challenges = [Challenge(t, 'https://ca/chall/{}'.format(i), token='tok{}'.format(i))
                  for i, t in enumerate(types)]
    return Authorization('https://ca/authz/1', Identifier('dns', 'example.org'), 'pending', challenges)


def test_key_authorization(ec_key):
    assert key_authorization('tok', ec_key) == 'tok.' + ec_key.thumbprint()


def test_dns_01_txt_value():
    keyauth = 'tok.thumb'
    assert dns_01_txt_value(keyauth) == base64url(hashlib.sha256(b'tok.thumb').digest())


def test_dns_01_record_name():
    assert dns_01_record_name('example.org') == '_acme-challenge.example.org'
    assert dns_01_record_name('*.example.org') == '_acme-challenge.example.org'


def test_http_01_path():
    assert http_01_path('tok') == '/.well-known/acme-challenge/tok'


def test_first_supported():
    authz = make_authz('tls-alpn-01', 'dns-01', 'http-01')
    assert FirstSupported()(authz).type == 'dns-01'
    assert FirstSupported(['http-01'])(authz).type == 'http-01'


def test_first_supported_none():
    with pytest.raises(ConfigError):
        FirstSupported(['http-01'])(make_authz('tls-alpn-01'))


def test_webroot_solver():
    authz = make_authz('http-01')
    challenge = authz.challenges[0]
    with tempfile.TemporaryDirectory() as temp_dir:
        solver = HTTP01WebrootSolver(temp_dir)
        solver.perform(authz, challenge, 'tok0.thumb')

        path = os.path.join(temp_dir, '.well-known', 'acme-challenge', 'tok0')
        assert solver.path(challenge) == path
        with open(path) as f:
            assert f.read() == 'tok0.thumb'

        solver.cleanup(authz, challenge)
        assert not os.path.exists(path)
        # a second cleanup is a no-op
        solver.cleanup(authz, challenge)
