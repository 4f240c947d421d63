import hashlib
import hmac
import json

from acmecore.errors import ConfigError
from acmecore.rfc4648 import base64url, base64url_decode

EAB_ALGORITHM = 'HS256'


class JWS(dict):
    """Flattened JSON serialization of a JWS (RFC 7515 section 7.2.2).

    Exactly one of ``jwk`` or ``kid`` identifies the signing key. The
    nonce is optional since the nested JWS objects used for external
    account binding and key rollover do not carry one.
    """

    def __init__(self, url, payload, alg, nonce=None, jwk=None, kid=None):
        if jwk is None and kid is None:
            raise ValueError('either "jwk" or "kid" must be specified')
        if jwk is not None and kid is not None:
            raise ValueError('"jwk" and "kid" are mutually exclusive')

        protected = self.encode_protected(url, alg, nonce=nonce, jwk=jwk, kid=kid)
        payload = self.encode_payload(payload)
        jws = {
            'protected': protected,
            'payload': payload,
        }

        super().__init__(jws)

    @property
    def signing_input(self):
        return '{}.{}'.format(self['protected'], self['payload']).encode()

    def sign(self, private_key):
        signature = private_key.sign(self.signing_input)
        self['signature'] = base64url(signature)
        return self

    def sign_hmac(self, key):
        signature = hmac.new(key, self.signing_input, hashlib.sha256).digest()
        self['signature'] = base64url(signature)
        return self

    def dumps(self):
        return json.dumps(self, separators=(',', ':'))

    @staticmethod
    def encode_protected(url, alg, nonce=None, jwk=None, kid=None):
        protected = {
            'alg': alg,
            'url': url,
        }
        if nonce is not None:
            protected['nonce'] = nonce

        # use kid if present else default to jwk
        if kid is not None:
            protected['kid'] = kid
        else:
            protected['jwk'] = jwk

        protected = json.dumps(protected, separators=(',', ':'), sort_keys=True)
        protected = protected.encode()
        protected = base64url(protected)
        return protected

    @staticmethod
    def encode_payload(payload):
        # POST-as-GET carries an empty string, never "null"
        if payload is None or payload == '':
            return ''

        payload = json.dumps(payload, separators=(',', ':'), sort_keys=True)
        payload = payload.encode()
        payload = base64url(payload)
        return payload


def sign_with_jwk(payload, private_key, nonce, url):
    jws = JWS(url, payload, private_key.algorithm, nonce=nonce, jwk=private_key.public_jwk())
    return jws.sign(private_key)


def sign_with_kid(payload, private_key, nonce, url, kid):
    jws = JWS(url, payload, private_key.algorithm, nonce=nonce, kid=kid)
    return jws.sign(private_key)


def sign_external_account_binding(jwk, eab_kid, hmac_key, url):
    # https://tools.ietf.org/html/rfc8555#section-7.3.4
    try:
        key = base64url_decode(hmac_key)
    except ValueError as e:
        raise ConfigError('external account binding HMAC key is not base64url: {}'.format(e)) from e
    if not key:
        raise ConfigError('external account binding HMAC key is empty')

    jws = JWS(url, jwk, EAB_ALGORITHM, kid=eab_kid)
    return jws.sign_hmac(key)


def sign_key_change(account_url, old_key, new_key, url):
    # https://tools.ietf.org/html/rfc8555#section-7.3.5
    payload = {
        'account': account_url,
        'oldKey': old_key.public_jwk(),
    }
    jws = JWS(url, payload, new_key.algorithm, jwk=new_key.public_jwk())
    return jws.sign(new_key)
