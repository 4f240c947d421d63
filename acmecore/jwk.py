import hashlib
import json

from cryptography.hazmat.primitives.asymmetric import ec, rsa

from acmecore.errors import UnsupportedKey
from acmecore.rfc4648 import base64url
from acmecore.utils import curve_size, int_to_bytes

NIST_CURVE_NAMES = {
    'secp256r1': 'P-256',
    'secp384r1': 'P-384',
    'secp521r1': 'P-521',
}


class JWK(dict):

    @classmethod
    def from_public_key(cls, public_key):
        # field order is part of the thumbprint input
        # https://tools.ietf.org/html/rfc7638#section-3.3
        if isinstance(public_key, rsa.RSAPublicKey):
            # https://tools.ietf.org/html/rfc7518#section-6.3.1
            numbers = public_key.public_numbers()
            return cls([
                ('e', base64url(int_to_bytes(numbers.e))),
                ('kty', 'RSA'),
                ('n', base64url(int_to_bytes(numbers.n))),
            ])

        if isinstance(public_key, ec.EllipticCurvePublicKey):
            # https://tools.ietf.org/html/rfc7518#section-6.2.1
            crv = NIST_CURVE_NAMES.get(public_key.curve.name)
            if crv is None:
                raise UnsupportedKey('unsupported curve: {}'.format(public_key.curve.name))

            size = curve_size(public_key.curve)
            numbers = public_key.public_numbers()
            return cls([
                ('crv', crv),
                ('kty', 'EC'),
                ('x', base64url(int_to_bytes(numbers.x, size))),
                ('y', base64url(int_to_bytes(numbers.y, size))),
            ])

        raise UnsupportedKey()

    def dumps(self):
        return json.dumps(self, separators=(',', ':'), sort_keys=True)

    def thumbprint(self):
        thumbprint = self.dumps()
        thumbprint = thumbprint.encode()
        thumbprint = hashlib.sha256(thumbprint).digest()
        thumbprint = base64url(thumbprint)
        return thumbprint
