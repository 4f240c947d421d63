import base64
import ipaddress
import logging
import textwrap

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric import utils as crypto_utils
from cryptography.x509.oid import NameOID

from acmecore.errors import SignatureError, UnsupportedKey
from acmecore.jwk import JWK, NIST_CURVE_NAMES
from acmecore.messages import Identifier, IDENTIFIER_DNS
from acmecore.utils import curve_size, int_to_bytes

KEY_TYPE_RSA = 'rsa'
KEY_TYPE_EC = 'ec'

RSA_PEM_LABEL = 'RSA PRIVATE KEY'
ECDSA_PEM_LABEL = 'ECDSA PRIVATE KEY'
EC_PEM_LABEL = 'EC PRIVATE KEY'
PKCS8_PEM_LABEL = 'PRIVATE KEY'

# the CN attribute is capped at 64 characters (RFC 5280, ub-common-name)
MAX_COMMON_NAME_LENGTH = 64

log = logging.getLogger(__name__)


class PrivateKey:
    """A signing key in one of the supported variants.

    The variant decides both the JWK shape and the JWS ``alg`` value, so
    both are derived here and nowhere else.
    """

    pem_label = None

    def __init__(self, key):
        self.key = key

    @property
    def algorithm(self):
        raise NotImplementedError

    @property
    def public_key(self):
        return self.key.public_key()

    @property
    def pem(self):
        der = self.key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return pem_encode(self.pem_label, der)

    def public_jwk(self):
        return JWK.from_public_key(self.public_key)

    def thumbprint(self):
        return self.public_jwk().thumbprint()

    def sign(self, data):
        try:
            return self._sign(data)
        except (TypeError, ValueError, UnsupportedAlgorithm) as e:
            raise SignatureError('failed to sign with {}: {}'.format(self.algorithm, e)) from e

    def _sign(self, data):
        raise NotImplementedError

    def generate_csr(self, identifiers):
        identifiers = [Identifier.coerce(i) for i in identifiers]
        if not identifiers:
            raise ValueError('at least one identifier is required for a CSR')

        sans = []
        for identifier in identifiers:
            if identifier.type == IDENTIFIER_DNS:
                sans.append(x509.DNSName(identifier.value))
            else:
                sans.append(x509.IPAddress(ipaddress.ip_address(identifier.value)))

        # https://cryptography.io/en/latest/x509/reference.html#x-509-csr-certificate-signing-request-builder-object
        builder = x509.CertificateSigningRequestBuilder()
        common_name = identifiers[0].value
        if len(common_name) <= MAX_COMMON_NAME_LENGTH:
            builder = builder.subject_name(x509.Name([
                x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            ]))
        else:
            builder = builder.subject_name(x509.Name([]))
        builder = builder.add_extension(
            x509.BasicConstraints(ca=False, path_length=None),
            critical=True,
        )
        builder = builder.add_extension(
            x509.SubjectAlternativeName(sans),
            critical=False,
        )

        # sign the CSR and convert to DER
        csr = builder.sign(private_key=self.key, algorithm=hashes.SHA256())
        csr = csr.public_bytes(serialization.Encoding.DER)
        return csr


class RSAPrivateKey(PrivateKey):
    pem_label = RSA_PEM_LABEL

    @classmethod
    def generate(cls, key_size=2048):
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        return cls(key)

    @property
    def algorithm(self):
        return 'RS256'

    def _sign(self, data):
        return self.key.sign(data, padding.PKCS1v15(), hashes.SHA256())


class ECPrivateKey(PrivateKey):
    pem_label = ECDSA_PEM_LABEL

    CURVES = {
        'P-256': ec.SECP256R1,
        'P-384': ec.SECP384R1,
        'P-521': ec.SECP521R1,
    }
    ALGORITHMS = {
        'P-256': ('ES256', hashes.SHA256),
        'P-384': ('ES384', hashes.SHA384),
        'P-521': ('ES512', hashes.SHA512),
    }

    def __init__(self, key):
        if key.curve.name not in NIST_CURVE_NAMES:
            raise UnsupportedKey('unsupported curve: {}'.format(key.curve.name))
        super().__init__(key)

    @classmethod
    def generate(cls, curve='P-256'):
        if curve not in cls.CURVES:
            raise UnsupportedKey('unsupported curve: {}'.format(curve))
        key = ec.generate_private_key(curve=cls.CURVES[curve]())
        return cls(key)

    @property
    def curve(self):
        return NIST_CURVE_NAMES[self.key.curve.name]

    @property
    def algorithm(self):
        return self.ALGORITHMS[self.curve][0]

    def _sign(self, data):
        hash_cls = self.ALGORITHMS[self.curve][1]
        signature = self.key.sign(data, ec.ECDSA(hash_cls()))

        # JWS wants raw fixed-width r || s instead of DER
        # https://tools.ietf.org/html/rfc7518#section-3.4
        size = curve_size(self.key.curve)
        r, s = crypto_utils.decode_dss_signature(signature)
        return int_to_bytes(r, size) + int_to_bytes(s, size)


def wrap_private_key(key):
    if isinstance(key, rsa.RSAPrivateKey):
        return RSAPrivateKey(key)
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return ECPrivateKey(key)
    raise UnsupportedKey()


def generate_private_key(key_type=KEY_TYPE_EC, key_size=2048, curve='P-256'):
    log.info('generating new %s private key', key_type)
    if key_type == KEY_TYPE_RSA:
        return RSAPrivateKey.generate(key_size=key_size)
    if key_type == KEY_TYPE_EC:
        return ECPrivateKey.generate(curve=curve)
    raise UnsupportedKey('unsupported key type: {}'.format(key_type))


def pem_encode(label, der):
    body = base64.b64encode(der).decode()
    lines = ['-----BEGIN {}-----'.format(label)]
    lines.extend(textwrap.wrap(body, 64))
    lines.append('-----END {}-----'.format(label))
    return ('\n'.join(lines) + '\n').encode()


def pem_label(pem):
    if isinstance(pem, bytes):
        pem = pem.decode('ascii', errors='replace')
    first_line = pem.strip().split('\n', 1)[0].strip()
    if not (first_line.startswith('-----BEGIN ') and first_line.endswith('-----')):
        raise UnsupportedKey('not a PEM encoded private key')
    return first_line[len('-----BEGIN '):-len('-----')]


def pem_decode(pem):
    if isinstance(pem, bytes):
        pem = pem.decode('ascii', errors='replace')
    lines = [line.strip() for line in pem.strip().split('\n')]
    body = ''.join(line for line in lines[1:] if not line.startswith('-----'))
    try:
        return base64.b64decode(body, validate=True)
    except ValueError as e:
        raise UnsupportedKey('malformed PEM body: {}'.format(e)) from e


def load_private_key(pem):
    # the header line decides the variant, no trial parsing
    label = pem_label(pem)
    if label == RSA_PEM_LABEL:
        expected = rsa.RSAPrivateKey
    elif label in (ECDSA_PEM_LABEL, EC_PEM_LABEL):
        expected = ec.EllipticCurvePrivateKey
    elif label == PKCS8_PEM_LABEL:
        expected = (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)
    else:
        raise UnsupportedKey('unsupported PEM label: {}'.format(label))

    der = pem_decode(pem)
    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise UnsupportedKey('failed to parse {} block: {}'.format(label, e)) from e

    if not isinstance(key, expected):
        raise UnsupportedKey('PEM label {} does not match key contents'.format(label))
    return wrap_private_key(key)
