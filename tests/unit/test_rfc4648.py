from acmecore.rfc4648 import base64url, base64url_decode


def test_base64url():
    data = b'oh wow some data'
    encoded = base64url(data)
    assert type(encoded) == str
    assert '=' not in encoded


def test_base64url_url_safe_alphabet():
    encoded = base64url(b'\xfb\xff\xfe')
    assert encoded == '-__-'


def test_base64url_decode_without_padding():
    assert base64url_decode('b2ggd293') == b'oh wow'
    assert base64url_decode(base64url(b'a')) == b'a'
