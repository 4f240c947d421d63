import base64


# https://tools.ietf.org/html/rfc4648#section-5
def base64url(b):
    return base64.urlsafe_b64encode(b).decode().replace('=', '')


def base64url_decode(s):
    if isinstance(s, str):
        s = s.encode()
    padding = -len(s) % 4
    return base64.urlsafe_b64decode(s + b'=' * padding)
