import logging

import requests

from acmecore.errors import ConflictError, NetworkError, ProtocolError, Timeout

JSON_CONTENT_TYPE = 'application/json'
JOSE_CONTENT_TYPE = 'application/jose+json'
PROBLEM_CONTENT_TYPE = 'application/problem+json'
PEM_CHAIN_CONTENT_TYPE = 'application/pem-certificate-chain'

DEFAULT_TIMEOUT = 30
DEFAULT_USER_AGENT = 'acmecore'

log = logging.getLogger(__name__)


class Transport:
    """Thin HTTPS layer the ACME session talks through.

    Responses are returned unchecked so the caller can harvest the
    ``Replay-Nonce`` header of error responses before raising.
    """

    def __init__(self, timeout=DEFAULT_TIMEOUT, verify_tls=True,
                 user_agent=DEFAULT_USER_AGENT, session=None):
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.user_agent = user_agent
        self.session = session if session is not None else requests.Session()

    def close(self):
        self.session.close()

    def get(self, url, headers=None):
        return self._send('GET', url, headers=headers)

    def head(self, url):
        return self._send('HEAD', url)

    def post(self, url, jws, accept=None):
        headers = {
            'Content-Type': JOSE_CONTENT_TYPE,
        }
        if accept is not None:
            headers['Accept'] = accept
        return self._send('POST', url, headers=headers, data=jws.dumps())

    def _send(self, method, url, headers=None, **kwargs):
        headers = dict(headers or {})
        headers.setdefault('User-Agent', self.user_agent)

        log.debug('sending %s request to %s', method, url)
        try:
            resp = self.session.request(
                method,
                url,
                headers=headers,
                timeout=self.timeout,
                verify=self.verify_tls,
                **kwargs
            )
        except requests.exceptions.Timeout as e:
            raise Timeout('{} {} timed out after {}s'.format(method, url, self.timeout)) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError('{} {} failed: {}'.format(method, url, e)) from e

        log.debug('received HTTP %s from %s', resp.status_code, url)
        return resp


def decode_json(resp):
    try:
        return resp.json()
    except ValueError:
        return None


def check_response(resp):
    """Raise the decoded ACME problem for any non-2xx response."""
    if resp.ok:
        return resp

    problem = decode_json(resp)
    if not isinstance(problem, dict):
        problem = {'detail': resp.text or None}

    if resp.status_code == 409:
        raise ConflictError.from_problem(
            problem,
            status=resp.status_code,
            location=resp.headers.get('Location'),
        )
    raise ProtocolError.from_problem(problem, status=resp.status_code)


def json_body(resp):
    body = decode_json(resp)
    if not isinstance(body, dict):
        raise ProtocolError(
            detail='expected a JSON object from {}'.format(resp.url),
            status=resp.status_code,
        )
    return body
