from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
import logging
import threading

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from acmecore import challenge as challenges
from acmecore import utils
from acmecore.config import Config
from acmecore.directory import fetch_directory
from acmecore.errors import ConfigError, ConflictError, ProtocolError, Timeout
from acmecore.jws import sign_external_account_binding, sign_key_change, sign_with_jwk, sign_with_kid
from acmecore.messages import Account, Authorization, Challenge, Identifier, Order
from acmecore.messages import STATUS_PENDING, STATUS_PROCESSING, STATUS_VALID
from acmecore.nonce import NonceManager
from acmecore.rfc4648 import base64url
from acmecore.transport import PEM_CHAIN_CONTENT_TYPE, Transport, check_response, json_body

log = logging.getLogger(__name__)


class ACMEClient:
    """Drives one account through the RFC 8555 request flow.

    Every signed request takes a fresh nonce, and every response puts
    its ``Replay-Nonce`` back. A ``badNonce`` rejection is retried once
    with a newly fetched nonce; every other problem is raised as is.
    """

    def __init__(self, private_key, config=None, account=None, transport=None):
        self.private_key = private_key
        self.config = config if config is not None else Config()
        self.account = account
        if transport is None:
            transport = Transport(
                timeout=self.config.timeout,
                verify_tls=self.config.verify_tls,
                user_agent=self.config.user_agent,
            )
        self.transport = transport

        self._lock = threading.Lock()
        self._directory = None
        self._nonces = None

    def close(self):
        self.transport.close()

    @property
    def directory(self):
        with self._lock:
            directory = self._directory
        if directory is not None:
            return directory

        # the network fetch happens outside the lock
        directory = fetch_directory(self.transport, self.config.directory_url)
        with self._lock:
            if self._directory is None:
                self._directory = directory
            return self._directory

    def refresh_directory(self):
        directory = fetch_directory(self.transport, self.config.directory_url)
        with self._lock:
            self._directory = directory
            if self._nonces is not None:
                self._nonces.new_nonce_url = directory.new_nonce
        return directory

    @property
    def nonces(self):
        directory = self.directory
        with self._lock:
            if self._nonces is None:
                self._nonces = NonceManager(self.transport, directory.new_nonce)
            return self._nonces

    def register_or_lookup_account(self, contact=None, external_binding=None, only_return_existing=False):
        directory = self.directory
        if contact is None:
            contact = self.config.contact
        if isinstance(contact, str):
            contact = [contact]
        if external_binding is None:
            external_binding = self.config.external_binding

        if only_return_existing:
            payload = {
                'onlyReturnExisting': True,
            }
        else:
            if directory.external_account_required and external_binding is None:
                raise ConfigError('CA requires an external account binding but none was given')

            payload = {
                'termsOfServiceAgreed': self.config.accept_tos,
            }

            # apply contact emails if present
            if contact:
                log.info('attaching contact info to account: %s', contact)
                payload['contact'] = normalize_contact(contact)

            # the binding is only ever sent with the first registration
            if external_binding is not None:
                payload['externalAccountBinding'] = sign_external_account_binding(
                    self.private_key.public_jwk(),
                    external_binding.kid,
                    external_binding.hmac_key,
                    directory.new_account,
                )

        try:
            resp = self._post(directory.new_account, payload, use_jwk=True)
        except ConflictError as e:
            if not e.location:
                raise
            log.info('account already exists: %s', e.location)
            location = e.location
        else:
            location = resp.headers.get('Location')
            if not location:
                raise ProtocolError(
                    detail='newAccount response has no Location header',
                    status=resp.status_code,
                )

        account = self.account
        if account is None:
            account = Account(
                self.private_key,
                contact=normalize_contact(contact or []),
                external_binding=external_binding,
                platform=self.config.platform,
            )
        account.bind(location)
        self.account = account

        log.info('initialized account kid: %s', account.kid)
        return account

    def create_order(self, identifiers):
        identifiers = [Identifier.coerce(i) for i in identifiers]
        if not identifiers:
            raise ValueError('an order needs at least one identifier')

        log.info('creating order for identifiers: %s', [i.value for i in identifiers])
        payload = {
            'identifiers': [i.to_json() for i in identifiers],
        }
        resp = self._post(self.directory.new_order, payload)

        order = Order.from_json(json_body(resp), url=resp.headers.get('Location'))
        if not order.identifiers:
            order.identifiers = identifiers
        return order

    def get_order(self, order):
        if order.url is None:
            raise ProtocolError(detail='order has no URL to refresh from')
        resp = self._post(order.url, None)
        return order.update(json_body(resp))

    def get_authorization(self, url):
        authz, _ = self._fetch_authorization(url)
        return authz

    def select_challenge(self, authorization, strategy=None):
        if strategy is None:
            strategy = challenges.FirstSupported(self.config.challenge_types)
        return strategy(authorization)

    def key_authorization(self, challenge):
        return challenges.key_authorization(challenge.token, self.private_key)

    def trigger_challenge(self, challenge):
        # an empty object (not POST-as-GET) asks the CA to start validating
        # https://tools.ietf.org/html/rfc8555#section-7.5.1
        log.info('triggering %s challenge: %s', challenge.type, challenge.url)
        resp = self._post(challenge.url, {})
        return Challenge.from_json(json_body(resp))

    def poll_authorization(self, url, max_attempts=None, backoff=None, cancel=None):
        """Poll an authorization until it leaves pending / processing.

        A final ``invalid`` status is returned rather than raised so the
        caller can fail the order as a whole.
        """
        return self._poll(
            lambda: self._fetch_authorization(url, cancel),
            'authorization {}'.format(url),
            max_attempts,
            backoff,
            cancel,
        )

    def poll_authorizations(self, urls, max_workers=None, max_attempts=None, backoff=None, cancel=None):
        """Poll several authorizations concurrently, results in input order.

        The first failure cancels the remaining polls and is re-raised.
        """
        urls = list(urls)
        if not urls:
            return []

        token = cancel.child() if cancel is not None else utils.CancelToken()
        max_workers = min(max_workers or self.config.max_workers, len(urls))
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='acmecore-poll') as executor:
            futures = [
                executor.submit(self.poll_authorization, url, max_attempts, backoff, token)
                for url in urls
            ]
            done, _ = wait_futures(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    token.cancel()
                    raise future.exception()
            return [future.result() for future in futures]

    def authorize(self, order, solver=None, strategy=None, cancel=None):
        if strategy is None and solver is not None and solver.types:
            strategy = challenges.FirstSupported(solver.types)

        pending = []
        performed = []
        try:
            for url in order.authorizations:
                authz = self.get_authorization(url)
                if authz.status == STATUS_VALID:
                    log.info('authorization for %s is already valid', authz.identifier.value)
                    continue
                if authz.status != STATUS_PENDING:
                    raise ProtocolError(detail='authorization for {} is {}'.format(
                        authz.identifier.value, authz.status))

                challenge = self.select_challenge(authz, strategy)
                if solver is not None:
                    solver.perform(authz, challenge, self.key_authorization(challenge))
                    performed.append((authz, challenge))
                if challenge.status == STATUS_PENDING:
                    self.trigger_challenge(challenge)
                pending.append(url)

            results = self.poll_authorizations(pending, cancel=cancel)
        finally:
            for authz, challenge in performed:
                solver.cleanup(authz, challenge)

        for authz in results:
            if authz.status != STATUS_VALID:
                problem = authz.error or {}
                raise ProtocolError(
                    type=problem.get('type'),
                    detail=problem.get('detail') or 'authorization for {} is {}'.format(
                        authz.identifier.value, authz.status),
                    status=problem.get('status'),
                )
        return results

    def finalize_order(self, order, csr):
        log.info('finalizing order: %s', order.url)
        payload = {
            'csr': base64url(csr),
        }
        resp = self._post(order.finalize, payload)
        return order.update(json_body(resp))

    def poll_order(self, order, max_attempts=None, backoff=None, cancel=None):
        # a terminal order never changes, don't ask again
        if order.terminal:
            return order
        if order.url is None:
            raise ProtocolError(detail='order has no URL to poll')

        def fetch():
            resp = self._post(order.url, None, cancel=cancel)
            return order.update(json_body(resp)), resp

        return self._poll(fetch, 'order {}'.format(order.url), max_attempts, backoff, cancel)

    def download_certificate(self, order):
        if order.status != STATUS_VALID or not order.certificate:
            raise ProtocolError(detail='order {} is {}, no certificate to download'.format(
                order.url, order.status))

        log.info('downloading certificate: %s', order.certificate)
        resp = self._post(order.certificate, None, accept=PEM_CHAIN_CONTENT_TYPE)
        return resp.text

    def revoke_certificate(self, cert_pem, reason=None):
        cert = x509.load_pem_x509_certificate(to_bytes(cert_pem))
        payload = {
            'certificate': base64url(cert.public_bytes(serialization.Encoding.DER)),
        }
        if reason is not None:
            payload['reason'] = reason

        log.info('revoking certificate serial: %s', cert.serial_number)
        self._post(self.directory.require('revoke_cert'), payload)

    def change_key(self, new_key):
        url = self.directory.require('key_change')
        account = self._require_account()

        # inner JWS is signed by the new key, outer one by the current key
        inner = sign_key_change(account.url, self.private_key, new_key, url)
        self._post(url, inner)

        log.info('rolled over account key for: %s', account.url)
        self.private_key = new_key
        account.private_key = new_key
        return account

    def _require_account(self):
        if self.account is None or not self.account.registered:
            raise ConfigError('no registered account, call register_or_lookup_account first')
        return self.account

    def _fetch_authorization(self, url, cancel=None):
        resp = self._post(url, None, cancel=cancel)
        return Authorization.from_json(json_body(resp), url=url), resp

    def _poll(self, fetch, description, max_attempts, backoff, cancel):
        if max_attempts is None:
            max_attempts = self.config.poll_attempts
        if backoff is None:
            backoff = self.config.poll_backoff
        if max_attempts < 1:
            raise ConfigError('max_attempts must be at least 1, got {}'.format(max_attempts))
        if cancel is None:
            cancel = utils.CancelToken()

        delays = utils.backoff(backoff, max(backoff, self.config.poll_max_backoff))
        resource = None
        for attempt in range(1, max_attempts + 1):
            cancel.raise_if_cancelled()
            resource, resp = fetch()
            if resource.status not in (STATUS_PENDING, STATUS_PROCESSING):
                return resource
            if attempt == max_attempts:
                break

            delay = max(next(delays), retry_after(resp, self.config.poll_max_backoff))
            log.debug('%s is %s, polling again in %ss', description, resource.status, delay)
            if cancel.wait(delay):
                cancel.raise_if_cancelled()

        raise Timeout('{} still {} after {} attempts'.format(description, resource.status, max_attempts))

    def _post(self, url, payload, use_jwk=False, accept=None, cancel=None):
        try:
            return self._post_once(url, payload, use_jwk, accept, cancel)
        except ProtocolError as error:
            if not error.is_bad_nonce:
                raise
            # a single retry with a nonce straight from newNonce
            log.info('retrying %s after badNonce: %s', url, error.detail)
            self.nonces.discard()
            return self._post_once(url, payload, use_jwk, accept, cancel)

    def _post_once(self, url, payload, use_jwk, accept, cancel):
        if cancel is not None:
            cancel.raise_if_cancelled()

        nonce = self.nonces.take()
        if use_jwk:
            jws = sign_with_jwk(payload, self.private_key, nonce, url)
        else:
            kid = self._require_account().kid
            jws = sign_with_kid(payload, self.private_key, nonce, url, kid)

        # post message to the ACME server
        resp = self.transport.post(url, jws, accept=accept)
        self.nonces.harvest(resp)
        return check_response(resp)


def normalize_contact(contact):
    if isinstance(contact, str):
        contact = [contact]

    # add mailto prefix to each email if not already present
    emails = []
    for email in contact:
        if email.startswith('mailto:') or ':' in email:
            emails.append(email)
        else:
            emails.append('mailto:' + email)
    return emails


def retry_after(resp, maximum):
    value = resp.headers.get('Retry-After')
    if value is None:
        return 0
    try:
        seconds = int(value)
    except ValueError:
        return 0
    return min(max(seconds, 0), maximum)


def to_bytes(data):
    if isinstance(data, str):
        return data.encode()
    return data
