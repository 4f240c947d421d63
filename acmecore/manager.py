from datetime import datetime, timedelta, timezone
import logging

from cryptography import x509

from acmecore.acme import ACMEClient
from acmecore.errors import ProtocolError
from acmecore.keys import generate_private_key
from acmecore.messages import Account, Identifier, STATUS_PENDING, STATUS_READY, STATUS_VALID
from acmecore.storage import Storage
from acmecore.utils import CancelToken

log = logging.getLogger(__name__)


class Manager:

    def __init__(self, config, storage=None, solver=None, transport=None):
        self.config = config
        self.storage = storage if storage is not None else Storage(config.storage_dir)
        self.solver = solver
        self.transport = transport
        self.client = None

    def load_or_create_account(self):
        account = self.storage.load_account(self.config.contact, self.config.platform)
        if account is None:
            log.info('generating new account key for: %s', self.config.contact)
            private_key = generate_private_key(
                self.config.key_type,
                key_size=self.config.key_size,
                curve=self.config.curve,
            )
            self.storage.save_account(Account(
                private_key,
                contact=self.config.contact,
                platform=self.config.platform,
            ))

            # the key is on disk first so a failed registration reuses it
            client = ACMEClient(private_key, self.config, transport=self.transport)
            account = client.register_or_lookup_account()
            self.storage.save_account(account)
        elif not account.registered:
            client = ACMEClient(account.private_key, self.config, transport=self.transport)
            account = client.register_or_lookup_account()
            self.storage.save_account(account)
        else:
            client = ACMEClient(account.private_key, self.config, account=account, transport=self.transport)

        self.client = client
        return account

    def issue(self, identifiers, cancel=None):
        identifiers = [Identifier.coerce(i) for i in identifiers]
        if self.client is None:
            self.load_or_create_account()
        client = self.client

        # first identifier names the key / cert files (all are SANs)
        name = identifiers[0].value
        order = client.create_order(identifiers)

        if order.status == STATUS_PENDING:
            client.authorize(order, solver=self.solver, cancel=cancel)
            order = client.poll_order(order, cancel=cancel)

        if order.status == STATUS_READY:
            private_key = self.storage.load_certificate_key(name)
            if private_key is None:
                private_key = generate_private_key(
                    self.config.key_type,
                    key_size=self.config.key_size,
                    curve=self.config.curve,
                )
                self.storage.save_certificate_key(name, private_key)

            csr = private_key.generate_csr(identifiers)
            order = client.finalize_order(order, csr)
            order = client.poll_order(order, cancel=cancel)

        if order.status != STATUS_VALID:
            problem = order.error or {}
            raise ProtocolError(
                type=problem.get('type'),
                detail=problem.get('detail') or 'order {} ended as {}'.format(order.url, order.status),
                status=problem.get('status'),
            )

        chain = client.download_certificate(order)
        self.storage.save_certificate(name, chain)
        return chain

    def seconds_until_renewal(self, name, now=None):
        cert_pem = self.storage.load_certificate(name)
        if cert_pem is None:
            return 0

        # load as x509 and check TTL
        cert = x509.load_pem_x509_certificate(cert_pem)
        expiry = cert.not_valid_after_utc
        now = now or datetime.now(timezone.utc)

        remaining = expiry - now - timedelta(days=self.config.renew_before)
        return max(0, remaining.total_seconds())

    def renew_if_needed(self, identifiers, cancel=None):
        identifiers = [Identifier.coerce(i) for i in identifiers]
        if self.seconds_until_renewal(identifiers[0].value) > 0:
            return None
        log.info('renewing cert for: %s', [i.value for i in identifiers])
        return self.issue(identifiers, cancel=cancel)

    def issue_and_renew_forever(self, identifiers, cancel=None):
        identifiers = [Identifier.coerce(i) for i in identifiers]
        cancel = cancel or CancelToken()
        log.info('starting issue/renew loop for: %s', [i.value for i in identifiers])
        while not cancel.cancelled:
            remaining = self.seconds_until_renewal(identifiers[0].value)

            # sleep til the renewal mark
            if remaining > 0:
                log.info('cert is still valid, sleeping for: %s', remaining)
                if cancel.wait(remaining):
                    break

            self.issue(identifiers, cancel=cancel)
