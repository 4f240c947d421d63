import json
import logging
import os

from acmecore.errors import StorageError
from acmecore.keys import load_private_key
from acmecore.messages import Account

log = logging.getLogger(__name__)


class Storage:
    """Keys, account info and certificates kept as files under one directory.

    account key:   <dir>/account/<email>.<platform>.pem
    account info:  <dir>/account/<email>.<platform>.json
    cert key:      <dir>/certs/<identifier>/private.pem
    cert chain:    <dir>/certs/<identifier>/fullchain.pem
    """

    def __init__(self, storage_dir):
        self.storage_dir = storage_dir
        self._makedirs(self.storage_dir)

    def path(self, name):
        return os.path.join(self.storage_dir, name)

    def exists(self, name):
        return os.path.exists(self.path(name))

    def read(self, name):
        path = self.path(name)
        try:
            with open(path, 'rb') as f:
                data = f.read()
        except OSError as e:
            raise StorageError('failed to read {}: {}'.format(path, e)) from e
        return data

    def write(self, name, data, private=False):
        path = self.path(name)
        self._makedirs(os.path.dirname(path))
        try:
            # private keys never get group / world access
            mode = 0o600 if private else 0o644
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise StorageError('failed to write {}: {}'.format(path, e)) from e

    def save_account(self, account):
        base = account_name(account.contact, account.platform)
        self.write(base + '.pem', account.private_key.pem, private=True)
        if account.registered:
            info = json.dumps(account.to_json(), indent=2, sort_keys=True)
            self.write(base + '.json', info.encode())
        log.info('saved account: %s', base)

    def load_account(self, contact, platform):
        base = account_name(contact, platform)
        if not self.exists(base + '.pem'):
            return None

        log.info('loading existing account key: %s', base)
        private_key = load_private_key(self.read(base + '.pem'))
        if not self.exists(base + '.json'):
            return Account(private_key, contact=contact, platform=platform)

        try:
            info = json.loads(self.read(base + '.json').decode())
        except ValueError as e:
            raise StorageError('corrupt account info {}: {}'.format(base, e)) from e
        return Account.from_json(info, private_key)

    def save_certificate_key(self, name, private_key):
        self.write(cert_name(name, 'private.pem'), private_key.pem, private=True)

    def load_certificate_key(self, name):
        path = cert_name(name, 'private.pem')
        if not self.exists(path):
            return None
        return load_private_key(self.read(path))

    def save_certificate(self, name, chain):
        if isinstance(chain, str):
            chain = chain.encode()
        self.write(cert_name(name, 'fullchain.pem'), chain)
        log.info('saved certificate chain for: %s', name)

    def load_certificate(self, name):
        path = cert_name(name, 'fullchain.pem')
        if not self.exists(path):
            return None
        return self.read(path)

    def _makedirs(self, path):
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            raise StorageError('failed to create {}: {}'.format(path, e)) from e


def account_name(contact, platform):
    email = contact[0] if contact else 'default'
    if email.startswith('mailto:'):
        email = email[len('mailto:'):]
    return os.path.join('account', '{}.{}'.format(safe_name(email), safe_name(platform or 'acme')))


def cert_name(name, filename):
    return os.path.join('certs', safe_name(name), filename)


def safe_name(name):
    name = name.replace('*', 'wildcard')
    return name.replace(os.sep, '_').replace('/', '_')
