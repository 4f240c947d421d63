import logging

from acmecore.errors import ConfigError
from acmecore.transport import check_response, json_body

LETS_ENCRYPT_DIRECTORY_URL = 'https://acme-v02.api.letsencrypt.org/directory'
LETS_ENCRYPT_STAGING_DIRECTORY_URL = 'https://acme-staging-v02.api.letsencrypt.org/directory'

REQUIRED_RESOURCES = ('newNonce', 'newAccount', 'newOrder')

log = logging.getLogger(__name__)


class Directory:

    def __init__(self, new_nonce, new_account, new_order, revoke_cert=None, key_change=None,
                 terms_of_service=None, website=None, caa_identities=None,
                 external_account_required=False):
        self.new_nonce = new_nonce
        self.new_account = new_account
        self.new_order = new_order
        self.revoke_cert = revoke_cert
        self.key_change = key_change
        self.terms_of_service = terms_of_service
        self.website = website
        self.caa_identities = tuple(caa_identities or ())
        self.external_account_required = external_account_required

    @classmethod
    def from_json(cls, obj):
        missing = [name for name in REQUIRED_RESOURCES if not obj.get(name)]
        if missing:
            raise ConfigError('ACME directory is missing: {}'.format(', '.join(missing)))

        meta = obj.get('meta') or {}
        return cls(
            obj['newNonce'],
            obj['newAccount'],
            obj['newOrder'],
            revoke_cert=obj.get('revokeCert'),
            key_change=obj.get('keyChange'),
            terms_of_service=meta.get('termsOfService'),
            website=meta.get('website'),
            caa_identities=meta.get('caaIdentities'),
            external_account_required=bool(meta.get('externalAccountRequired', False)),
        )

    def require(self, name):
        url = getattr(self, name)
        if not url:
            raise ConfigError('ACME directory does not offer {}'.format(name))
        return url


def fetch_directory(transport, directory_url):
    log.info('fetching ACME directory: %s', directory_url)
    resp = transport.get(directory_url)
    check_response(resp)
    return Directory.from_json(json_body(resp))
