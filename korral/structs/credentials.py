"""
Authentication-related structures.

Two kinds of credentials meet in the access layer:

* The connection info: the store's endpoint, its CA, and the privileged
  credentials of the access layer itself (used only for the lookups that
  the caller cannot do on their own, e.g. the role bindings).
* The identity: the caller's own credentials, on whose behalf all the domain
  operations are performed. It is immutable and lives for one call chain only.

Only the information passed to the HTTP protocol and TCP/SSL connection
is kept here, i.e. everything usable in a generic HTTP client:

* TCP server host & port.
* SSL verification/ignorance flag.
* SSL certificate authority.
* SSL client certificate and its private key.
* HTTP ``Authorization: Bearer token``.

.. seealso::
    :mod:`korral.clients.auth` and :mod:`korral.clients.piggybacking`.
"""
import base64
import binascii
import dataclasses
import re
from typing import Optional

from typing_extensions import Literal

PrincipalKind = Literal['User', 'ServiceAccount']

SERVICE_ACCOUNT_PREFIX = 'system:serviceaccount:'

PEM_CERTIFICATE_RE = re.compile(rb'-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----', re.S)
PEM_PRIVATE_KEY_RE = re.compile(rb'-----BEGIN ([A-Z ]*)PRIVATE KEY-----.+?-----END \1PRIVATE KEY-----', re.S)


class LoginError(Exception):
    """ Raised when the credentials cannot be obtained or parsed. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    A single endpoint with the privileged credentials and connection flags to use.
    """
    server: str  # e.g. "https://localhost:443"
    ca_path: Optional[str] = None
    ca_data: Optional[bytes] = None
    insecure: Optional[bool] = None
    token: Optional[str] = None
    certificate_path: Optional[str] = None
    certificate_data: Optional[bytes] = None
    private_key_path: Optional[str] = None
    private_key_data: Optional[bytes] = None
    default_namespace: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Identity:
    """
    The caller's credentials plus the principal derived from them.

    The principal's name & kind are resolved by an external inspector
    (a token review or a certificate's subject); they are only carried here.
    For service accounts, the name is the full username, e.g.
    ``system:serviceaccount:my-namespace:my-account``.
    """
    name: str = ''
    kind: PrincipalKind = 'User'
    token: Optional[str] = dataclasses.field(default=None, repr=False)
    certificate_data: Optional[bytes] = dataclasses.field(default=None, repr=False)
    private_key_data: Optional[bytes] = dataclasses.field(default=None, repr=False)

    @classmethod
    def from_authorization(
            cls,
            header: str,
            *,
            name: str = '',
            kind: PrincipalKind = 'User',
    ) -> "Identity":
        """
        Parse the caller's ``Authorization`` HTTP header.

        Supported schemes: ``Bearer <token>`` and ``ClientCert <data>``,
        where the data is a base64-encoded PEM with both the certificate
        and the private key. The scheme names are case-insensitive.
        """
        scheme, _, value = header.strip().partition(' ')
        value = value.strip()
        if not value:
            raise LoginError(f"Empty credentials in the authorization header: {scheme!r}")

        if scheme.lower() == 'bearer':
            return cls(name=name, kind=kind, token=value)

        if scheme.lower() == 'clientcert':
            try:
                pem = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as e:
                raise LoginError("The client certificate is not base64-encoded.") from e
            cert_match = PEM_CERTIFICATE_RE.search(pem)
            pkey_match = PEM_PRIVATE_KEY_RE.search(pem)
            if cert_match is None or pkey_match is None:
                raise LoginError("The client certificate must contain a certificate and a key.")
            return cls(name=name, kind=kind,
                       certificate_data=cert_match.group(0),
                       private_key_data=pkey_match.group(0))

        raise LoginError(f"Unsupported authorization scheme: {scheme!r}")

    @property
    def service_account(self) -> Optional[str]:
        """ A ``namespace:name`` of a service account, if the principal is one. """
        if self.kind == 'ServiceAccount' and self.name.startswith(SERVICE_ACCOUNT_PREFIX):
            return self.name[len(SERVICE_ACCOUNT_PREFIX):]
        return None
