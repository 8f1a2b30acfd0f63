"""
Service identity resolution.

A connector authenticates either with a service-account JSON object taken
from the credential store (`account` reference) or with a key file on disk
(`keyFilename`). When both are configured the credential reference wins.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from google.oauth2 import service_account

from nimbus_runtime import CredentialStore

from .errors import ConfigurationError

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


@dataclass(frozen=True)
class ServiceIdentity:
    """
    Exactly one of a parsed service-account key or a key file path.

    Attributes:
        info: Service-account JSON object
        key_filename: Path to a service-account JSON key file
    """

    info: Optional[Dict[str, Any]] = None
    key_filename: Optional[str] = None

    def __post_init__(self):
        if (self.info is None) == (self.key_filename is None):
            raise ConfigurationError("ServiceIdentity needs exactly one of info or key_filename")

    @property
    def source(self) -> str:
        return "account" if self.info is not None else "keyFilename"

    @property
    def project_id(self) -> Optional[str]:
        if self.info is not None:
            return self.info.get("project_id")
        return self.credentials().project_id

    def credentials(self, scopes: Optional[Sequence[str]] = None) -> service_account.Credentials:
        """Build google-auth credentials, optionally scoped."""
        if self.info is not None:
            return service_account.Credentials.from_service_account_info(self.info, scopes=scopes)
        return service_account.Credentials.from_service_account_file(self.key_filename, scopes=scopes)


def _parse_account(account: Any) -> Dict[str, Any]:
    if isinstance(account, Mapping):
        return dict(account)
    try:
        info = json.loads(account)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Service account credentials are not valid JSON: {e}")
    if not isinstance(info, dict):
        raise ConfigurationError("Service account credentials must be a JSON object")
    return info


def resolve_identity(
    store: CredentialStore,
    account_ref: Optional[str],
    key_filename: Optional[str]
) -> ServiceIdentity:
    """
    Resolve the identity a node authenticates with.

    Args:
        store: Host credential store
        account_ref: Id of the credentials entry holding the `account` JSON
        key_filename: Path to a key file

    Returns:
        ServiceIdentity

    Raises:
        ConfigurationError: If neither source yields a usable identity
    """
    if account_ref:
        account = store.get(account_ref).get("account")
        if account:
            return ServiceIdentity(info=_parse_account(account))

    if key_filename:
        if not os.path.isfile(key_filename):
            raise ConfigurationError(f"Key file not found: {key_filename}")
        return ServiceIdentity(key_filename=key_filename)

    raise ConfigurationError("Missing credentials or keyFilename.")
