"""
Credential store for flow nodes.

Credentials are kept apart from node configuration and looked up by the id of
the credentials entry a node references (e.g. the `account` key of a Pub/Sub
node).
"""

from typing import Any, Dict, Mapping, Optional


class CredentialStore:
    """
    In-memory mapping of credential id -> credential fields.

    Example:
        store = CredentialStore({"gcp": {"account": '{"type": "service_account", ...}'}})
        store.get("gcp")["account"]
    """

    def __init__(self, entries: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._entries: Dict[str, Dict[str, Any]] = {}
        for ref, fields in (entries or {}).items():
            self.add(ref, fields)

    def add(self, ref: str, fields: Mapping[str, Any]) -> None:
        if not isinstance(fields, Mapping):
            raise ValueError(f"Credentials for '{ref}' must be a mapping, got {type(fields).__name__}")
        self._entries[str(ref)] = dict(fields)

    def get(self, ref: Optional[str]) -> Dict[str, Any]:
        """Return the credential fields for `ref` (empty dict if unknown)."""
        if not ref:
            return {}
        return dict(self._entries.get(str(ref), {}))

    def __contains__(self, ref: object) -> bool:
        return ref in self._entries

    def __len__(self) -> int:
        return len(self._entries)
