"""Cache of secrets labelled for use as node publish secret references."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Mapping

SECRET_USED_LABEL = "secrets-store.csi.k8s.io/used"


class NotFoundError(LookupError):
    """Raised when a secret is not in the cache."""

    def __init__(self, key: str, resource: str = "secrets"):
        self.key = key
        self.resource = resource
        super().__init__(f'{resource} "{key}" not found')


@dataclass
class Secret:
    """A Kubernetes secret as the cache sees it."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    data: dict[str, bytes] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


def used_label_selector() -> str:
    """Label selector that picks out secrets marked as used."""
    return f"{SECRET_USED_LABEL}=true"


class SecretLister:
    """Looks secrets up by ``namespace/name`` key in a backing mapping."""

    def __init__(self, store: Mapping[str, object]):
        self._store = store

    def get_with_key(self, key: str) -> Secret:
        """Return the secret for ``key`` or raise NotFoundError."""
        try:
            obj = self._store[key]
        except KeyError:
            raise NotFoundError(key) from None
        if not isinstance(obj, Secret):
            raise TypeError(f"failed to cast {type(obj).__name__} to secret")
        return obj


class SecretStore:
    """Holds only secrets that carry the used label set to ``true``."""

    def __init__(self):
        self._items: dict[str, Secret] = {}
        self._lock = threading.Lock()
        self.lister = SecretLister(self._items)

    @staticmethod
    def _selected(secret: Secret) -> bool:
        return secret.labels.get(SECRET_USED_LABEL) == "true"

    def add(self, secret: Secret) -> None:
        """Add or update a secret; one without the label is dropped instead."""
        with self._lock:
            if self._selected(secret):
                self._items[secret.key] = secret
            else:
                self._items.pop(secret.key, None)

    def delete(self, name: str, namespace: str) -> None:
        """Remove a secret if present."""
        with self._lock:
            self._items.pop(f"{namespace}/{name}", None)

    def get_node_publish_secret_ref_secret(self, name: str, namespace: str) -> Secret:
        """Return the secret matching name and namespace."""
        with self._lock:
            return self.lister.get_with_key(f"{namespace}/{name}")