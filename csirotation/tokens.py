"""Cache of service account tokens bound to pods, refreshed before they expire."""

from __future__ import annotations

import json
import logging
import random
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_TTL = timedelta(hours=24)
GC_PERIOD = timedelta(minutes=1)
MAX_JITTER = timedelta(seconds=10)


class TokenError(Exception):
    """Raised when a service account token cannot be obtained."""


@dataclass(frozen=True)
class BoundObjectReference:
    """The object a token is bound to, normally a pod."""

    api_version: str = ""
    kind: str = ""
    name: str = ""
    uid: str = ""


@dataclass
class TokenRequestSpec:
    """What is asked for: audiences, lifetime and the bound object."""

    audiences: list[str] = field(default_factory=list)
    expiration_seconds: Optional[int] = None
    bound_object_ref: Optional[BoundObjectReference] = None


@dataclass
class TokenRequestStatus:
    """What the API server handed back."""

    token: str = ""
    expiration_timestamp: datetime = field(
        default_factory=lambda: datetime.fromtimestamp(0, timezone.utc)
    )


@dataclass
class TokenRequest:
    """A token request together with its answer."""

    spec: TokenRequestSpec = field(default_factory=TokenRequestSpec)
    status: TokenRequestStatus = field(default_factory=TokenRequestStatus)


TokenFetcher = Callable[[str, str, TokenRequest], TokenRequest]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def key_func(name: str, namespace: str, tr: TokenRequest) -> str:
    """Return a cache key for a request; it holds nothing confidential."""
    exp = tr.spec.expiration_seconds or 0
    ref = tr.spec.bound_object_ref or BoundObjectReference()
    ref_text = (
        f"BoundObjectReference(Kind:{json.dumps(ref.kind)}, "
        f"APIVersion:{json.dumps(ref.api_version)}, "
        f"Name:{json.dumps(ref.name)}, UID:{json.dumps(ref.uid)})"
    )
    audiences = json.dumps(list(tr.spec.audiences))
    return f"{json.dumps(name)}/{json.dumps(namespace)}/{audiences}/{exp}/{ref_text}"


class Manager:
    """Manages service account tokens for pods, caching them until refresh is due."""

    def __init__(self, get_token: Optional[TokenFetcher], clock: Optional[Clock] = None):
        self._get_token = get_token
        self._clock: Clock = clock or _utc_now
        self._cache: dict[str, TokenRequest] = {}
        self._lock = threading.RLock()
        self._random: Callable[[], float] = random.random

    def _fetch(self, name: str, namespace: str, tr: TokenRequest) -> TokenRequest:
        if self._get_token is None:
            raise TokenError("cannot use TokenManager when kubelet is in standalone mode")
        return self._get_token(name, namespace, tr)

    def get_service_account_token(
        self, namespace: str, name: str, tr: TokenRequest
    ) -> TokenRequest:
        """Return a cached token, refreshing it when due.

        A failed refresh falls back to the cached token while it is still valid.
        """
        key = key_func(name, namespace, tr)
        with self._lock:
            cached = self._cache.get(key)

        if cached is not None and not self.requires_refresh(cached):
            return cached

        try:
            fresh = self._fetch(name, namespace, tr)
        except Exception as err:
            if cached is None:
                raise TokenError(f"failed to fetch token: {err}") from err
            if self.expired(cached):
                raise TokenError(f"token {key} expired and refresh failed: {err}") from err
            logger.error("Couldn't update token (cacheKey=%s): %s", key, err)
            return cached

        with self._lock:
            self._cache[key] = fresh
        return fresh

    def delete_service_account_token(self, pod_uid: str) -> None:
        """Drop every cached token bound to the given pod."""
        with self._lock:
            self._cache = {
                key: tr
                for key, tr in self._cache.items()
                if tr.spec.bound_object_ref is None or tr.spec.bound_object_ref.uid != pod_uid
            }

    def cleanup(self) -> None:
        """Drop every expired token from the cache."""
        with self._lock:
            self._cache = {key: tr for key, tr in self._cache.items() if not self.expired(tr)}

    def expired(self, tr: TokenRequest) -> bool:
        """Whether the token's expiration time has passed."""
        return self._clock() > tr.status.expiration_timestamp

    def requires_refresh(self, tr: TokenRequest) -> bool:
        """Whether the token is past 80% of its lifetime or older than 24 hours."""
        if tr.spec.expiration_seconds is None:
            redacted = replace(tr, status=replace(tr.status, token=""))
            logger.error("Expiration seconds was nil for token request: %r", redacted)
            return False

        now = self._clock()
        exp = tr.status.expiration_timestamp
        ttl = tr.spec.expiration_seconds
        issued_at = exp - timedelta(seconds=ttl)

        jitter = timedelta(seconds=int(self._random() * MAX_JITTER.total_seconds()))
        if now > issued_at + (MAX_TTL - jitter):
            return True
        if now > exp - timedelta(seconds=(ttl * 20) // 100) - jitter:
            return True
        return False