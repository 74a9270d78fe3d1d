"""Service account tokens for the token requests configured on a CSI driver."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from csirotation.store import NotFoundError
from csirotation.tokens import (
    BoundObjectReference,
    Manager,
    TokenRequest,
    TokenRequestSpec,
    TokenRequestStatus,
)

logger = logging.getLogger(__name__)

SERVICE_ACCOUNT_TOKENS_ATTR = "csi.storage.k8s.io/serviceAccount.tokens"


@dataclass(frozen=True)
class TokenRequestConfig:
    """One token request entry from a CSI driver spec."""

    audience: str = ""
    expiration_seconds: Optional[int] = None


@dataclass
class CSIDriver:
    """The part of a CSI driver object that token requests need."""

    name: str
    token_requests: list[TokenRequestConfig] = field(default_factory=list)


DriverLookup = Callable[[str], CSIDriver]


def _rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _status_json(status: TokenRequestStatus) -> dict[str, str]:
    return {
        "token": status.token,
        "expirationTimestamp": _rfc3339(status.expiration_timestamp),
    }


class TokenClient:
    """Requests pod-bound tokens for the audiences configured on the driver."""

    def __init__(self, driver_name: str, driver_lookup: DriverLookup, manager: Manager):
        self.driver_name = driver_name
        self._driver_lookup = driver_lookup
        self._manager = manager

    def pod_service_account_token_attrs(
        self, namespace: str, pod_name: str, service_account_name: str, pod_uid: str
    ) -> Optional[dict[str, str]]:
        """Return the tokens attribute for a pod, or None when none is configured."""
        try:
            driver = self._driver_lookup(self.driver_name)
        except NotFoundError:
            logger.debug(
                "CSIDriver not found, not adding service account token information (driver=%s)",
                self.driver_name,
            )
            return None

        if not driver.token_requests:
            return None

        outputs: dict[str, TokenRequestStatus] = {}
        for config in driver.token_requests:
            audiences = [config.audience] if config.audience else []
            request = TokenRequest(
                spec=TokenRequestSpec(
                    audiences=audiences,
                    expiration_seconds=config.expiration_seconds,
                    bound_object_ref=BoundObjectReference(
                        api_version="v1", kind="Pod", name=pod_name, uid=pod_uid
                    ),
                )
            )
            answered = self.get_service_account_token(namespace, service_account_name, request)
            outputs[config.audience] = answered.status

        logger.debug(
            "Fetched service account token attrs for CSIDriver (driver=%s, podUID=%s)",
            self.driver_name,
            pod_uid,
        )
        tokens = json.dumps(
            {aud: _status_json(status) for aud, status in sorted(outputs.items())},
            separators=(",", ":"),
        )
        return {SERVICE_ACCOUNT_TOKENS_ATTR: tokens}

    def get_service_account_token(
        self, namespace: str, name: str, tr: TokenRequest
    ) -> TokenRequest:
        """Return a token from the cache or a fresh one from the token API."""
        return self._manager.get_service_account_token(namespace, name, tr)

    def delete_service_account_token(self, pod_uid: str) -> None:
        """Forget cached tokens for a deleted pod."""
        self._manager.delete_service_account_token(pod_uid)