# csirotation

Building blocks for periodically rotating mounted secrets and the cluster
secrets synced from them: a cache of pod-bound service account tokens, a
cache of labelled secrets, a rate-limited work queue with a retry policy,
and counters for rotation metrics. Everything is in memory and uses only the
standard library.

## Installation

```
pip install csirotation
```

To run the tests:

```
pip install "csirotation[test]"
pytest
```

## Modules

### `csirotation.tokens`

Data classes `TokenRequest`, `TokenRequestSpec`, `TokenRequestStatus` and
`BoundObjectReference`, and a `Manager` that caches tokens per request.

- `Manager(get_token, clock=None)`: `get_token(name, namespace, tr)` fetches a
  fresh `TokenRequest`; `clock` returns the current aware `datetime`. With
  `get_token=None` every fetch raises `TokenError`.
- `get_service_account_token(namespace, name, tr)` returns the cached token
  unless it needs a refresh. A token needs one when it is past 80% of its
  lifetime or older than 24 hours (less a random jitter of up to 10 seconds);
  a token without `expiration_seconds` is never refreshed. When a refresh
  fails, the cached token is returned if it has not expired yet; otherwise
  `TokenError` is raised, as it is when there was no cached token.
- `delete_service_account_token(pod_uid)` drops tokens bound to a pod,
  `cleanup()` drops expired ones, `expired(tr)` and `requires_refresh(tr)`
  expose the checks.
- `key_func(name, namespace, tr)` builds the cache key from the names,
  audiences, lifetime and bound object; it holds no token.

```python
from datetime import datetime, timedelta, timezone
from csirotation.tokens import (
    BoundObjectReference, Manager, TokenRequest, TokenRequestSpec, TokenRequestStatus,
)

def fetch(name, namespace, tr):
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    return TokenRequest(spec=tr.spec, status=TokenRequestStatus(token="token", expiration_timestamp=expires))

manager = Manager(fetch)
request = TokenRequest(spec=TokenRequestSpec(
    audiences=["aud1"],
    expiration_seconds=3600,
    bound_object_ref=BoundObjectReference(api_version="v1", kind="Pod", name="pod1", uid="pod-uid"),
))
print(manager.get_service_account_token("default", "sa1", request).status.token)
```

### `csirotation.store`

- `Secret(name, namespace, labels, data)`, keyed as `namespace/name`.
- `SecretStore` keeps only secrets whose `secrets-store.csi.k8s.io/used`
  label is `"true"`: `add` stores such a secret and removes any other with
  the same key, `delete(name, namespace)` removes one, and
  `get_node_publish_secret_ref_secret(name, namespace)` returns it or raises
  `NotFoundError`.
- `SecretLister(mapping).get_with_key(key)` looks a secret up by key, raising
  `NotFoundError` when absent and `TypeError` when the entry is not a `Secret`.
- `used_label_selector()` returns `"secrets-store.csi.k8s.io/used=true"`.

```python
from csirotation.store import NotFoundError, Secret, SecretStore

store = SecretStore()
store.add(Secret(name="secret1", namespace="default",
                 labels={"secrets-store.csi.k8s.io/used": "true"}))
print(store.get_node_publish_secret_ref_secret("secret1", "default").name)

try:
    store.get_node_publish_secret_ref_secret("missing", "default")
except NotFoundError as exc:
    print(exc)  # secrets "default/missing" not found
```

### `csirotation.tokenclient`

`TokenClient(driver_name, driver_lookup, manager)` asks the `Manager` for one
pod-bound token per `TokenRequestConfig` on the `CSIDriver` returned by
`driver_lookup(driver_name)`. `pod_service_account_token_attrs(namespace,
pod_name, service_account_name, pod_uid)` returns
`{"csi.storage.k8s.io/serviceAccount.tokens": <JSON>}`, where the JSON maps
each audience to its `token` and `expirationTimestamp` (RFC 3339, UTC). It
returns `None` when the lookup raises `NotFoundError` or the driver has no
token requests. `get_service_account_token` and
`delete_service_account_token` pass through to the manager.

### `csirotation.metrics`

- `init_metrics_exporter(backend="Prometheus")` accepts the backend name in
  any case and returns an `ExporterConfig` with the histogram boundaries;
  any other name raises `UnsupportedBackendError`.
- `StatsReporter(os_type=None)` counts reports in memory:
  `report_rotation_count(provider, was_rotated)`,
  `report_rotation_error_count(provider, error_type, was_rotated)` and
  `report_rotation_duration(duration)`. `count(name, labels)` reads a counter
  back and `durations` lists the recorded durations.

```python
from csirotation.metrics import StatsReporter

reporter = StatsReporter(os_type="linux")
reporter.report_rotation_count("provider1", True)
print(reporter.count("total_rotation_reconcile",
                     {"provider": "provider1", "os_type": "linux", "rotated": True}))  # 1
```

### `csirotation.workqueue`

`RateLimitingQueue(clock=None)` is a de-duplicating queue: `add`,
`add_after(key, delay)`, `add_rate_limited(key)` (per-key exponential backoff
from 5 ms up to 1000 s, combined with an overall limit of 10 per second with a
burst of 100), `get()` (the next ready key or `None`), `done`, `forget`,
`num_requeues` and `len()`. A key re-added while it is being processed is
queued again only after `done`.

`handle_error(queue, error, key, rate_limited)` forgets the key on success,
re-adds it after 10 seconds on a plain failure, and on a rate-limited failure
re-adds it with backoff until it has been requeued 5 times, then drops it.

### `csirotation.rotation`

- `split_key("namespace/name")` returns `(namespace, name)` and raises
  `KeyFormatError` when there is no slash.
- `objects_require_update(old_versions, new_versions)` is true when any
  object id or version differs (ignoring surrounding whitespace) or the
  number of objects changed.

```python
from csirotation.rotation import objects_require_update

objects_require_update({"secret/object1": "v1"}, {"secret/object1": "v2"})  # True
```

## What it does not do

The package holds no Kubernetes API client: it does not watch or list pods,
secrets or secret provider classes, does not call the token API itself (the
caller supplies `get_token` and `driver_lookup`), does not talk to secret
providers, and does not patch secrets or update statuses. There is no running
rotation loop or command to start one, and metrics are only counted in
memory, not served to a Prometheus scraper.