"""Token caching, a labelled secret cache, a rate-limited work queue and metrics for secret rotation."""

__version__ = "1.2.4"

__all__ = ["metrics", "rotation", "store", "tokenclient", "tokens", "workqueue"]