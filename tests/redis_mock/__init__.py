"""Redis Enterprise API mock for reconciler tests.

Provides an in-memory stand-in for DatabasesApi that walks databases through
realistic status transitions, plus a fake clock so convergence waits run
instantly.

Usage:
    from redis_mock import FakeClock, MockCluster, make_provider

    cluster = MockCluster()
    provider = make_provider(cluster)
    DatabaseReconciler().create(provider, data)
    assert cluster.call_count("get_database") == 4
"""

from .clock import FakeClock
from .cluster import (
    MockCluster,
    MockDatabaseRecord,
    not_found_error,
    service_error,
    transport_error,
)
from .provider import make_provider

__all__ = [
    "FakeClock",
    "MockCluster",
    "MockDatabaseRecord",
    "make_provider",
    "not_found_error",
    "service_error",
    "transport_error",
]
