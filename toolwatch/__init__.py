"""
Toolwatch - health monitoring for SSO-integrated DevOps tools.

Toolwatch periodically probes backend services and tool integrations,
isolates failing targets behind per-target circuit breakers, aggregates
probe metrics into fixed time buckets, and correlates failures of
critical targets into cascade incidents.
"""

from toolwatch.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
