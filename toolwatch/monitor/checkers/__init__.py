"""Probe executors: the generic HTTP checker and specialised checkers."""

from toolwatch.monitor.checkers.base import HealthChecker
from toolwatch.monitor.checkers.http import HttpChecker
from toolwatch.monitor.checkers.queue_depth import QueueDepthChecker
from toolwatch.monitor.checkers.rate_limit import RateLimitChecker
from toolwatch.monitor.checkers.registry import DEFAULT_CHECKER_KEYS, CheckerRegistry
from toolwatch.monitor.checkers.webhook_delivery import WebhookDeliveryChecker

__all__ = [
    "DEFAULT_CHECKER_KEYS",
    "CheckerRegistry",
    "HealthChecker",
    "HttpChecker",
    "QueueDepthChecker",
    "RateLimitChecker",
    "WebhookDeliveryChecker",
]
