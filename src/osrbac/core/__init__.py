from .guard import PolicyGuard, rule_count
from .ports import AcceptAllCredentials, CredentialVerifier, MetricsObserve, MetricsSink

__all__ = [
    "AcceptAllCredentials",
    "CredentialVerifier",
    "MetricsObserve",
    "MetricsSink",
    "PolicyGuard",
    "rule_count",
]
