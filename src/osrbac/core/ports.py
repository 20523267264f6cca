from __future__ import annotations

from typing import Dict, Protocol, runtime_checkable


@runtime_checkable
class MetricsSink(Protocol):
    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None: ...


@runtime_checkable
class MetricsObserve(Protocol):
    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None: ...


@runtime_checkable
class CredentialVerifier(Protocol):
    """Checks the secret that came with a Basic identity."""

    def verify(self, identity: str, secret: str) -> bool: ...


class AcceptAllCredentials:
    """Verifier that trusts every secret.

    Used when authentication happens upstream of this service.
    """

    def verify(self, identity: str, secret: str) -> bool:
        return True


__all__ = ["MetricsSink", "MetricsObserve", "CredentialVerifier", "AcceptAllCredentials"]
