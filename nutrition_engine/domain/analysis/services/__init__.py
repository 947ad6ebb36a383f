"""Analysis domain services."""

from .provider_orchestrator import ProviderOrchestrator, backoff_delay_ms

__all__ = ["ProviderOrchestrator", "backoff_delay_ms"]
