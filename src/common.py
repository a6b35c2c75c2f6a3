"""Common error types shared by the client, provider and CLI layers.

Every failure raised by the provider carries a stage message naming the
step that failed. When built from an underlying cause the message reads
"<stage>: <cause>" and the cause is kept on ``__cause__`` by the raiser.
"""

from typing import Optional


class ProviderError(Exception):
    """Base class for lifecycle provider errors."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        if cause is not None:
            super().__init__(f"{stage}: {cause}")
        else:
            super().__init__(stage)


class CertificateError(ProviderError):
    """Missing or rejected trust material."""


class ProfileError(ProviderError):
    """Resource profile lookup or creation failed."""


class InventoryError(ProviderError):
    """Instance listing or removal failed."""


class PreparationError(ProviderError):
    """Hypervisor listener could not be enabled."""


class FirewallError(ProviderError):
    """Ingress rules could not be listed or closed."""


class StrategyError(ProviderError):
    """Generic bootstrap/destroy strategy failed."""


class LifecycleError(ProviderError):
    """Operation not allowed in the environment's current lifecycle state."""
