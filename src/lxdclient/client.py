"""Hypervisor client interface.

The provider only depends on the HypervisorClient protocol. Failures are
reported as ClientError with a structured ErrorKind so callers can treat
"not found" or "already exists" as idempotent outcomes without looking at
message text.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Protocol, runtime_checkable

from lxdclient.certs import Certificate

# Instance config keys carrying user metadata start with this
USER_KEY_PREFIX = 'user.'


class ErrorKind(Enum):
    NOT_FOUND = 'not-found'
    ALREADY_EXISTS = 'already-exists'
    OTHER = 'other'


class ClientError(Exception):
    """Hypervisor call failed."""

    def __init__(self, kind: ErrorKind, message: str, status: Optional[int] = None):
        self.kind = kind
        self.message = message
        self.status = status
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        return self.kind is ErrorKind.NOT_FOUND

    @property
    def is_already_exists(self) -> bool:
        return self.kind is ErrorKind.ALREADY_EXISTS


@dataclass(frozen=True)
class CertInfo:
    """Trust store entry."""
    fingerprint: str
    name: str = ''
    type: str = 'client'


@dataclass(frozen=True)
class RemoteInstance:
    """Instance as reported by the hypervisor.

    Attributes:
        id: Instance name
        status: Hypervisor status string (Running, Stopped, ...)
        metadata: User metadata with the 'user.' prefix stripped
    """
    id: str
    status: str = ''
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InstanceSpec:
    """Request to create and start one instance."""
    name: str
    profiles: tuple[str, ...]
    metadata: Mapping[str, str] = field(default_factory=dict)
    image_alias: str = '22.04'
    image_server: str = 'https://cloud-images.ubuntu.com/releases'
    image_protocol: str = 'simplestreams'


@runtime_checkable
class HypervisorClient(Protocol):
    """Operations the provider needs from the hypervisor."""

    def cert_by_fingerprint(self, fingerprint: str) -> CertInfo:
        """Look up a trusted certificate. Raises NOT_FOUND if absent."""
        ...

    def add_cert(self, cert: Certificate) -> None:
        """Trust a client certificate. Raises ALREADY_EXISTS on duplicate."""
        ...

    def remove_cert_by_fingerprint(self, fingerprint: str) -> None:
        """Untrust a certificate. Raises NOT_FOUND if absent."""
        ...

    def has_profile(self, name: str) -> bool:
        ...

    def create_profile(self, name: str, config: Mapping[str, str]) -> None:
        ...

    def enable_https_listener(self) -> None:
        """Expose the API over HTTPS. No-op when already listening."""
        ...

    def instances_with_prefix(self, prefix: str) -> list[RemoteInstance]:
        ...

    def remove_instances(self, prefix: str, *ids: str) -> None:
        """Stop and delete all named instances in one call."""
        ...

    def create_instance(self, spec: InstanceSpec) -> RemoteInstance:
        ...
