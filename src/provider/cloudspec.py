"""Hypervisor endpoint and credential descriptor."""

import logging
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from config import ConfigError
from lxdclient.certs import DEFAULT_CERT_NAME, Certificate
from lxdclient.rest import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = 'https://127.0.0.1:8443'

_LOOPBACK_HOSTS = {'localhost', '127.0.0.1', '::1'}


@dataclass(frozen=True)
class CloudSpec:
    """Immutable description of the LXD endpoint.

    Attributes:
        endpoint: HTTPS URL of the LXD API
        client_cert: Client certificate and key, if configured
        server_cert: PEM of the server certificate to pin, if known
        local: True when the endpoint is on this host
        timeout: Per-request timeout for the client
    """
    endpoint: str = DEFAULT_ENDPOINT
    client_cert: Optional[Certificate] = None
    server_cert: Optional[bytes] = field(default=None, repr=False)
    local: bool = True
    timeout: int = DEFAULT_TIMEOUT


def _local_addresses() -> set[str]:
    hostname = socket.gethostname()
    addresses = {hostname, socket.getfqdn()}
    try:
        for info in socket.getaddrinfo(hostname, None):
            addresses.add(str(info[4][0]))
    except socket.gaierror:
        pass
    return addresses


def is_local_endpoint(endpoint: str) -> bool:
    """Check whether an endpoint URL points at this host."""
    host = urlparse(endpoint).hostname or ''
    if host in _LOOPBACK_HOSTS or host.startswith('127.'):
        return True
    return host in _local_addresses()


def _resolve(base_dir: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def load_cloud_spec(data: Mapping[str, Any], base_dir: Path) -> CloudSpec:
    """Build a CloudSpec from the 'cloud' section of the config file.

    Relative certificate paths are resolved against base_dir. Locality is
    detected from the endpoint unless 'local' is set explicitly.

    Raises:
        ConfigError: If a referenced file is missing or the endpoint is not HTTPS
    """
    endpoint = str(data.get('endpoint') or DEFAULT_ENDPOINT)
    if urlparse(endpoint).scheme != 'https':
        raise ConfigError(f"cloud: endpoint must be https, got {endpoint!r}")

    client_cert = None
    if cert_file := data.get('client-cert'):
        key_file = data.get('client-key')
        try:
            client_cert = Certificate.from_files(
                str(data.get('client-cert-name') or DEFAULT_CERT_NAME),
                _resolve(base_dir, cert_file),
                _resolve(base_dir, key_file) if key_file else None,
            )
        except FileNotFoundError as e:
            raise ConfigError("cloud: loading client certificate", e) from e

    server_cert = None
    if server_file := data.get('server-cert'):
        path = _resolve(base_dir, server_file)
        if not path.exists():
            raise ConfigError(f"cloud: server certificate not found: {path}")
        server_cert = path.read_bytes()

    local = data.get('local')
    if local is None:
        local = is_local_endpoint(endpoint)
    logger.debug(f"Endpoint {endpoint} local={local}")

    try:
        timeout = int(data.get('timeout', DEFAULT_TIMEOUT))
    except (TypeError, ValueError) as e:
        raise ConfigError("cloud: invalid timeout", e) from e

    return CloudSpec(
        endpoint=endpoint,
        client_cert=client_cert,
        server_cert=server_cert,
        local=bool(local),
        timeout=timeout,
    )
