"""LXD REST API client.

Talks to the LXD daemon over HTTPS with client certificate authentication.
LXD wraps every response in an envelope:

- sync:  {"type": "sync", "metadata": {...}}
- async: {"type": "async", "operation": "/1.0/operations/<id>"}
- error: {"type": "error", "error_code": 404, "error": "not found"}

Async operations are waited on before returning so that every call on this
client is blocking.
"""

import base64
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Mapping, Optional

import requests
import urllib3

from lxdclient.certs import Certificate
from lxdclient.client import (
    USER_KEY_PREFIX,
    CertInfo,
    ClientError,
    ErrorKind,
    InstanceSpec,
    RemoteInstance,
)

logger = logging.getLogger(__name__)

API_VERSION = '1.0'
DEFAULT_TIMEOUT = 30
OPERATION_WAIT = 300

# Listener addresses tried in order; second is for hosts with IPv6 disabled
HTTPS_ADDRESSES = ('[::]', '0.0.0.0')

_KIND_BY_STATUS = {
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.ALREADY_EXISTS,
}


def _error_kind(status: Optional[int]) -> ErrorKind:
    return _KIND_BY_STATUS.get(status or 0, ErrorKind.OTHER)


class LXDClient:
    """Blocking HTTPS client for one LXD endpoint."""

    def __init__(
        self,
        endpoint: str,
        client_cert: Optional[Certificate] = None,
        server_cert: Optional[bytes] = None,
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize LXD client.

        Args:
            endpoint: Base URL (e.g., https://10.0.8.1:8443)
            client_cert: Certificate with key used to authenticate
            server_cert: PEM of the server certificate to pin
            timeout: Per-request timeout in seconds
            session: Pre-built session (tests)
        """
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout
        self._tmpdir: Optional[Path] = None
        self.session = session or requests.Session()
        self.session.headers['Accept'] = 'application/json'

        if client_cert is not None and client_cert.key_pem:
            cert_file = self._write_private('client.crt', client_cert.cert_pem)
            key_file = self._write_private('client.key', client_cert.key_pem)
            self.session.cert = (str(cert_file), str(key_file))

        if server_cert:
            self.session.verify = str(self._write_private('server.crt', server_cert))
        else:
            # Self-signed server certificate, trust on first use
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            self.session.verify = False

    def _write_private(self, name: str, data: bytes) -> Path:
        if self._tmpdir is None:
            self._tmpdir = Path(tempfile.mkdtemp(prefix='lxd-env-'))
        path = self._tmpdir / name
        path.touch(mode=0o600)
        path.write_bytes(data)
        return path

    def close(self) -> None:
        self.session.close()
        if self._tmpdir is not None:
            shutil.rmtree(self._tmpdir, ignore_errors=True)
            self._tmpdir = None

    def __enter__(self) -> 'LXDClient':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _url(self, path: str) -> str:
        if path.startswith('/'):
            return f"{self.endpoint}{path}"
        if not path:
            return f"{self.endpoint}/{API_VERSION}"
        return f"{self.endpoint}/{API_VERSION}/{path}"

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        params: Optional[dict] = None,
        timeout: Optional[int] = None,
    ) -> Any:
        """Send a request and unwrap the LXD envelope.

        Returns:
            The response metadata (sync) or the finished operation metadata (async)

        Raises:
            ClientError: On transport failure or an error envelope
        """
        url = self._url(path)
        logger.debug(f"LXD {method} {url}")
        try:
            resp = self.session.request(
                method,
                url,
                json=body,
                params=params,
                timeout=timeout or self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise ClientError(ErrorKind.OTHER, f"{method} {url}: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if data.get('type') == 'error' or resp.status_code >= 400:
            status = data.get('error_code') or resp.status_code
            message = data.get('error') or resp.text[:200] or resp.reason
            raise ClientError(_error_kind(status), f"{method} {path}: {message}", status)

        if data.get('type') == 'async':
            return self._wait_operation(data.get('operation', ''))

        return data.get('metadata')

    def _wait_operation(self, operation: str) -> Any:
        """Block until a background operation finishes."""
        if not operation:
            raise ClientError(ErrorKind.OTHER, "async response without operation")
        metadata = self._request(
            'GET',
            f"{operation}/wait",
            params={'timeout': OPERATION_WAIT},
            timeout=OPERATION_WAIT + self.timeout,
        ) or {}
        if metadata.get('status') == 'Failure' or metadata.get('err'):
            raise ClientError(
                ErrorKind.OTHER,
                f"operation {operation}: {metadata.get('err') or 'failed'}",
            )
        return metadata

    # -------------------------------------------------------------------------
    # Certificates
    # -------------------------------------------------------------------------

    def cert_by_fingerprint(self, fingerprint: str) -> CertInfo:
        meta = self._request('GET', f"certificates/{fingerprint}") or {}
        return CertInfo(
            fingerprint=meta.get('fingerprint', fingerprint),
            name=meta.get('name', ''),
            type=meta.get('type', 'client'),
        )

    def add_cert(self, cert: Certificate) -> None:
        self._request('POST', 'certificates', body={
            'type': 'client',
            'name': cert.name,
            'certificate': base64.b64encode(cert.der()).decode('ascii'),
        })

    def remove_cert_by_fingerprint(self, fingerprint: str) -> None:
        self._request('DELETE', f"certificates/{fingerprint}")

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    def has_profile(self, name: str) -> bool:
        try:
            self._request('GET', f"profiles/{name}")
        except ClientError as e:
            if e.is_not_found:
                return False
            raise
        return True

    def create_profile(self, name: str, config: Mapping[str, str]) -> None:
        self._request('POST', 'profiles', body={
            'name': name,
            'config': dict(config),
        })

    # -------------------------------------------------------------------------
    # Server
    # -------------------------------------------------------------------------

    def enable_https_listener(self) -> None:
        server = self._request('GET', '') or {}
        current = (server.get('config') or {}).get('core.https_address')
        if current:
            logger.debug(f"HTTPS listener already on {current}")
            return

        primary, fallback = HTTPS_ADDRESSES
        try:
            self._set_https_address(primary)
        except ClientError as e:
            logger.warning(f"Cannot listen on {primary}, trying {fallback}: {e}")
            self._set_https_address(fallback)

    def _set_https_address(self, address: str) -> None:
        self._request('PATCH', '', body={'config': {'core.https_address': address}})
        logger.info(f"Enabled HTTPS listener on {address}")

    # -------------------------------------------------------------------------
    # Instances
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_instance(data: dict) -> RemoteInstance:
        config = data.get('config') or {}
        metadata = {
            k[len(USER_KEY_PREFIX):]: v
            for k, v in config.items()
            if k.startswith(USER_KEY_PREFIX)
        }
        return RemoteInstance(
            id=data.get('name', ''),
            status=data.get('status', ''),
            metadata=metadata,
        )

    def instances_with_prefix(self, prefix: str) -> list[RemoteInstance]:
        containers = self._request('GET', 'containers', params={'recursion': 1}) or []
        return [
            self._to_instance(c)
            for c in containers
            if c.get('name', '').startswith(prefix)
        ]

    def remove_instances(self, prefix: str, *ids: str) -> None:
        bad = [i for i in ids if not i.startswith(prefix)]
        if bad:
            raise ClientError(
                ErrorKind.OTHER,
                f"instances {', '.join(bad)} do not match prefix {prefix!r}",
            )
        for name in ids:
            state = self._request('GET', f"containers/{name}/state") or {}
            if state.get('status') == 'Running':
                self._request('PUT', f"containers/{name}/state", body={
                    'action': 'stop',
                    'force': True,
                    'timeout': -1,
                })
            self._request('DELETE', f"containers/{name}")
            logger.debug(f"Removed instance {name}")

    def create_instance(self, spec: InstanceSpec) -> RemoteInstance:
        config = {f"{USER_KEY_PREFIX}{k}": v for k, v in spec.metadata.items()}
        self._request('POST', 'containers', body={
            'name': spec.name,
            'profiles': list(spec.profiles),
            'config': config,
            'source': {
                'type': 'image',
                'mode': 'pull',
                'server': spec.image_server,
                'protocol': spec.image_protocol,
                'alias': spec.image_alias,
            },
        })
        self._request('PUT', f"containers/{spec.name}/state", body={
            'action': 'start',
            'timeout': -1,
        })
        data = self._request('GET', f"containers/{spec.name}") or {}
        return self._to_instance(data)
