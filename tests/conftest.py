"""Shared pytest fixtures for lxd-env tests."""

import hashlib
import sys
from pathlib import Path
from typing import Mapping

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from lxdclient.certs import Certificate
from lxdclient.client import CertInfo, ClientError, ErrorKind, InstanceSpec, RemoteInstance
from provider.cloudspec import CloudSpec

# PEM wrapper around arbitrary bytes; fingerprinting only decodes base64
CERT_BODY = b'lxd-env test certificate'
CERT_PEM = (
    b"-----BEGIN CERTIFICATE-----\n"
    b"bHhkLWVudiB0ZXN0IGNlcnRpZmljYXRl\n"
    b"-----END CERTIFICATE-----\n"
)
CERT_FINGERPRINT = hashlib.sha256(CERT_BODY).hexdigest()

ENV_UUID = '6f0c2a6e-8e5b-4b8e-9a5c-1d2e3fabc123'


class FakeLXD:
    """In-memory hypervisor implementing the HypervisorClient protocol.

    Attributes:
        certs: fingerprint -> CertInfo
        profiles: name -> config
        instances: name -> RemoteInstance
        calls: (method, args) log
        fail: method name -> ClientError to raise
    """

    def __init__(self):
        self.certs: dict[str, CertInfo] = {}
        self.profiles: dict[str, dict] = {}
        self.instances: dict[str, RemoteInstance] = {}
        self.https_enabled = False
        self.calls: list[tuple] = []
        self.fail: dict[str, ClientError] = {}

    def _call(self, method: str, *args):
        self.calls.append((method,) + args)
        if method in self.fail:
            raise self.fail[method]

    def called(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def add_instance(self, name: str, metadata: Mapping[str, str], status: str = 'Running'):
        self.instances[name] = RemoteInstance(id=name, status=status, metadata=dict(metadata))

    def cert_by_fingerprint(self, fingerprint: str) -> CertInfo:
        self._call('cert_by_fingerprint', fingerprint)
        if fingerprint not in self.certs:
            raise ClientError(ErrorKind.NOT_FOUND, 'not found', 404)
        return self.certs[fingerprint]

    def add_cert(self, cert: Certificate) -> None:
        self._call('add_cert', cert.name)
        fingerprint = cert.fingerprint()
        if fingerprint in self.certs:
            raise ClientError(ErrorKind.ALREADY_EXISTS, 'already exists', 409)
        self.certs[fingerprint] = CertInfo(fingerprint=fingerprint, name=cert.name)

    def remove_cert_by_fingerprint(self, fingerprint: str) -> None:
        self._call('remove_cert_by_fingerprint', fingerprint)
        if fingerprint not in self.certs:
            raise ClientError(ErrorKind.NOT_FOUND, 'not found', 404)
        del self.certs[fingerprint]

    def has_profile(self, name: str) -> bool:
        self._call('has_profile', name)
        return name in self.profiles

    def create_profile(self, name: str, config: Mapping[str, str]) -> None:
        self._call('create_profile', name, dict(config))
        if name in self.profiles:
            raise ClientError(ErrorKind.ALREADY_EXISTS, 'already exists', 409)
        self.profiles[name] = dict(config)

    def enable_https_listener(self) -> None:
        self._call('enable_https_listener')
        self.https_enabled = True

    def instances_with_prefix(self, prefix: str) -> list[RemoteInstance]:
        self._call('instances_with_prefix', prefix)
        return [i for name, i in self.instances.items() if name.startswith(prefix)]

    def remove_instances(self, prefix: str, *ids: str) -> None:
        self._call('remove_instances', prefix, ids)
        for name in ids:
            self.instances.pop(name, None)

    def create_instance(self, spec: InstanceSpec) -> RemoteInstance:
        self._call('create_instance', spec)
        missing = [p for p in spec.profiles if p != 'default' and p not in self.profiles]
        if missing:
            raise ClientError(ErrorKind.NOT_FOUND, f"profile {missing[0]} not found", 404)
        inst = RemoteInstance(id=spec.name, status='Running', metadata=dict(spec.metadata))
        self.instances[spec.name] = inst
        return inst


class FakeFirewaller:
    """Records ingress rules and closes them on request."""

    def __init__(self, rules=None):
        self.rules = list(rules or [])
        self.closed: list = []

    def ingress_rules(self):
        return list(self.rules)

    def close_ports(self, rules):
        self.closed.append(list(rules))
        self.rules = [r for r in self.rules if r not in rules]


@pytest.fixture
def fake_lxd():
    return FakeLXD()


@pytest.fixture
def client_cert():
    return Certificate(name='juju-client', cert_pem=CERT_PEM, key_pem=b'key')


@pytest.fixture
def local_spec(client_cert):
    return CloudSpec(endpoint='https://127.0.0.1:8443', client_cert=client_cert, local=True)


@pytest.fixture
def remote_spec(client_cert):
    return CloudSpec(endpoint='https://10.20.30.40:8443', client_cert=client_cert, local=False)


@pytest.fixture
def env_config():
    return {'name': 'controller', 'uuid': ENV_UUID, 'type': 'lxd'}


@pytest.fixture
def config_dir(tmp_path):
    """Config directory with environ.yaml and certificate files."""
    (tmp_path / 'client.crt').write_bytes(CERT_PEM)
    (tmp_path / 'client.key').write_bytes(b'key')
    (tmp_path / 'server.crt').write_bytes(CERT_PEM)
    (tmp_path / 'environ.yaml').write_text(f"""
name: controller
uuid: {ENV_UUID}
type: lxd
default-series: jammy
cloud:
  endpoint: https://127.0.0.1:8443
  client-cert: client.crt
  client-key: client.key
  server-cert: server.crt
""")
    return tmp_path
