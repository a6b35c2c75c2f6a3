"""LXD hypervisor client: interface, REST implementation, certificates."""

from lxdclient.certs import Certificate, generate_client_cert
from lxdclient.client import (
    CertInfo,
    ClientError,
    ErrorKind,
    HypervisorClient,
    InstanceSpec,
    RemoteInstance,
)
from lxdclient.rest import LXDClient

__all__ = [
    'Certificate',
    'generate_client_cert',
    'CertInfo',
    'ClientError',
    'ErrorKind',
    'HypervisorClient',
    'InstanceSpec',
    'RemoteInstance',
    'LXDClient',
]
