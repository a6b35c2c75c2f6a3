"""Resource-naming namespace derived from the environment UUID.

Hostnames look like ``juju-<short>-<machine>`` where ``<short>`` is the last
six hex digits of the UUID, so every container belonging to the environment
shares the ``juju-<short>-`` prefix.
"""

import re
from dataclasses import dataclass

from config import ConfigError

HOSTNAME_PREFIX = 'juju-'
SHORT_LEN = 6

_MACHINE_RE = re.compile(r'^[0-9a-z]+(/[a-z]+/[0-9]+)*$')


@dataclass(frozen=True)
class Namespace:
    """Naming namespace for one environment."""
    short: str

    @classmethod
    def from_uuid(cls, uuid: str) -> 'Namespace':
        """Build a namespace from an environment UUID.

        Raises:
            ConfigError: If the UUID carries fewer than six hex digits
        """
        digits = re.sub(r'[^0-9a-fA-F]', '', uuid or '')
        if len(digits) < SHORT_LEN:
            raise ConfigError(f"uuid {uuid!r} too short for a namespace")
        return cls(short=digits[-SHORT_LEN:].lower())

    @property
    def prefix(self) -> str:
        return f"{HOSTNAME_PREFIX}{self.short}-"

    def hostname(self, machine_id: str) -> str:
        """Container hostname for a machine id ('0', '1/lxd/0', ...)."""
        if not _MACHINE_RE.match(machine_id):
            raise ValueError(f"invalid machine id {machine_id!r}")
        return self.prefix + machine_id.replace('/', '-')

    def machine_id(self, hostname: str) -> str:
        """Inverse of hostname() for names inside this namespace."""
        if not hostname.startswith(self.prefix):
            raise ValueError(f"hostname {hostname!r} not in namespace {self.prefix!r}")
        return hostname[len(self.prefix):].replace('-', '/')
