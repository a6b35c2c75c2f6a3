"""Ingress rules opened for an environment's instances."""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class IngressRule:
    """Port range open to a set of source CIDRs."""
    protocol: str
    from_port: int
    to_port: int
    source_cidrs: tuple[str, ...] = ('0.0.0.0/0',)

    def __str__(self) -> str:
        ports = str(self.from_port) if self.from_port == self.to_port else f"{self.from_port}-{self.to_port}"
        return f"{ports}/{self.protocol} from {','.join(self.source_cidrs)}"


@runtime_checkable
class Firewaller(Protocol):
    """Environment-level ingress rule management."""

    def ingress_rules(self) -> list[IngressRule]:
        ...

    def close_ports(self, rules: list[IngressRule]) -> None:
        ...


class NoFirewaller:
    """Bridged LXD networks have no managed ingress rules."""

    def ingress_rules(self) -> list[IngressRule]:
        return []

    def close_ports(self, rules: list[IngressRule]) -> None:
        if rules:
            raise ValueError(f"no managed ingress rules to close: {', '.join(map(str, rules))}")
