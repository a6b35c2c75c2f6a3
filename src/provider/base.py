"""Generic bootstrap/destroy strategy.

The environment delegates the provisioning part of Bootstrap and Destroy to
a BaseProvider. DefaultProvider drives the environment's own instance
broker: it starts one controller container at bootstrap and removes the
containers tagged with the environment UUID at destroy.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from provider.environ import Environ

logger = logging.getLogger(__name__)

BOOTSTRAP_MACHINE_ID = '0'


@dataclass(frozen=True)
class BootstrapParams:
    """Bootstrap request from the orchestrator."""
    controller_uuid: str
    image_alias: str = '22.04'
    image_server: str = 'https://cloud-images.ubuntu.com/releases'


@dataclass(frozen=True)
class BootstrapResult:
    """Outcome of provisioning the bootstrap machine."""
    instance_id: str
    machine_id: str = BOOTSTRAP_MACHINE_ID
    status: str = ''
    config: dict = field(default_factory=dict)


@runtime_checkable
class BaseProvider(Protocol):
    """Generic lifecycle strategy plugged into an environment."""

    def bootstrap_env(self, ctx: dict, params: BootstrapParams) -> BootstrapResult:
        ...

    def destroy_env(self) -> None:
        ...


class DefaultProvider:
    """Strategy built on the environment's instance broker."""

    def __init__(self, env: 'Environ'):
        self.env = env

    def bootstrap_env(self, ctx: dict, params: BootstrapParams) -> BootstrapResult:
        logger.info(f"[bootstrap] Starting controller machine {BOOTSTRAP_MACHINE_ID} for {self.env.name}")
        inst = self.env.start_instance(
            BOOTSTRAP_MACHINE_ID,
            controller_uuid=params.controller_uuid,
            is_controller=True,
            image_alias=params.image_alias,
            image_server=params.image_server,
        )
        config: dict[str, Any] = {
            'controller-uuid': params.controller_uuid,
            'model-uuid': self.env.uuid,
            'profiles': ['default', self.env.profile_name],
        }
        if log := ctx.get('log'):
            log(f"Controller instance {inst.id} started")
        return BootstrapResult(instance_id=inst.id, status=inst.status, config=config)

    def destroy_env(self) -> None:
        # Models whose UUIDs share a suffix share the namespace prefix
        ids = [
            inst.id for inst in self.env.all_instances()
            if inst.tags.model_uuid == self.env.uuid
        ]
        if not ids:
            logger.debug(f"No instances left in {self.env.name}")
            return
        self.env.stop_instances(ids)
