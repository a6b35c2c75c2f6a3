"""Instance inventory and ownership classification.

Every container created by the provider carries ownership tags in its user
metadata. The inventory decodes them once into OwnershipTags so filtering
works on typed fields.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from common import InventoryError
from lxdclient.client import ClientError, HypervisorClient, RemoteInstance

logger = logging.getLogger(__name__)

# Metadata tag keys
TAG_MODEL = 'juju-model-uuid'
TAG_CONTROLLER = 'juju-controller-uuid'
TAG_IS_CONTROLLER = 'juju-is-controller'


@dataclass(frozen=True)
class OwnershipTags:
    """Which environment and controller an instance belongs to."""
    model_uuid: Optional[str] = None
    controller_uuid: Optional[str] = None
    is_controller: bool = False

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, str]) -> 'OwnershipTags':
        return cls(
            model_uuid=metadata.get(TAG_MODEL) or None,
            controller_uuid=metadata.get(TAG_CONTROLLER) or None,
            is_controller=metadata.get(TAG_IS_CONTROLLER) == 'true',
        )

    def to_metadata(self) -> dict[str, str]:
        metadata = {}
        if self.model_uuid:
            metadata[TAG_MODEL] = self.model_uuid
        if self.controller_uuid:
            metadata[TAG_CONTROLLER] = self.controller_uuid
        if self.is_controller:
            metadata[TAG_IS_CONTROLLER] = 'true'
        return metadata


@dataclass(frozen=True)
class Instance:
    """Provider-side handle on a hypervisor instance."""
    raw: RemoteInstance
    tags: OwnershipTags

    @classmethod
    def wrap(cls, raw: RemoteInstance) -> 'Instance':
        return cls(raw=raw, tags=OwnershipTags.from_metadata(raw.metadata))

    @property
    def id(self) -> str:
        return self.raw.id

    @property
    def status(self) -> str:
        return self.raw.status

    def __repr__(self) -> str:
        return f"Instance({self.id}, model={self.tags.model_uuid}, controller={self.tags.controller_uuid})"


def classify_for_destruction(
    instances: Iterable[Instance],
    controller_uuid: str,
    env_uuid: str,
) -> list[str]:
    """Select hosted-model instances of a controller for removal.

    Skips instances of the environment itself (destroyed by its own
    teardown) and instances of any other controller.

    Returns:
        Instance ids in listing order
    """
    ids = []
    for inst in instances:
        if inst.tags.model_uuid == env_uuid:
            continue
        if inst.tags.controller_uuid != controller_uuid:
            logger.debug(f"Skipping {inst.id}: controller {inst.tags.controller_uuid}")
            continue
        ids.append(inst.id)
    return ids


class Inventory:
    """Lists and removes instances on the hypervisor."""

    def __init__(self, client: HypervisorClient):
        self.client = client

    def instances_with_prefix(self, prefix: str) -> list[Instance]:
        """All instances whose id starts with prefix.

        Raises:
            InventoryError: If listing fails
        """
        try:
            raw = self.client.instances_with_prefix(prefix)
        except ClientError as e:
            raise InventoryError("listing instances", e) from e
        return [Instance.wrap(r) for r in raw]

    def remove_instances(self, prefix: str, ids: list[str], stage: str = "removing instances") -> None:
        """Remove instances in one batched call. Empty list is a no-op.

        Args:
            prefix: Prefix every id must carry
            ids: Instance ids to remove
            stage: Error annotation on failure

        Raises:
            InventoryError: If the batch fails
        """
        if not ids:
            return
        logger.info(f"Removing instances: {', '.join(ids)}")
        try:
            self.client.remove_instances(prefix, *ids)
        except ClientError as e:
            raise InventoryError(stage, e) from e
