"""LXD environment lifecycle.

An Environ binds one logical environment to one LXD endpoint. It is the
only entry point the orchestrator uses:

- new_environ(): validate config, connect, ensure the baseline profile
- prepare_for_bootstrap(): enable the HTTPS listener
- bootstrap(): trust the client certificate (local LXD), then provision
- destroy(): close ingress rules, then remove this environment's instances
- destroy_controller(): destroy, sweep hosted models, drop the certificate

Each step raises the first error it hits and stops; nothing is retried.
"""

import logging
import threading
from typing import Any, Callable, Mapping, Optional, Union

from common import FirewallError, InventoryError, PreparationError, StrategyError
from config import ConfigError, EnvironConfig, new_valid_config, validate_change
from lxdclient.client import ClientError, HypervisorClient, InstanceSpec
from lxdclient.rest import LXDClient
from namespace import HOSTNAME_PREFIX, Namespace
from provider.base import BaseProvider, BootstrapParams, BootstrapResult, DefaultProvider
from provider.cloudspec import CloudSpec
from provider.firewall import Firewaller, IngressRule, NoFirewaller
from provider.inventory import Instance, Inventory, OwnershipTags, classify_for_destruction
from provider.lifecycle import LifecycleGuard, State
from provider.profile import DEFAULT_PROFILE_CONFIG, ProfileManager, profile_name
from provider.trust import TrustManager

logger = logging.getLogger(__name__)

BOOTSTRAP_MESSAGE = (
    "To configure your system to better support LXD containers, please see: "
    "https://documentation.ubuntu.com/lxd/en/latest/reference/server_settings/"
)

# Hosted-model sweep covers every instance named by any namespace
HOSTED_PREFIX = HOSTNAME_PREFIX

NewClientFunc = Callable[[CloudSpec], HypervisorClient]
NewBaseFunc = Callable[['Environ'], BaseProvider]


def default_client(spec: CloudSpec) -> HypervisorClient:
    return LXDClient(
        spec.endpoint,
        client_cert=spec.client_cert,
        server_cert=spec.server_cert,
        timeout=spec.timeout,
    )


class Environ:
    """A single LXD-backed environment.

    Use new_environ() to build one; the constructor only wires parts
    together and performs no remote calls.
    """

    def __init__(
        self,
        cloud: CloudSpec,
        ecfg: EnvironConfig,
        client: HypervisorClient,
        namespace: Namespace,
        firewaller: Optional[Firewaller] = None,
    ):
        self.cloud = cloud
        # local records whether the LXD host is the host running this process
        self.local = cloud.local
        self.name = ecfg.name
        self.uuid = ecfg.uuid
        self.client = client
        self.namespace = namespace
        self.trust = TrustManager(client, cloud.client_cert, cloud.local)
        self.profiles = ProfileManager(client)
        self.inventory = Inventory(client)
        self.firewaller: Firewaller = firewaller or NoFirewaller()
        self.base: BaseProvider = DefaultProvider(self)

        self._lock = threading.Lock()
        self._ecfg = ecfg
        self._guard = LifecycleGuard()

    def close(self) -> None:
        """Release the hypervisor client and its on-disk credentials."""
        close = getattr(self.client, 'close', None)
        if close is not None:
            close()

    def __enter__(self) -> 'Environ':
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Environ({self.name}, uuid={self.uuid}, local={self.local})"

    @property
    def state(self) -> State:
        return self._guard.state

    @property
    def profile_name(self) -> str:
        return profile_name(self.name)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def config(self) -> EnvironConfig:
        """Current configuration snapshot."""
        with self._lock:
            return self._ecfg

    def set_config(self, cfg: Union[EnvironConfig, Mapping[str, Any]]) -> None:
        """Replace the configuration snapshot.

        Raises:
            ConfigError: If the new config is invalid or changes name/uuid
        """
        new = cfg if isinstance(cfg, EnvironConfig) else new_valid_config(cfg)
        with self._lock:
            validate_change(self._ecfg, new)
            self._ecfg = new

    def bootstrap_message(self) -> str:
        return BOOTSTRAP_MESSAGE

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def init_profile(self) -> None:
        self.profiles.ensure_profile(self.profile_name, DEFAULT_PROFILE_CONFIG)

    def prepare_for_bootstrap(self, ctx: Optional[dict] = None) -> None:
        try:
            self.client.enable_https_listener()
        except ClientError as e:
            raise PreparationError("enabling HTTPS listener", e) from e

    def bootstrap(self, ctx: dict, params: BootstrapParams) -> BootstrapResult:
        """Bootstrap the environment.

        For a local LXD the client certificate is trusted first so the
        controller containers can authenticate. For a remote LXD the user
        must have added it already.

        Raises:
            LifecycleError: If already bootstrapped or bootstrapping
            CertificateError: If trust cannot be established
            StrategyError: If provisioning fails
        """
        with self._guard.transition('bootstrap'):
            if self.local:
                self.trust.ensure_bootstrap_trust()
            logger.info(f"[bootstrap] Bootstrapping {self.name}")
            try:
                return self.base.bootstrap_env(ctx, params)
            except Exception as e:
                raise StrategyError("bootstrapping environment", e) from e

    def destroy(self) -> None:
        """Close ingress rules, then remove this environment's instances.

        Safe to re-run: both steps are no-ops once cleaned up.
        """
        with self._guard.transition('destroy'):
            self._destroy()

    def _destroy(self) -> None:
        rules = self.ingress_rules()
        if rules:
            self.close_ports(rules)
        logger.info(f"[destroy] Destroying {self.name}")
        try:
            self.base.destroy_env()
        except Exception as e:
            raise StrategyError("destroying environment", e) from e

    def destroy_controller(self, controller_uuid: str) -> None:
        """Destroy this environment and every model hosted by the controller.

        Raises:
            LifecycleError: If a bootstrap or destroy is in flight
            InventoryError: If the hosted-model sweep fails
            CertificateError: If the certificate cannot be removed
        """
        with self._guard.transition('destroy'):
            self._destroy()
            self.destroy_hosted_model_resources(controller_uuid)
            if self.local:
                # Added back at bootstrap as necessary
                self.trust.remove_certificate()

    def destroy_hosted_model_resources(self, controller_uuid: str) -> None:
        instances = self.inventory.instances_with_prefix(HOSTED_PREFIX)
        logger.debug(f"instances: {instances}")
        ids = classify_for_destruction(instances, controller_uuid, self.uuid)
        self.inventory.remove_instances(HOSTED_PREFIX, ids, stage="removing hosted model instances")

    # -------------------------------------------------------------------------
    # Instances and ports
    # -------------------------------------------------------------------------

    def all_instances(self) -> list[Instance]:
        """Instances in this environment's namespace."""
        return self.inventory.instances_with_prefix(self.namespace.prefix)

    def start_instance(
        self,
        machine_id: str,
        controller_uuid: str,
        is_controller: bool = False,
        image_alias: str = '22.04',
        image_server: str = 'https://cloud-images.ubuntu.com/releases',
    ) -> Instance:
        """Create and start a container with the environment profile attached.

        Raises:
            InventoryError: If the hypervisor refuses the instance
        """
        tags = OwnershipTags(
            model_uuid=self.uuid,
            controller_uuid=controller_uuid,
            is_controller=is_controller,
        )
        spec = InstanceSpec(
            name=self.namespace.hostname(machine_id),
            profiles=('default', self.profile_name),
            metadata=tags.to_metadata(),
            image_alias=image_alias,
            image_server=image_server,
        )
        logger.info(f"Starting instance {spec.name}")
        try:
            raw = self.client.create_instance(spec)
        except ClientError as e:
            raise InventoryError(f"starting instance {spec.name}", e) from e
        return Instance.wrap(raw)

    def stop_instances(self, ids: list[str]) -> None:
        self.inventory.remove_instances(self.namespace.prefix, ids)

    def ingress_rules(self) -> list[IngressRule]:
        try:
            return self.firewaller.ingress_rules()
        except Exception as e:
            raise FirewallError("listing ingress rules", e) from e

    def close_ports(self, rules: list[IngressRule]) -> None:
        logger.info(f"[destroy] Closing {len(rules)} ingress rule(s)")
        try:
            self.firewaller.close_ports(rules)
        except Exception as e:
            raise FirewallError("closing ports", e) from e


def new_environ(
    cloud: CloudSpec,
    cfg: Union[EnvironConfig, Mapping[str, Any]],
    new_client: NewClientFunc = default_client,
    new_base: Optional[NewBaseFunc] = None,
    firewaller: Optional[Firewaller] = None,
) -> Environ:
    """Build a ready-to-use environment.

    The baseline profile is created before the environment is returned, so
    no instance can be started without it. On any failure nothing is
    returned.

    Raises:
        ConfigError: If the config is invalid
        ProfileError: If the profile cannot be ensured
    """
    try:
        ecfg = cfg if isinstance(cfg, EnvironConfig) else new_valid_config(cfg)
    except ConfigError as e:
        raise ConfigError("invalid config", e) from e

    namespace = Namespace.from_uuid(ecfg.uuid)
    client = new_client(cloud)

    env = Environ(cloud, ecfg, client, namespace, firewaller=firewaller)
    if new_base is not None:
        env.base = new_base(env)

    try:
        env.init_profile()
    except Exception:
        env.close()
        raise
    return env
