"""LXD environment provider."""

from provider.base import BaseProvider, BootstrapParams, BootstrapResult, DefaultProvider
from provider.cloudspec import CloudSpec, load_cloud_spec
from provider.environ import BOOTSTRAP_MESSAGE, Environ, new_environ
from provider.firewall import Firewaller, IngressRule, NoFirewaller
from provider.inventory import Instance, Inventory, OwnershipTags, classify_for_destruction
from provider.lifecycle import LifecycleGuard, State
from provider.profile import DEFAULT_PROFILE_CONFIG, ProfileManager, profile_name
from provider.trust import TrustManager

__all__ = [
    'BaseProvider',
    'BootstrapParams',
    'BootstrapResult',
    'DefaultProvider',
    'CloudSpec',
    'load_cloud_spec',
    'BOOTSTRAP_MESSAGE',
    'Environ',
    'new_environ',
    'Firewaller',
    'IngressRule',
    'NoFirewaller',
    'Instance',
    'Inventory',
    'OwnershipTags',
    'classify_for_destruction',
    'LifecycleGuard',
    'State',
    'DEFAULT_PROFILE_CONFIG',
    'ProfileManager',
    'profile_name',
    'TrustManager',
]
