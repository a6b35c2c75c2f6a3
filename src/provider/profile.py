"""Baseline LXD profile for an environment's containers."""

import logging
from typing import Mapping

from common import ProfileError
from lxdclient.client import ClientError, HypervisorClient

logger = logging.getLogger(__name__)

PROFILE_PREFIX = 'juju-'

DEFAULT_PROFILE_CONFIG = {
    'boot.autostart': 'true',
    'security.nesting': 'true',
}


def profile_name(env_name: str) -> str:
    return PROFILE_PREFIX + env_name


class ProfileManager:
    """Creates the environment profile once; never overwrites it."""

    def __init__(self, client: HypervisorClient):
        self.client = client

    def ensure_profile(
        self,
        name: str,
        defaults: Mapping[str, str] = DEFAULT_PROFILE_CONFIG,
    ) -> bool:
        """Create the profile if missing.

        Returns:
            True if the profile was created, False if it already existed

        Raises:
            ProfileError: If the lookup or creation fails
        """
        try:
            if self.client.has_profile(name):
                logger.debug(f"Profile {name} already exists")
                return False
        except ClientError as e:
            raise ProfileError(f"checking profile {name!r}", e) from e

        logger.info(f"Creating profile {name}")
        try:
            self.client.create_profile(name, dict(defaults))
        except ClientError as e:
            raise ProfileError(f"creating profile {name!r}", e) from e
        return True
