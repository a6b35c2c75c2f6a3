"""Client certificate trust on the LXD host.

For a local LXD the provider adds its own client certificate to the trust
store at bootstrap, so the controller containers can authenticate, and
removes it again when the controller is destroyed. For a remote LXD the
user manages trust and this module never touches the store.
"""

import logging
from typing import Optional

from common import CertificateError
from lxdclient.certs import Certificate
from lxdclient.client import ClientError, HypervisorClient

logger = logging.getLogger(__name__)


class TrustManager:
    """Keeps the client certificate registered with the hypervisor."""

    def __init__(self, client: HypervisorClient, cert: Optional[Certificate], local: bool):
        self.client = client
        self.cert = cert
        self.local = local

    @staticmethod
    def _fingerprint(cert: Certificate) -> str:
        try:
            return cert.fingerprint()
        except ValueError as e:
            raise CertificateError("generating certificate fingerprint", e) from e

    def ensure_bootstrap_trust(self) -> None:
        """Register the client certificate unless it is already trusted.

        Raises:
            CertificateError: If no certificate is configured or the
                hypervisor rejects the lookup or registration
        """
        if not self.local:
            logger.debug("Remote LXD, trust is managed by the user")
            return
        cert = self.cert
        if cert is None:
            raise CertificateError("cannot bootstrap without client certificate")

        fingerprint = self._fingerprint(cert)
        try:
            self.client.cert_by_fingerprint(fingerprint)
            logger.debug(f"Certificate {fingerprint[:12]} already trusted")
            return
        except ClientError as e:
            if not e.is_not_found:
                raise CertificateError("querying certificates", e) from e

        logger.info(f"Adding certificate {cert.name!r} to LXD trust store")
        try:
            self.client.add_cert(cert)
        except ClientError as e:
            if not e.is_already_exists:
                raise CertificateError(f"adding certificate {cert.name!r}", e) from e

    def remove_certificate(self) -> None:
        """Remove the client certificate from the trust store.

        An absent certificate counts as removed.
        """
        cert = self.cert
        if cert is None:
            return
        fingerprint = self._fingerprint(cert)
        try:
            self.client.remove_cert_by_fingerprint(fingerprint)
            logger.info(f"Removed certificate {cert.name!r} from LXD trust store")
        except ClientError as e:
            if not e.is_not_found:
                raise CertificateError("removing certificate", e) from e
