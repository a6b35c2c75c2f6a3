"""Client certificate material for LXD trust.

The trust store keys certificates by fingerprint: the hex SHA-256 of the
DER encoding. Fingerprints are always recomputed from the PEM bytes.

Also provides self-signed client certificate generation for hosts that
have no certificate yet.
"""

import hashlib
import logging
import os
import ssl
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Certificate defaults
DEFAULT_CERT_DIR = Path.home() / ".config" / "lxd-env"
DEFAULT_CERT_NAME = "juju-client"
DEFAULT_CERT_DAYS = 3650
DEFAULT_KEY_SIZE = 4096


@dataclass(frozen=True)
class Certificate:
    """A named client certificate with optional private key."""

    name: str
    cert_pem: bytes
    key_pem: Optional[bytes] = field(default=None, repr=False)

    def der(self) -> bytes:
        """DER encoding of the certificate.

        Raises:
            ValueError: If cert_pem is not a PEM certificate
        """
        try:
            pem = self.cert_pem.decode("ascii")
        except UnicodeDecodeError as e:
            raise ValueError(f"certificate {self.name!r} is not ASCII PEM") from e
        return ssl.PEM_cert_to_DER_cert(pem)

    def fingerprint(self) -> str:
        """Hex SHA-256 fingerprint of the DER encoding."""
        return hashlib.sha256(self.der()).hexdigest()

    @classmethod
    def from_files(
        cls,
        name: str,
        cert_path: Path,
        key_path: Optional[Path] = None,
    ) -> "Certificate":
        """Load a certificate (and key) from PEM files.

        Raises:
            FileNotFoundError: If a file doesn't exist
        """
        if not cert_path.exists():
            raise FileNotFoundError(f"Certificate not found: {cert_path}")
        key_pem = None
        if key_path is not None:
            if not key_path.exists():
                raise FileNotFoundError(f"Key not found: {key_path}")
            key_pem = key_path.read_bytes()
        return cls(name=name, cert_pem=cert_path.read_bytes(), key_pem=key_pem)


def generate_client_cert(
    cert_dir: Optional[Path] = None,
    name: str = DEFAULT_CERT_NAME,
    days: int = DEFAULT_CERT_DAYS,
    key_size: int = DEFAULT_KEY_SIZE,
    force: bool = False,
) -> Certificate:
    """Generate a self-signed client certificate for LXD.

    Creates a certificate with:
    - CN = name
    - extendedKeyUsage = clientAuth
    - Key size = 4096 bits
    - Validity = 10 years

    Args:
        cert_dir: Directory to store client.crt/client.key
        name: Certificate name, used as CN
        days: Certificate validity in days
        key_size: RSA key size in bits
        force: Overwrite an existing pair

    Returns:
        The loaded Certificate

    Raises:
        subprocess.CalledProcessError: If openssl command fails
        PermissionError: If cannot write to cert_dir
    """
    cert_dir = cert_dir or DEFAULT_CERT_DIR
    cert_dir.mkdir(parents=True, exist_ok=True)

    cert_path = cert_dir / "client.crt"
    key_path = cert_dir / "client.key"

    if cert_path.exists() and key_path.exists() and not force:
        logger.info("Using existing client certificate: %s", cert_path)
        return Certificate.from_files(name, cert_path, key_path)

    logger.info("Generating client certificate %s", name)

    with tempfile.NamedTemporaryFile(mode="w", suffix=".cnf", delete=False) as f:
        f.write(f"""
[req]
default_bits = {key_size}
prompt = no
default_md = sha256
distinguished_name = dn
x509_extensions = v3_ext

[dn]
CN = {name}

[v3_ext]
basicConstraints = CA:FALSE
keyUsage = digitalSignature, keyEncipherment
extendedKeyUsage = clientAuth
""")
        config_path = f.name

    try:
        subprocess.run(
            [
                "openssl", "req",
                "-x509",
                "-nodes",
                "-newkey", f"rsa:{key_size}",
                "-keyout", str(key_path),
                "-out", str(cert_path),
                "-days", str(days),
                "-config", config_path,
            ],
            check=True,
            capture_output=True,
        )

        os.chmod(key_path, 0o600)
        os.chmod(cert_path, 0o644)

    finally:
        Path(config_path).unlink(missing_ok=True)

    cert = Certificate.from_files(name, cert_path, key_path)
    logger.info("Client certificate fingerprint (SHA256): %s", cert.fingerprint())
    return cert
