"""Client certificate lookup for SSL connections."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_SSL_CERT_FILE = "~/.postgresql/postgresql.crt"
DEFAULT_SSL_KEY_FILE = "~/.postgresql/postgresql.key"


@dataclass(frozen=True)
class SslMaterial:
    cert_file: str
    key_file: str

    def as_connect_kwargs(self) -> dict[str, str]:
        return {"sslcert": self.cert_file, "sslkey": self.key_file}


def resolve_ssl_material(
    cert_file: str = DEFAULT_SSL_CERT_FILE,
    key_file: str = DEFAULT_SSL_KEY_FILE,
) -> Optional[SslMaterial]:
    """Locate the client certificate and key on disk.

    Args:
        cert_file: Certificate path, ``~`` is expanded.
        key_file: Private key path, ``~`` is expanded.

    Returns:
        SslMaterial when both files exist, None otherwise.
    """
    cert = Path(cert_file).expanduser()
    key = Path(key_file).expanduser()

    if cert.is_file() and key.is_file():
        logger.debug("ssl_material_found", cert_file=str(cert), key_file=str(key))
        return SslMaterial(cert_file=str(cert), key_file=str(key))

    logger.debug(
        "ssl_material_missing",
        cert_file=str(cert),
        cert_exists=cert.is_file(),
        key_file=str(key),
        key_exists=key.is_file(),
    )
    return None
