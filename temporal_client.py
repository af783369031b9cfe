"""Temporal client factory.

Creates connections to Temporal (Cloud or self-hosted) from TemporalSettings.
"""

from pathlib import Path
from typing import Optional, Union

from temporalio.client import Client
from temporalio.service import TLSConfig

from core.config import TemporalSettings, get_settings


def _tls_config(settings: TemporalSettings) -> Union[bool, TLSConfig]:
    if not settings.cert_path:
        # System roots, as Temporal Cloud expects
        return True
    # Combined PEM: client certificate chain followed by its private key
    pem = Path(settings.cert_path).read_bytes()
    return TLSConfig(client_cert=pem, client_private_key=pem)


async def get_temporal_client(settings: Optional[TemporalSettings] = None) -> Client:
    """Create and return a Temporal client.

    Configuration comes from TemporalSettings (environment by default):
    - TEMPORAL_ENDPOINT: Temporal endpoint (e.g., "temporal.example.com:7233")
    - TEMPORAL_NAMESPACE: Namespace (e.g., "default")
    - TEMPORAL_API_KEY: API key for Temporal Cloud (optional for local servers)
    - TEMPORAL_CERT_PATH: Path to client certificate (optional, for mTLS)

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If TEMPORAL_ENDPOINT is not set
    """
    settings = settings or get_settings().temporal

    if not settings.endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'temporal.example.com:7233')"
        )

    # Local dev servers run without TLS or an API key
    if not settings.api_key and not settings.cert_path:
        return await Client.connect(settings.endpoint, namespace=settings.namespace)

    return await Client.connect(
        target_host=settings.endpoint,
        namespace=settings.namespace,
        tls=_tls_config(settings),
        api_key=settings.api_key,
    )
