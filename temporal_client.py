"""Temporal client factory.

Creates connections to Temporal (Cloud or a local dev server) using the
settings loaded from the environment / .env file.
"""

from typing import Optional

from temporalio.client import Client

from core.config import Settings, get_settings


async def get_temporal_client(settings: Optional[Settings] = None) -> Client:
    """Create and return a Temporal client.

    Reads configuration from Settings:
    - TEMPORAL_ENDPOINT: host:port (e.g. "localhost:7233" or a Cloud endpoint)
    - TEMPORAL_NAMESPACE: Namespace (default "default")
    - TEMPORAL_API_KEY: Cloud API key; when set, TLS is enabled

    Returns:
        Connected Temporal client

    Raises:
        ValueError: If TEMPORAL_ENDPOINT is missing
    """
    settings = settings or get_settings()

    if not settings.temporal_endpoint:
        raise ValueError(
            "TEMPORAL_ENDPOINT environment variable not set. "
            "Set to your Temporal endpoint (e.g., 'localhost:7233')"
        )

    if settings.temporal_api_key:
        return await Client.connect(
            target_host=settings.temporal_endpoint,
            namespace=settings.temporal_namespace,
            tls=True,
            api_key=settings.temporal_api_key,
        )

    # Local dev server, no TLS
    return await Client.connect(
        target_host=settings.temporal_endpoint,
        namespace=settings.temporal_namespace,
    )
