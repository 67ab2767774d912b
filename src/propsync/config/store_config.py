"""Per-backend document store configuration with batch and retry settings."""

from typing import Dict
from pydantic import BaseModel, Field


class StoreRetryConfig(BaseModel):
    """Retry configuration for transient store reads."""
    attempts: int = Field(gt=0, description="Maximum attempts per read")
    max_wait: float = Field(gt=0, description="Upper bound of the exponential wait in seconds")
    timeout: float = Field(default=30.0, description="Per-call timeout in seconds")


class StoreConfig(BaseModel):
    """Complete store configuration."""
    retry: StoreRetryConfig
    max_batch_writes: int = Field(default=500, ge=2, le=500, description="Writes per atomic batch")
    supports_listeners: bool = Field(default=True, description="Live snapshot subscriptions available")


# Default configurations for each backend
DEFAULT_STORE_CONFIGS: Dict[str, StoreConfig] = {
    "memory": StoreConfig(
        retry=StoreRetryConfig(
            attempts=1,  # local, nothing to retry
            max_wait=0.1,
            timeout=1.0,
        ),
        max_batch_writes=500,
        supports_listeners=True,
    ),
    "firestore": StoreConfig(
        retry=StoreRetryConfig(
            attempts=3,
            max_wait=10.0,
            timeout=30.0,
        ),
        max_batch_writes=500,  # Firestore: 500 writes per batch
        supports_listeners=True,
    ),
}


def get_store_config(backend: str) -> StoreConfig:
    """Get configuration for a specific store backend.

    Args:
        backend: Name of the backend ("memory" or "firestore")

    Returns:
        StoreConfig for the specified backend

    Raises:
        KeyError: If backend name is not recognized
    """
    if backend not in DEFAULT_STORE_CONFIGS:
        raise KeyError(
            f"Unknown store backend '{backend}'. "
            f"Known backends: {', '.join(DEFAULT_STORE_CONFIGS.keys())}"
        )
    return DEFAULT_STORE_CONFIGS[backend]
