"""
Configuration loader for the GCP IAM Drift Detector.
"""

import os
from dataclasses import dataclass

DEFAULT_DRIFTIGNORE_FILE = ".driftignore"
DEFAULT_MAX_CONCURRENT_REQUESTS = 10


@dataclass
class Config:
    """Configuration class for the drift detector."""

    organization_id: str
    gcs_bucket_query: str = ""
    driftignore_file: str = DEFAULT_DRIFTIGNORE_FILE
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS
    log_level: str = "INFO"


def load_config() -> Config:
    """
    Loads and validates configuration from the environment.

    Returns:
        Config object with validated settings

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    # Required configuration
    organization_id = os.environ.get("ORGANIZATION_ID")
    if not organization_id:
        raise ValueError("ORGANIZATION_ID environment variable is required")

    if not organization_id.isdigit():
        raise ValueError("ORGANIZATION_ID must be a numeric GCP organization ID")

    # Optional configuration with defaults
    gcs_bucket_query = os.environ.get("GCS_BUCKET_QUERY", "")
    driftignore_file = os.environ.get("DRIFTIGNORE_FILE", DEFAULT_DRIFTIGNORE_FILE)
    log_level = os.environ.get("LOG_LEVEL", "INFO")

    try:
        max_concurrent_requests = int(
            os.environ.get(
                "MAX_CONCURRENT_REQUESTS", str(DEFAULT_MAX_CONCURRENT_REQUESTS)
            )
        )
    except ValueError as e:
        raise ValueError("MAX_CONCURRENT_REQUESTS must be an integer") from e
    if max_concurrent_requests <= 0:
        raise ValueError("MAX_CONCURRENT_REQUESTS must be greater than zero")

    return Config(
        organization_id=organization_id,
        gcs_bucket_query=gcs_bucket_query,
        driftignore_file=driftignore_file,
        max_concurrent_requests=max_concurrent_requests,
        log_level=log_level,
    )
