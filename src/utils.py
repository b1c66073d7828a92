"""
Utility functions for the GCP IAM Drift Detector.
"""

import json
import logging
from typing import Dict, Optional, Tuple
from urllib.parse import urlparse


def setup_logging(log_level: Optional[str] = None) -> logging.Logger:
    """
    Sets up logging configuration for the drift detector.

    Modules call this without a level to fetch the shared logger; entry points
    pass the configured level once at start-up.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("iam_drift")
    if log_level:
        logger.setLevel(getattr(logging, log_level.upper()))

    # Prevent duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def split_object_uri(gcs_uri: str) -> Tuple[str, str]:
    """
    Splits a GCS object URI into bucket and object name.

    Args:
        gcs_uri: GCS URI in format 'gs://bucket/path/to/object'

    Returns:
        Tuple of (bucket, object name)

    Raises:
        ValueError: If the URI is not a valid GCS object URI
    """
    parsed = urlparse(gcs_uri)
    bucket = parsed.netloc
    name = parsed.path.lstrip("/")

    if parsed.scheme != "gs" or not bucket or not name:
        raise ValueError(f"Invalid GCS URI: {gcs_uri}")

    return bucket, name


def parse_terraform_state(
    state_content: bytes, logger: Optional[logging.Logger] = None
) -> Dict:
    """
    Parses Terraform state file content into a Python dict.

    Args:
        state_content: Raw state file content
        logger: Logger instance for error logging

    Returns:
        Parsed state data as dict

    Raises:
        ValueError: If state file contains invalid JSON
    """
    if logger is None:
        logger = setup_logging()

    try:
        state_data = json.loads(state_content)
        if not isinstance(state_data, dict):
            raise ValueError("State file did not parse to a dictionary.")
        logger.debug(
            f"Parsed state file with "
            f"{len(state_data.get('resources') or [])} resources"
        )
        return state_data
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in state file: {e}")
        raise ValueError(f"Invalid JSON in state file: {e}") from e
