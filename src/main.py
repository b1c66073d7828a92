"""
Scheduled job entry point for the GCP IAM Drift Detector.
"""

import json

from .config import load_config
from .iam_drift import detect_drift
from .utils import setup_logging


def handler(event: dict, context: object) -> dict:
    """
    Scheduled job handler function.

    Args:
        event: Trigger event data
        context: Runtime context

    Returns:
        Dictionary with statusCode and body containing the drift report
    """
    logger = setup_logging()
    try:
        # Load and validate configuration
        config = load_config()

        logger = setup_logging(config.log_level)
        logger.info(f"Starting IAM drift detection for organization {config.organization_id}")

        drift = detect_drift(config)

        logger.info(f"Drift detection completed. Drift detected: {drift.drift_detected}")

        return {
            "statusCode": 200,
            "body": json.dumps(drift.to_dict()),
            "headers": {"Content-Type": "application/json"},
        }

    except ValueError as e:
        # Configuration or validation errors
        logger.error(f"Configuration error: {str(e)}")
        return {
            "statusCode": 400,
            "body": json.dumps({"error": "Configuration error", "message": str(e)}),
            "headers": {"Content-Type": "application/json"},
        }

    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}")
        return {
            "statusCode": 500,
            "body": json.dumps({"error": "Internal server error", "message": str(e)}),
            "headers": {"Content-Type": "application/json"},
        }
