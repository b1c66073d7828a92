#!/usr/bin/env python3
"""
Command-line interface for running the GCP IAM Drift Detector.

This script compares the IAM memberships declared in every Terraform state file
found in the organization's state buckets with the IAM actually set in GCP.
It requires Application Default Credentials (e.g. gcloud auth application-default login).

Usage:
    python run_drift_detector.py --organization-id 123456789012
    python run_drift_detector.py --organization-id 123456789012 --gcs-bucket-query name:tfstate
    python run_drift_detector.py --organization-id 123456789012 --log-level DEBUG --output-format json
"""

import argparse
import json
import sys

from src.config import DEFAULT_DRIFTIGNORE_FILE, DEFAULT_MAX_CONCURRENT_REQUESTS, Config
from src.iam_drift import detect_drift, drift_message, find_empty_state_files
from src.iam_drift.types import IAMDrift
from src.utils import setup_logging


def main() -> None:
    """Main entry point for the command-line drift detector."""
    parser = argparse.ArgumentParser(
        description="Detect IAM drift between Terraform state and a GCP organization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_drift_detector.py --organization-id 123456789012
  python run_drift_detector.py --organization-id 123456789012 --gcs-bucket-query name:tfstate --log-level DEBUG
        """,
    )

    parser.add_argument(
        "--organization-id",
        required=True,
        help="The numeric GCP organization ID",
    )

    parser.add_argument(
        "--gcs-bucket-query",
        default="",
        help="Cloud Asset Inventory query selecting the Terraform state buckets (default: all buckets)",
    )

    parser.add_argument(
        "--driftignore-file",
        default=DEFAULT_DRIFTIGNORE_FILE,
        help=f"Path to the driftignore file (default: {DEFAULT_DRIFTIGNORE_FILE})",
    )

    parser.add_argument(
        "--max-concurrent-requests",
        type=int,
        default=DEFAULT_MAX_CONCURRENT_REQUESTS,
        help=f"Maximum number of concurrent GCP API requests (default: {DEFAULT_MAX_CONCURRENT_REQUESTS})",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--output-format",
        choices=["json", "pretty"],
        default="pretty",
        help="Output format for the drift report (default: pretty)",
    )

    parser.add_argument(
        "--list-empty-state-files",
        action="store_true",
        help="List Terraform state files that hold no resources instead of detecting drift",
    )

    args = parser.parse_args()

    if not args.organization_id.isdigit():
        print("ERROR: Organization ID must be numeric", file=sys.stderr)
        sys.exit(1)
    if args.max_concurrent_requests <= 0:
        print("ERROR: Max concurrent requests must be greater than zero", file=sys.stderr)
        sys.exit(1)

    logger = setup_logging(args.log_level)
    logger.info("Starting IAM drift detection from command line")

    config = Config(
        organization_id=args.organization_id,
        gcs_bucket_query=args.gcs_bucket_query,
        driftignore_file=args.driftignore_file,
        max_concurrent_requests=args.max_concurrent_requests,
        log_level=args.log_level,
    )

    if args.list_empty_state_files:
        list_empty_state_files(config, args.output_format)

    try:
        logger.info(f"Running drift detection for organization: {args.organization_id}")
        drift = detect_drift(config)
    except Exception as e:
        logger.error(f"Error running drift detection: {str(e)}")
        print(f"ERROR: {str(e)}", file=sys.stderr)
        sys.exit(1)

    if args.output_format == "json":
        print(json.dumps(drift.to_dict(), indent=2))
    else:
        print_drift_report(drift)

    if drift.drift_detected:
        logger.warning("Drift detected! Exiting with code 1")
        sys.exit(1)
    logger.info("No drift detected. Exiting with code 0")
    sys.exit(0)


def list_empty_state_files(config: Config, output_format: str) -> None:
    """Prints the empty state files and exits; 0 on success, 1 on error."""
    logger = setup_logging()
    try:
        empty = find_empty_state_files(config)
    except Exception as e:
        logger.error(f"Error listing empty state files: {str(e)}")
        print(f"ERROR: {str(e)}", file=sys.stderr)
        sys.exit(1)

    if output_format == "json":
        print(json.dumps({"empty_state_files": empty}, indent=2))
    elif empty:
        print("Found Empty State Files \n> " + "\n> ".join(empty))
    else:
        print("No empty state files found.")
    sys.exit(0)


def print_drift_report(drift: IAMDrift) -> None:
    """Print a human-readable drift report."""
    print("\n" + "=" * 60)
    print("GCP IAM DRIFT DETECTION REPORT")
    print("=" * 60)

    print(f"\nClick ops changes: {len(drift.click_ops_changes)}")
    print(f"Missing terraform changes: {len(drift.missing_terraform_changes)}")

    if drift.drift_detected:
        print("\n" + drift_message(drift))
    else:
        print("\nNo drift detected.")

    if drift.missing_terraform_changes:
        print("\n=== State Files With Missing Changes ===")
        for uri, source in sorted(drift.missing_terraform_changes.items()):
            print(f"{uri}\n    from {source.state_file_uri}")

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
