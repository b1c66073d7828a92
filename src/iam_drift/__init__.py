"""
GCP IAM Drift Detector Package.

This package detects drift between the IAM memberships declared in Terraform
state files and the IAM policies actually set on a GCP organization, its
folders and its projects.

The drift detection process:
1. Lists folders, projects and Terraform state buckets via Cloud Asset Inventory
2. Builds the organization hierarchy and expands the driftignore file over it
3. Fetches live IAM and parses IAM resources from every state file
4. Reports click ops changes and missing Terraform changes
"""

from .comparators import drift_message
from .core import IAMDriftDetector, detect_drift, find_empty_state_files

__all__ = ["IAMDriftDetector", "detect_drift", "drift_message", "find_empty_state_files"]
