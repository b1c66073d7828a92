"""GCP IAM Drift Detector."""
