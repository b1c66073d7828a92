"""
GCP Fetchers Package.

This package contains the clients used to fetch live GCP state: the Cloud
Asset Inventory (hierarchy, buckets and IAM) and GCS (Terraform state files).
"""

from .asset_inventory import AssetInventory, AssetInventoryClient
from .storage import GoogleCloudStorage, Storage

__all__ = [
    "AssetInventory",
    "AssetInventoryClient",
    "GoogleCloudStorage",
    "Storage",
]
