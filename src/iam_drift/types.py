"""
Type definitions for the GCP IAM Drift Detector.

This module holds the records shared across the hierarchy graph, the ignore
list, the Terraform state parser and the drift comparator.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

# Hierarchy node types
ORGANIZATION = "Organization"
FOLDER = "Folder"
PROJECT = "Project"
UNKNOWN = "Unknown"

# Cloud Asset Inventory asset types
ORGANIZATION_ASSET_TYPE = "cloudresourcemanager.googleapis.com/Organization"
FOLDER_ASSET_TYPE = "cloudresourcemanager.googleapis.com/Folder"
PROJECT_ASSET_TYPE = "cloudresourcemanager.googleapis.com/Project"
BUCKET_ASSET_TYPE = "storage.googleapis.com/Bucket"


@dataclass(frozen=True)
class HierarchyNode:
    """
    A node in the GCP resource hierarchy (organization, folder or project).

    Attributes:
        id: Numeric identifier, e.g. 123123423423
        name: Unique string name, e.g. my-project-1234
        parent_id: Identifier of the folder or organization holding this node
        parent_type: Type of the parent node
        node_type: Type of this node
    """

    id: str
    name: str
    parent_id: str = ""
    parent_type: str = ""
    node_type: str = UNKNOWN


@dataclass
class HierarchyNodeWithChildren:
    """A hierarchy node with the IDs of its immediate children."""

    node: HierarchyNode
    project_ids: List[str] = field(default_factory=list)
    folder_ids: List[str] = field(default_factory=list)


@dataclass
class HierarchyGraph:
    """A complete organization: the organization, every folder and every project."""

    id_to_nodes: Dict[str, HierarchyNodeWithChildren] = field(default_factory=dict)


@dataclass(frozen=True)
class IAMCondition:
    title: str = ""
    expression: str = ""
    description: str = ""


@dataclass(frozen=True)
class AssetIAM:
    """
    One IAM membership on a GCP resource (a binding x member pair).

    Attributes:
        resource_id: Project, folder or organization ID
        resource_type: Organization, Folder, Project or Unknown
        member: The member, e.g. group:my-group@example.com
        role: The role, e.g. roles/owner
        condition: The condition attached to the binding, if any
    """

    resource_id: str
    resource_type: str
    member: str
    role: str
    condition: Optional[IAMCondition] = None


@dataclass(frozen=True)
class TerraformStateIAMSource:
    """A declared IAM membership and the state file it was read from."""

    asset_iam: AssetIAM
    state_file_uri: str


@dataclass
class IgnoredAssets:
    """
    Assets excluded from drift reporting.

    Attributes:
        iam_assets: Every raw line of the driftignore file
        project_ids: Ignored project IDs
        folder_ids: Ignored folder IDs
        roles: Ignored "/roles/<role>/<type>:<member>" strings
    """

    iam_assets: Set[str] = field(default_factory=set)
    project_ids: Set[str] = field(default_factory=set)
    folder_ids: Set[str] = field(default_factory=set)
    roles: Set[str] = field(default_factory=set)


@dataclass
class IAMDrift:
    """The detected IAM drift in a GCP organization, keyed by canonical URI."""

    click_ops_changes: Dict[str, AssetIAM] = field(default_factory=dict)
    missing_terraform_changes: Dict[str, TerraformStateIAMSource] = field(
        default_factory=dict
    )

    @property
    def drift_detected(self) -> bool:
        return bool(self.click_ops_changes or self.missing_terraform_changes)

    def to_dict(self) -> Dict[str, object]:
        """Returns a JSON-serialisable report of the drift."""
        return {
            "drift_detected": self.drift_detected,
            "click_ops_changes": sorted(self.click_ops_changes),
            "missing_terraform_changes": [
                {"uri": uri, "state_file_uri": source.state_file_uri}
                for uri, source in sorted(self.missing_terraform_changes.items())
            ],
            "summary": {
                "click_ops_count": len(self.click_ops_changes),
                "missing_terraform_count": len(self.missing_terraform_changes),
            },
        }
