"""
Canonical URIs for IAM memberships.

The URI is the equality key used to diff live IAM against Terraform state and
is also the string shown to users in drift reports.
"""

from typing import Mapping

from .types import FOLDER, ORGANIZATION, PROJECT, AssetIAM, HierarchyNode


def iam_uri(
    iam: AssetIAM,
    organization_id: str,
    folders_by_id: Mapping[str, HierarchyNode],
    projects_by_id: Mapping[str, HierarchyNode],
) -> str:
    """
    Returns the canonical string identifier for an IAM membership.

    Folders and projects are shown by name when known, falling back to their ID
    (e.g. the folder was deleted between listing and fetching IAM).

    Args:
        iam: The IAM membership
        organization_id: The GCP organization ID
        folders_by_id: Known folders keyed by ID
        projects_by_id: Known projects keyed by ID

    Returns:
        URI such as /organizations/123/projects/my-project/roles/owner/user:me@example.com
    """
    role = iam.role.replace("organizations/", "", 1).replace(f"{organization_id}/", "", 1)

    if iam.resource_type == FOLDER:
        folder = folders_by_id.get(iam.resource_id)
        name = folder.name if folder else iam.resource_id
        return f"/organizations/{organization_id}/folders/{name}/{role}/{iam.member}"
    if iam.resource_type == PROJECT:
        project = projects_by_id.get(iam.resource_id)
        name = project.name if project else iam.resource_id
        return f"/organizations/{organization_id}/projects/{name}/{role}/{iam.member}"
    if iam.resource_type == ORGANIZATION:
        return f"/organizations/{organization_id}/{role}/{iam.member}"
    return (
        f"unknownParent:/organizations/{organization_id}/{iam.resource_type}/"
        f"{iam.resource_id}/{role}/{iam.member}"
    )


def resource_uri(iam: AssetIAM) -> str:
    """Returns the GCP resource name the membership is attached to, e.g. folders/123."""
    if iam.resource_type == FOLDER:
        return f"folders/{iam.resource_id}"
    if iam.resource_type == PROJECT:
        return f"projects/{iam.resource_id}"
    if iam.resource_type == ORGANIZATION:
        return f"organizations/{iam.resource_id}"
    return f"{iam.resource_type}/{iam.resource_id}"


def role_uri(iam: AssetIAM) -> str:
    """Returns the "/<role>/<member>" key matched against ignored roles."""
    return f"/{iam.role}/{iam.member}"
