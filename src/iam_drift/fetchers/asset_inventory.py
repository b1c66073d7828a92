"""
Cloud Asset Inventory Fetchers Module.

This module lists the folders, projects and Terraform state buckets of an
organization and searches the live IAM policies attached to them.
"""

import re
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from google.api_core import exceptions as api_exceptions
from google.cloud import asset_v1
from google.protobuf import field_mask_pb2

from ...utils import setup_logging
from ..errors import AssetInventoryError
from ..types import (
    BUCKET_ASSET_TYPE,
    FOLDER,
    ORGANIZATION,
    PROJECT,
    AssetIAM,
    HierarchyNode,
    IAMCondition,
)

logger = setup_logging()

RESOURCE_MANAGER_PREFIX = "cloudresourcemanager.googleapis.com/"
STORAGE_PREFIX = "//storage.googleapis.com/"

# Parses the ID from a ParentFullResourceName.
RESOURCE_NAME_ID_PATTERN = re.compile(
    r"//cloudresourcemanager\.googleapis\.com/(?:folders|organizations)/(\d*)"
)
# Parses the name from a resource Name.
RESOURCE_NAME_PATTERN = re.compile(
    r"//cloudresourcemanager\.googleapis\.com/(?:folders|organizations|projects)/(.*)"
)


class AssetInventory(ABC):
    """The Cloud Asset Inventory operations used by the drift detector."""

    @abstractmethod
    def buckets(self, organization_id: str, query: str) -> List[str]:
        """Returns the names of GCS buckets matching the query."""

    @abstractmethod
    def hierarchy_assets(self, organization_id: str, asset_type: str) -> List[HierarchyNode]:
        """Returns the active folders or projects of the organization."""

    @abstractmethod
    def iam(
        self, scope: str, query: str = "", asset_types: Optional[Sequence[str]] = None
    ) -> List[AssetIAM]:
        """Returns every IAM membership matching the query within the scope."""


class AssetInventoryClient(AssetInventory):
    """AssetInventory backed by the Cloud Asset API."""

    def __init__(self, client: Optional[asset_v1.AssetServiceClient] = None) -> None:
        self._client = client or asset_v1.AssetServiceClient()

    def iam(
        self, scope: str, query: str = "", asset_types: Optional[Sequence[str]] = None
    ) -> List[AssetIAM]:
        """
        Searches all IAM policies within a scope.

        Equivalent to:
            gcloud asset search-all-iam-policies --scope=$SCOPE --query=$QUERY

        Args:
            scope: e.g. organizations/123
            query: Asset search query
            asset_types: Restrict the search to these asset types

        Returns:
            One AssetIAM per binding member

        Raises:
            AssetInventoryError: If the search fails
        """
        request = asset_v1.SearchAllIamPoliciesRequest(
            scope=scope, query=query, asset_types=list(asset_types or [])
        )
        results: List[AssetIAM] = []
        try:
            for resource in self._client.search_all_iam_policies(request=request):
                resource_id, resource_type = _owning_resource(resource)
                for binding in resource.policy.bindings:
                    condition = None
                    if binding.condition.expression:
                        condition = IAMCondition(
                            title=binding.condition.title,
                            expression=binding.condition.expression,
                            description=binding.condition.description,
                        )
                    for member in binding.members:
                        results.append(
                            AssetIAM(
                                resource_id=resource_id,
                                resource_type=resource_type,
                                member=member,
                                role=binding.role,
                                condition=condition,
                            )
                        )
        except api_exceptions.GoogleAPICallError as e:
            raise AssetInventoryError(f"failed to search IAM policies in {scope}: {e}") from e

        logger.debug(f"Found {len(results)} IAM memberships in {scope}")
        return results

    def buckets(self, organization_id: str, query: str) -> List[str]:
        """
        Returns all GCS buckets in the organization matching the query.

        Equivalent to:
            gcloud asset search-all-resources --asset-types=storage.googleapis.com/Bucket \\
                --query=$QUERY --read-mask=name --scope=organizations/$ORGANIZATION_ID
        """
        request = asset_v1.SearchAllResourcesRequest(
            scope=f"organizations/{organization_id}",
            asset_types=[BUCKET_ASSET_TYPE],
            query=query,
            read_mask=field_mask_pb2.FieldMask(paths=["name"]),
        )
        try:
            return [
                resource.name.removeprefix(STORAGE_PREFIX)
                for resource in self._client.search_all_resources(request=request)
            ]
        except api_exceptions.GoogleAPICallError as e:
            raise AssetInventoryError(
                f"failed to search buckets in organization {organization_id}: {e}"
            ) from e

    def hierarchy_assets(self, organization_id: str, asset_type: str) -> List[HierarchyNode]:
        """
        Returns all active folders or projects in the organization.

        Args:
            organization_id: The GCP organization ID
            asset_type: FOLDER_ASSET_TYPE or PROJECT_ASSET_TYPE

        Returns:
            List of HierarchyNode

        Raises:
            AssetInventoryError: If the search fails or a resource name cannot be parsed
        """
        request = asset_v1.SearchAllResourcesRequest(
            scope=f"organizations/{organization_id}",
            asset_types=[asset_type],
            query="state:ACTIVE",
        )
        nodes: List[HierarchyNode] = []
        try:
            for resource in self._client.search_all_resources(request=request):
                nodes.append(_hierarchy_node(resource))
        except api_exceptions.GoogleAPICallError as e:
            raise AssetInventoryError(
                f"failed to search {asset_type} assets in organization {organization_id}: {e}"
            ) from e
        return nodes


def _owning_resource(resource: asset_v1.IamPolicySearchResult) -> Tuple[str, str]:
    if resource.project:
        return resource.project.removeprefix("projects/"), PROJECT
    if resource.folders:
        return resource.folders[0].removeprefix("folders/"), FOLDER
    return resource.organization.removeprefix("organizations/"), ORGANIZATION


def _hierarchy_node(resource: asset_v1.ResourceSearchResult) -> HierarchyNode:
    # e.g. "cloudresourcemanager.googleapis.com/Folder"
    node_type = resource.asset_type.removeprefix(RESOURCE_MANAGER_PREFIX)
    node_id = ""
    if node_type == FOLDER and resource.folders:
        # e.g. "folders/123542345234"
        node_id = resource.folders[0].removeprefix("folders/")
    elif node_type == PROJECT:
        # e.g. "projects/45234234234"
        node_id = resource.project.removeprefix("projects/")

    # e.g. "//cloudresourcemanager.googleapis.com/projects/my-project-name"
    name_match = RESOURCE_NAME_PATTERN.search(resource.name)
    if not name_match:
        raise AssetInventoryError(f"failed to parse name from resource name: {resource.name}")
    # e.g. "//cloudresourcemanager.googleapis.com/folders/234234233233"
    parent_match = RESOURCE_NAME_ID_PATTERN.search(resource.parent_full_resource_name)
    if not parent_match:
        raise AssetInventoryError(
            f"failed to parse ID from parent resource name: {resource.parent_full_resource_name}"
        )

    return HierarchyNode(
        id=node_id,
        name=name_match.group(1),
        parent_id=parent_match.group(1),
        parent_type=resource.parent_asset_type.removeprefix(RESOURCE_MANAGER_PREFIX),
        node_type=node_type,
    )
