"""
Terraform State IAM Module.

This module locates Terraform state files in GCS and extracts the IAM
memberships declared by the organization, folder and project IAM resources.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..utils import parse_terraform_state, setup_logging, split_object_uri
from .errors import TerraformStateError
from .fetchers.storage import Storage
from .hierarchy import assets_by_name, merge_assets
from .types import ORGANIZATION, UNKNOWN, AssetIAM, HierarchyNode, IAMCondition

logger = setup_logging()

# Default max size for a terraform statefile is 512 MB.
TERRAFORM_STATE_FILE_SIZE_LIMIT = 512 * 1024 * 1024

# Present in state files that hold no resources.
NO_RESOURCES_IN_STATEFILE_SYNTAX = '"resources": [],'

STATE_FILE_NAME = "default.tfstate"

ORGANIZATION_IAM_BINDING = "google_organization_iam_binding"
FOLDER_IAM_BINDING = "google_folder_iam_binding"
PROJECT_IAM_BINDING = "google_project_iam_binding"
ORGANIZATION_IAM_MEMBER = "google_organization_iam_member"
FOLDER_IAM_MEMBER = "google_folder_iam_member"
PROJECT_IAM_MEMBER = "google_project_iam_member"

IAM_RESOURCE_TYPES = frozenset(
    [
        ORGANIZATION_IAM_BINDING,
        FOLDER_IAM_BINDING,
        PROJECT_IAM_BINDING,
        ORGANIZATION_IAM_MEMBER,
        FOLDER_IAM_MEMBER,
        PROJECT_IAM_MEMBER,
    ]
)


class Terraform(ABC):
    """The Terraform state operations used by the drift detector."""

    @abstractmethod
    def set_assets(
        self,
        gcp_folders: Mapping[str, HierarchyNode],
        gcp_projects: Mapping[str, HierarchyNode],
    ) -> None:
        """Sets the folders and projects used to resolve state references."""

    @abstractmethod
    def state_file_uris(self, gcs_buckets: Sequence[str]) -> List[str]:
        """Returns the URIs of Terraform state files in the given buckets."""

    @abstractmethod
    def process_states(self, gcs_uris: Sequence[str]) -> Dict[str, List[AssetIAM]]:
        """Returns the IAM memberships declared in each state file, keyed by URI."""

    @abstractmethod
    def state_without_resources(self, uri: str) -> bool:
        """Whether the state file at uri holds no resources."""


class TerraformParser(Terraform):
    """Reads Terraform state files from GCS."""

    def __init__(self, gcs: Storage, organization_id: str) -> None:
        self.gcs = gcs
        self.organization_id = organization_id
        self._assets_by_id: Dict[str, HierarchyNode] = {}
        self._folders_by_name: Dict[str, HierarchyNode] = {}
        self._projects_by_name: Dict[str, HierarchyNode] = {}

    def set_assets(
        self,
        gcp_folders: Mapping[str, HierarchyNode],
        gcp_projects: Mapping[str, HierarchyNode],
    ) -> None:
        self._assets_by_id = merge_assets(gcp_folders, gcp_projects)
        self._folders_by_name = assets_by_name(gcp_folders)
        self._projects_by_name = assets_by_name(gcp_projects)

    def state_file_uris(self, gcs_buckets: Sequence[str]) -> List[str]:
        uris: List[str] = []
        for bucket in gcs_buckets:
            uris.extend(self.gcs.objects_with_name(bucket, STATE_FILE_NAME))
        return uris

    def state_without_resources(self, uri: str) -> bool:
        """
        Checks for the empty resources marker without decoding the state.

        Args:
            uri: gs:// URI of the state file

        Returns:
            True if the state file has an empty resources list
        """
        content = self._download(uri)
        return NO_RESOURCES_IN_STATEFILE_SYNTAX in content.decode("utf-8", errors="replace")

    def process_states(self, gcs_uris: Sequence[str]) -> Dict[str, List[AssetIAM]]:
        """
        Downloads and parses each state file.

        Args:
            gcs_uris: gs:// URIs of state files

        Returns:
            Dictionary mapping state file URI to the IAM memberships it declares

        Raises:
            ValueError: If a URI is not a GCS URI
            StorageError: If a state file cannot be downloaded
            TerraformStateError: If a state file cannot be decoded
        """
        iams: Dict[str, List[AssetIAM]] = {}
        for uri in gcs_uris:
            content = self._download(uri)
            try:
                state = parse_terraform_state(content, logger)
            except ValueError as e:
                raise TerraformStateError(f"failed to decode terraform state {uri}: {e}") from e
            iams[uri] = self.parse_terraform_state_iam(state, uri)
        return iams

    def _download(self, uri: str) -> bytes:
        bucket, name = split_object_uri(uri)
        return self.gcs.download_object(bucket, name, TERRAFORM_STATE_FILE_SIZE_LIMIT)

    def parse_terraform_state_iam(self, state: Mapping[str, Any], uri: str = "") -> List[AssetIAM]:
        """
        Extracts the IAM memberships from a decoded state file.

        Only the six google_{organization,folder,project}_iam_{binding,member}
        resource types are read; everything else is skipped.
        """
        iams: List[AssetIAM] = []
        for resource in state.get("resources") or []:
            resource_type = resource.get("type")
            if resource_type not in IAM_RESOURCE_TYPES:
                continue

            instances = resource.get("instances") or []
            if not isinstance(instances, list):
                raise TerraformStateError(
                    f"failed to decode terraform state {uri}: "
                    f"instances of {resource_type} is not a list"
                )

            for instance in instances:
                if not isinstance(instance, dict):
                    raise TerraformStateError(
                        f"failed to decode terraform state {uri}: "
                        f"instance of {resource_type} is not an object"
                    )
                attributes = instance.get("attributes") or {}
                if not isinstance(attributes, dict):
                    raise TerraformStateError(
                        f"failed to decode terraform state {uri}: "
                        f"attributes of {resource_type} is not an object"
                    )
                iams.extend(self._parse_instance(resource_type, attributes))
        return iams

    def _parse_instance(self, resource_type: str, attributes: Mapping[str, Any]) -> List[AssetIAM]:
        # JSON nulls decode to empty values.
        role = attributes.get("role") or ""
        condition = _condition(attributes)

        if resource_type.endswith("_iam_binding"):
            members = attributes.get("members") or []
        else:
            members = [attributes.get("member") or ""]

        if resource_type.startswith("google_organization_"):
            resource_id, parent_type = self.organization_id, ORGANIZATION
        elif resource_type.startswith("google_folder_"):
            folder = (attributes.get("folder") or "").removeprefix("folders/")
            resource_id, parent_type = self._resolve(folder, "folder")
        else:
            resource_id, parent_type = self._resolve(attributes.get("project") or "", "project")

        return [
            AssetIAM(
                resource_id=resource_id,
                resource_type=parent_type,
                member=member,
                role=role,
                condition=condition,
            )
            for member in members
        ]

    def _resolve(self, identifier: str, kind: str) -> Tuple[str, str]:
        node = self.find_gcp_asset(identifier)
        if node is None:
            logger.warning(f"Failed to locate GCP {kind} {identifier} - is this {kind} deleted?")
            return identifier, UNKNOWN
        return node.id, node.node_type

    def find_gcp_asset(self, identifier: str) -> Optional[HierarchyNode]:
        """Looks a folder or project up by ID, then by folder name, then by project name."""
        lookups: List[Callable[[str], Optional[HierarchyNode]]] = [
            self._assets_by_id.get,
            self._folders_by_name.get,
            self._projects_by_name.get,
        ]
        for lookup in lookups:
            node = lookup(identifier)
            if node is not None:
                return node
        return None


def _condition(attributes: Mapping[str, Any]) -> Optional[IAMCondition]:
    # The provider stores the condition block as a list of at most one element.
    conditions = attributes.get("condition") or []
    if not conditions:
        return None
    condition = conditions[0] or {}
    return IAMCondition(
        title=condition.get("title") or "",
        expression=condition.get("expression") or "",
        description=condition.get("description") or "",
    )
