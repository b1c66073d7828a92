"""
Core drift detection orchestration logic.

This module coordinates the IAM drift detection process: listing the
organization hierarchy and Terraform state buckets, fetching live and declared
IAM, and handing both to the comparator.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import Config
from ..utils import setup_logging
from .comparators import compare_iam
from .driftignore import driftignore, expand_graph
from .errors import DriftDetectionError, WorkerPoolStoppedError
from .fetchers import AssetInventory, AssetInventoryClient, GoogleCloudStorage
from .hierarchy import new_hierarchy_graph
from .terraform import Terraform, TerraformParser
from .types import (
    FOLDER_ASSET_TYPE,
    ORGANIZATION_ASSET_TYPE,
    PROJECT_ASSET_TYPE,
    AssetIAM,
    HierarchyNode,
    IAMDrift,
    TerraformStateIAMSource,
)
from .uri import iam_uri
from .workerpool import Result, WorkerPool

logger = setup_logging()

IAM_ASSET_TYPES = [ORGANIZATION_ASSET_TYPE, FOLDER_ASSET_TYPE, PROJECT_ASSET_TYPE]


class IAMDriftDetector:
    """
    Detects IAM memberships that differ between GCP and Terraform state.

    Example:
        detector = IAMDriftDetector(AssetInventoryClient(), parser, "123456789")
        drift = detector.detect_drift("name:tfstate", ".driftignore")
    """

    def __init__(
        self,
        asset_inventory: AssetInventory,
        terraform_parser: Terraform,
        organization_id: str,
        max_concurrent_requests: int = 10,
    ) -> None:
        self.asset_inventory = asset_inventory
        self.terraform_parser = terraform_parser
        self.organization_id = organization_id
        self.max_concurrent_requests = max_concurrent_requests
        self.folders_by_id: Dict[str, HierarchyNode] = {}
        self.projects_by_id: Dict[str, HierarchyNode] = {}

    def detect_drift(self, bucket_query: str, driftignore_file: str) -> IAMDrift:
        """
        Runs a full drift detection pass over the organization.

        Args:
            bucket_query: Asset search query selecting the Terraform state buckets
            driftignore_file: Path to the driftignore file; may not exist

        Returns:
            IAMDrift holding the click ops and missing Terraform changes

        Raises:
            DriftDetectionError: If any stage fails; no partial report is returned
        """
        try:
            folders, projects, buckets = self._list_assets(bucket_query)
        except Exception as e:
            raise DriftDetectionError(f"failed to execute asset tasks in parallel: {e}") from e

        self.folders_by_id = {folder.id: folder for folder in folders}
        self.projects_by_id = {project.id: project for project in projects}
        logger.debug(
            f"Found {len(self.folders_by_id)} folders, {len(self.projects_by_id)} projects "
            f"and {len(buckets)} buckets"
        )

        try:
            graph = new_hierarchy_graph(
                self.organization_id, self.folders_by_id, self.projects_by_id
            )
        except Exception as e:
            raise DriftDetectionError(f"failed to construct graph from GCP assets: {e}") from e

        try:
            ignored = driftignore(driftignore_file, self.folders_by_id, self.projects_by_id)
            ignored_expanded = expand_graph(ignored, graph)
        except Exception as e:
            raise DriftDetectionError(f"failed to process driftignore file: {e}") from e

        logger.debug(f"Fetching all IAM for organization {self.organization_id}")
        try:
            gcp_iam = self.actual_gcp_iam()
        except Exception as e:
            raise DriftDetectionError(f"failed to determine GCP IAM: {e}") from e

        logger.debug(f"Fetching terraform state from {len(buckets)} buckets")
        try:
            tf_iam = self.terraform_state_iam(buckets)
        except Exception as e:
            raise DriftDetectionError(f"failed to parse IAM from Terraform state: {e}") from e

        return compare_iam(gcp_iam, tf_iam, ignored, ignored_expanded)

    def _list_assets(
        self, bucket_query: str
    ) -> Tuple[List[HierarchyNode], List[HierarchyNode], List[str]]:
        results = _run_tasks(
            WorkerPool(concurrency=self.max_concurrent_requests),
            [
                (self.asset_inventory.hierarchy_assets, self.organization_id, FOLDER_ASSET_TYPE),
                (self.asset_inventory.hierarchy_assets, self.organization_id, PROJECT_ASSET_TYPE),
                (self.asset_inventory.buckets, self.organization_id, bucket_query),
            ],
        )
        folders, projects, buckets = (result.value or [] for result in results)
        return folders, projects, buckets

    def actual_gcp_iam(self) -> Dict[str, AssetIAM]:
        """Returns every live IAM membership on the organization, its folders and projects."""
        results = self.asset_inventory.iam(
            scope=f"organizations/{self.organization_id}",
            asset_types=IAM_ASSET_TYPES,
        )
        return {self.uri(iam): iam for iam in results}

    def terraform_state_iam(self, gcs_buckets: Sequence[str]) -> Dict[str, TerraformStateIAMSource]:
        """
        Reads every Terraform state file in the buckets, one pool task per bucket.

        Returns:
            Dictionary mapping URI to the declared membership and its state file
        """
        self.terraform_parser.set_assets(self.folders_by_id, self.projects_by_id)

        results = _run_tasks(
            WorkerPool(concurrency=self.max_concurrent_requests),
            [(self._bucket_iam, bucket) for bucket in gcs_buckets],
        )

        tf_iam: Dict[str, TerraformStateIAMSource] = {}
        for result in results:
            for state_file_uri, iams in (result.value or {}).items():
                for iam in iams:
                    tf_iam[self.uri(iam)] = TerraformStateIAMSource(
                        asset_iam=iam, state_file_uri=state_file_uri
                    )
        return tf_iam

    def _bucket_iam(self, bucket: str) -> Dict[str, List[AssetIAM]]:
        uris = self.terraform_parser.state_file_uris([bucket])
        logger.debug(f"Found {len(uris)} state files in bucket {bucket}")
        return self.terraform_parser.process_states(uris)

    def empty_state_files(self, uris: Sequence[str]) -> List[str]:
        """Returns the state files, in input order, that hold no resources."""
        results = _run_tasks(
            WorkerPool(concurrency=self.max_concurrent_requests),
            [(self.terraform_parser.state_without_resources, uri) for uri in uris],
        )
        return [uri for uri, result in zip(uris, results) if result.value]

    def state_files(self, bucket_query: str) -> List[str]:
        """Returns the URIs of every Terraform state file in the buckets matching the query."""
        buckets = self.asset_inventory.buckets(self.organization_id, bucket_query)
        return self.terraform_parser.state_file_uris(buckets)

    def uri(self, iam: AssetIAM) -> str:
        return iam_uri(iam, self.organization_id, self.folders_by_id, self.projects_by_id)


def _run_tasks(pool: WorkerPool, tasks: Sequence[Tuple[Any, ...]]) -> List[Result]:
    """
    Submits (fn, *args) tasks and waits for all of them.

    Submission stops at the first failure; done() still runs so that tasks in
    flight finish and the first failure is raised.
    """
    for fn, *args in tasks:
        try:
            pool.do(fn, *args)
        except WorkerPoolStoppedError:
            break
    return pool.done()


def detect_drift(
    config: Config,
    asset_inventory: Optional[AssetInventory] = None,
    terraform_parser: Optional[Terraform] = None,
) -> IAMDrift:
    """
    Main entry point for drift detection. Builds the GCP clients and runs the detector.

    Args:
        config: Validated configuration
        asset_inventory: Overrides the Cloud Asset Inventory client
        terraform_parser: Overrides the GCS-backed Terraform state parser

    Returns:
        IAMDrift for the configured organization
    """
    if asset_inventory is None:
        asset_inventory = AssetInventoryClient()
    if terraform_parser is None:
        terraform_parser = TerraformParser(GoogleCloudStorage(), config.organization_id)

    detector = IAMDriftDetector(
        asset_inventory,
        terraform_parser,
        config.organization_id,
        max_concurrent_requests=config.max_concurrent_requests,
    )
    drift = detector.detect_drift(config.gcs_bucket_query, config.driftignore_file)
    logger.info(
        f"Drift detection completed: {len(drift.click_ops_changes)} click ops changes, "
        f"{len(drift.missing_terraform_changes)} missing terraform changes"
    )
    return drift


def find_empty_state_files(
    config: Config,
    asset_inventory: Optional[AssetInventory] = None,
    terraform_parser: Optional[Terraform] = None,
) -> List[str]:
    """
    Lists the Terraform state files in the configured buckets that hold no resources.

    Such state files are left behind when a Terraform root module is destroyed
    and are candidates for deletion.

    Returns:
        gs:// URIs of the empty state files

    Raises:
        DriftDetectionError: If the buckets or state files cannot be read
    """
    if asset_inventory is None:
        asset_inventory = AssetInventoryClient()
    if terraform_parser is None:
        terraform_parser = TerraformParser(GoogleCloudStorage(), config.organization_id)

    detector = IAMDriftDetector(
        asset_inventory,
        terraform_parser,
        config.organization_id,
        max_concurrent_requests=config.max_concurrent_requests,
    )
    try:
        uris = detector.state_files(config.gcs_bucket_query)
        empty = detector.empty_state_files(uris)
    except Exception as e:
        raise DriftDetectionError(f"failed to find empty state files: {e}") from e
    logger.info(f"Found {len(empty)} empty state files out of {len(uris)}")
    return empty
