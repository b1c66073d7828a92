"""
Driftignore Module.

Parses the driftignore file and expands ignored folders down the hierarchy
graph so that ignoring a folder also ignores everything nested beneath it.

File format, one entry per line:

    /organizations/<org>/projects/<name-or-id>
    /organizations/<org>/folders/<name-or-id>
    /roles/<role>/serviceAccount:<email>

Every line is also kept verbatim and matched exactly against drift URIs.
"""

import re
from typing import Mapping, Optional

from ..utils import setup_logging
from .errors import DriftignoreError, MissingReferenceError
from .hierarchy import assets_by_name, folders_beneath
from .types import FOLDER, PROJECT, AssetIAM, HierarchyGraph, HierarchyNode, IgnoredAssets
from .uri import role_uri

logger = setup_logging()

IGNORED_PROJECT_PATTERN = re.compile(r"^/organizations/(?:\d*)/projects/([^/]*)$")
IGNORED_FOLDER_PATTERN = re.compile(r"^/organizations/(?:\d*)/folders/([^/]*)$")
# Example: /roles/owner/serviceAccount:platform-ops-sa@platform-ops.iam.gserviceaccount.com
IGNORED_ROLES_PATTERN = re.compile(
    r"^/roles/([^/\s]*)/(serviceAccount|group|user):([^/\s]*)$"
)


def driftignore(
    path: str,
    gcp_folders: Mapping[str, HierarchyNode],
    gcp_projects: Mapping[str, HierarchyNode],
) -> IgnoredAssets:
    """
    Parses the driftignore file.

    Ignored folders and projects may be given by name or ID. Entries that match
    neither a known ID nor a known name are logged and left out of the ID sets.

    Args:
        path: Path to the driftignore file
        gcp_folders: Known folders keyed by ID
        gcp_projects: Known projects keyed by ID

    Returns:
        IgnoredAssets; empty if the file does not exist

    Raises:
        DriftignoreError: If the file exists but cannot be read
    """
    ignored = IgnoredAssets()

    try:
        with open(path, "r") as f:
            lines = f.readlines()
    except FileNotFoundError:
        logger.debug(f"No driftignore file found at {path}")
        return ignored
    except OSError as e:
        raise DriftignoreError(f"failed to read driftignore file {path}: {e}") from e

    folders_by_name = assets_by_name(gcp_folders)
    projects_by_name = assets_by_name(gcp_projects)

    for raw_line in lines:
        line = raw_line.strip()
        ignored.iam_assets.add(line)

        project_match = IGNORED_PROJECT_PATTERN.match(line)
        if project_match:
            project = _lookup(project_match.group(1), gcp_projects, projects_by_name)
            if project:
                ignored.project_ids.add(project.id)
            else:
                logger.warning(
                    f"Failed to identify ignored project {project_match.group(1)} (uri: {line})"
                )

        folder_match = IGNORED_FOLDER_PATTERN.match(line)
        if folder_match:
            folder = _lookup(folder_match.group(1), gcp_folders, folders_by_name)
            if folder:
                ignored.folder_ids.add(folder.id)
            else:
                logger.warning(
                    f"Failed to identify ignored folder {folder_match.group(1)} (uri: {line})"
                )

        if IGNORED_ROLES_PATTERN.match(line):
            ignored.roles.add(line)

    logger.debug(
        f"Parsed driftignore {path}: {len(ignored.project_ids)} projects, "
        f"{len(ignored.folder_ids)} folders, {len(ignored.roles)} roles"
    )
    return ignored


def _lookup(
    key: str,
    by_id: Mapping[str, HierarchyNode],
    by_name: Mapping[str, HierarchyNode],
) -> Optional[HierarchyNode]:
    return by_id.get(key) or by_name.get(key)


def expand_graph(ignored: IgnoredAssets, hierarchy_graph: HierarchyGraph) -> IgnoredAssets:
    """
    Adds every folder and project nested beneath an ignored folder.

    Folders are expanded fully before projects are collected, so a single pass
    picks up projects under nested folders too.

    Args:
        ignored: The parsed driftignore entries
        hierarchy_graph: The organization graph

    Returns:
        A new IgnoredAssets with enlarged folder and project sets

    Raises:
        MissingReferenceError: If an ignored folder is not in the graph
    """
    folder_ids = set(ignored.folder_ids)
    project_ids = set(ignored.project_ids)

    for folder_id in ignored.folder_ids:
        try:
            folder_ids |= folders_beneath(folder_id, hierarchy_graph)
        except MissingReferenceError as e:
            raise MissingReferenceError(
                f"failed to traverse hierarchy for folder with ID {folder_id}: {e}"
            ) from e

    for folder_id in folder_ids:
        project_ids.update(hierarchy_graph.id_to_nodes[folder_id].project_ids)

    return IgnoredAssets(
        iam_assets=ignored.iam_assets,
        project_ids=project_ids,
        folder_ids=folder_ids,
        roles=ignored.roles,
    )


def is_ignored(iam: AssetIAM, ignored: IgnoredAssets) -> bool:
    """Whether the membership's role/member pair or its project/folder is ignored."""
    if role_uri(iam) in ignored.roles:
        return True
    if iam.resource_type == PROJECT:
        return iam.resource_id in ignored.project_ids
    if iam.resource_type == FOLDER:
        return iam.resource_id in ignored.folder_ids
    # Organization and unknown resources are only ignored by role or raw URI.
    return False

