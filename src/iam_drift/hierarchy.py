"""
GCP Resource Hierarchy Graph Module.

This module builds the organization -> folders -> projects tree used to expand
ignored folders down to every folder and project beneath them.
"""

from typing import Dict, List, Mapping, Set

from .errors import MissingReferenceError
from .types import (
    ORGANIZATION,
    HierarchyGraph,
    HierarchyNode,
    HierarchyNodeWithChildren,
)


def new_hierarchy_graph(
    organization_id: str,
    folders: Mapping[str, HierarchyNode],
    projects: Mapping[str, HierarchyNode],
) -> HierarchyGraph:
    """
    Builds a complete graph of the organization, its folders and its projects.

    Folders are inserted only after their full ancestor chain, so the input
    order does not matter. Every node must be reachable from the organization.

    Args:
        organization_id: The GCP organization ID, used as the graph root
        folders: Folders keyed by folder ID
        projects: Projects keyed by project ID

    Returns:
        HierarchyGraph keyed by node ID

    Raises:
        MissingReferenceError: If a folder or project references a parent that
            is neither in the graph nor in the given folders
    """
    graph: Dict[str, HierarchyNodeWithChildren] = {
        organization_id: HierarchyNodeWithChildren(
            node=HierarchyNode(
                id=organization_id,
                name="Organization",
                parent_id="",
                parent_type="",
                node_type=ORGANIZATION,
            )
        )
    }

    for folder in folders.values():
        try:
            _add_folder_to_graph(graph, folder, folders)
        except MissingReferenceError as e:
            raise MissingReferenceError(
                f"failed to traverse folders hierarchy for folder with ID {folder.id} "
                f"when creating graph: {e}"
            ) from e

    for project in projects.values():
        parent = graph.get(project.parent_id)
        if parent is None:
            parent_type = (project.parent_type or "parent").lower()
            raise MissingReferenceError(
                f"missing reference for {parent_type} with ID {project.parent_id}"
            )
        parent.project_ids.append(project.id)

    return HierarchyGraph(id_to_nodes=graph)


def _add_folder_to_graph(
    graph: Dict[str, HierarchyNodeWithChildren],
    folder: HierarchyNode,
    folders: Mapping[str, HierarchyNode],
) -> None:
    # Collect the chain of folders not yet in the graph, child first.
    chain: List[HierarchyNode] = []
    seen: Set[str] = set()
    current = folder
    while current.id not in graph:
        if current.id in seen:
            raise MissingReferenceError(
                f"missing reference for folder with ID {current.id}: "
                f"parent chain loops back on itself"
            )
        seen.add(current.id)
        chain.append(current)
        if current.parent_id in graph:
            break
        if current.parent_id not in folders:
            raise MissingReferenceError(
                f"missing reference for folder with ID {current.parent_id}"
            )
        current = folders[current.parent_id]

    for node in reversed(chain):
        graph[node.id] = HierarchyNodeWithChildren(node=node)
        graph[node.parent_id].folder_ids.append(node.id)


def folders_beneath(folder_id: str, hierarchy_graph: HierarchyGraph) -> Set[str]:
    """
    Finds every folder nested beneath the given folder, at any depth.

    Args:
        folder_id: The folder (or organization) ID to start from
        hierarchy_graph: The graph built by new_hierarchy_graph

    Returns:
        Set of descendant folder IDs, not including folder_id itself

    Raises:
        MissingReferenceError: If folder_id or any descendant is not in the graph
    """
    if folder_id not in hierarchy_graph.id_to_nodes:
        raise MissingReferenceError(f"missing reference for folder with ID {folder_id}")

    found: Set[str] = set()
    stack = list(hierarchy_graph.id_to_nodes[folder_id].folder_ids)
    while stack:
        child_id = stack.pop()
        if child_id in found:
            continue
        if child_id not in hierarchy_graph.id_to_nodes:
            raise MissingReferenceError(
                f"missing reference for folder with ID {child_id}"
            )
        found.add(child_id)
        stack.extend(hierarchy_graph.id_to_nodes[child_id].folder_ids)
    return found


def assets_by_name(assets_by_id: Mapping[str, HierarchyNode]) -> Dict[str, HierarchyNode]:
    """Re-keys hierarchy nodes by their name."""
    return {node.name: node for node in assets_by_id.values()}


def merge_assets(
    assets_a: Mapping[str, HierarchyNode], assets_b: Mapping[str, HierarchyNode]
) -> Dict[str, HierarchyNode]:
    """Combines two ID-keyed node maps; nodes in assets_b win on collision."""
    merged = dict(assets_a)
    merged.update(assets_b)
    return merged
