"""
Tests for the Cloud Asset Inventory client.
"""

import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

from google.api_core import exceptions as api_exceptions

from src.iam_drift.errors import AssetInventoryError
from src.iam_drift.fetchers import AssetInventoryClient
from src.iam_drift.types import (
    BUCKET_ASSET_TYPE,
    FOLDER,
    FOLDER_ASSET_TYPE,
    ORGANIZATION,
    PROJECT,
    PROJECT_ASSET_TYPE,
    AssetIAM,
    HierarchyNode,
    IAMCondition,
)


def binding(role, members, expression="", title="", description=""):
    return SimpleNamespace(
        role=role,
        members=members,
        condition=SimpleNamespace(expression=expression, title=title, description=description),
    )


def policy_result(bindings, project="", folders=(), organization="organizations/123"):
    return SimpleNamespace(
        project=project,
        folders=list(folders),
        organization=organization,
        policy=SimpleNamespace(bindings=bindings),
    )


class TestAssetInventoryClient(unittest.TestCase):
    def setUp(self) -> None:
        self.client = MagicMock()
        self.inventory = AssetInventoryClient(client=self.client)

    def test_iam_flattens_bindings_per_member(self) -> None:
        self.client.search_all_iam_policies.return_value = [
            policy_result([binding("roles/browser", ["group:g@x.com", "user:a@x.com"])]),
            policy_result(
                [binding("roles/viewer", ["user:b@x.com"], "request.time < x", "temp", "d")],
                folders=["folders/1001"],
            ),
            policy_result(
                [binding("roles/owner", ["user:c@x.com"])],
                project="projects/2002",
                folders=["folders/1001"],
            ),
        ]

        iams = self.inventory.iam("organizations/123", asset_types=[FOLDER_ASSET_TYPE])

        self.assertEqual(
            iams,
            [
                AssetIAM("123", ORGANIZATION, "group:g@x.com", "roles/browser"),
                AssetIAM("123", ORGANIZATION, "user:a@x.com", "roles/browser"),
                AssetIAM(
                    "1001",
                    FOLDER,
                    "user:b@x.com",
                    "roles/viewer",
                    IAMCondition(title="temp", expression="request.time < x", description="d"),
                ),
                AssetIAM("2002", PROJECT, "user:c@x.com", "roles/owner"),
            ],
        )
        request = self.client.search_all_iam_policies.call_args.kwargs["request"]
        self.assertEqual(request.scope, "organizations/123")
        self.assertEqual(list(request.asset_types), [FOLDER_ASSET_TYPE])

    def test_iam_wraps_api_errors(self) -> None:
        self.client.search_all_iam_policies.side_effect = api_exceptions.PermissionDenied("denied")
        with self.assertRaises(AssetInventoryError) as context:
            self.inventory.iam("organizations/123")
        self.assertIn("organizations/123", str(context.exception))

    def test_buckets_strips_storage_prefix(self) -> None:
        self.client.search_all_resources.return_value = [
            SimpleNamespace(name="//storage.googleapis.com/tf-state-prod"),
            SimpleNamespace(name="//storage.googleapis.com/tf-state-dev"),
        ]

        buckets = self.inventory.buckets("123", "name:tf-state")

        self.assertEqual(buckets, ["tf-state-prod", "tf-state-dev"])
        request = self.client.search_all_resources.call_args.kwargs["request"]
        self.assertEqual(request.scope, "organizations/123")
        self.assertEqual(list(request.asset_types), [BUCKET_ASSET_TYPE])
        self.assertEqual(request.query, "name:tf-state")
        self.assertEqual(list(request.read_mask.paths), ["name"])

    def test_hierarchy_assets(self) -> None:
        self.client.search_all_resources.return_value = [
            SimpleNamespace(
                asset_type="cloudresourcemanager.googleapis.com/Folder",
                folders=["folders/1001"],
                project="",
                name="//cloudresourcemanager.googleapis.com/folders/1001",
                parent_full_resource_name="//cloudresourcemanager.googleapis.com/organizations/123",
                parent_asset_type="cloudresourcemanager.googleapis.com/Organization",
            ),
            SimpleNamespace(
                asset_type="cloudresourcemanager.googleapis.com/Project",
                folders=["folders/1001"],
                project="projects/2002",
                name="//cloudresourcemanager.googleapis.com/projects/my-project",
                parent_full_resource_name="//cloudresourcemanager.googleapis.com/folders/1001",
                parent_asset_type="cloudresourcemanager.googleapis.com/Folder",
            ),
        ]

        nodes = self.inventory.hierarchy_assets("123", PROJECT_ASSET_TYPE)

        self.assertEqual(
            nodes,
            [
                HierarchyNode("1001", "1001", "123", ORGANIZATION, FOLDER),
                HierarchyNode("2002", "my-project", "1001", FOLDER, PROJECT),
            ],
        )
        request = self.client.search_all_resources.call_args.kwargs["request"]
        self.assertEqual(request.query, "state:ACTIVE")

    def test_hierarchy_assets_unparseable_parent(self) -> None:
        self.client.search_all_resources.return_value = [
            SimpleNamespace(
                asset_type="cloudresourcemanager.googleapis.com/Project",
                folders=[],
                project="projects/2002",
                name="//cloudresourcemanager.googleapis.com/projects/my-project",
                parent_full_resource_name="",
                parent_asset_type="",
            )
        ]
        with self.assertRaises(AssetInventoryError):
            self.inventory.hierarchy_assets("123", PROJECT_ASSET_TYPE)


if __name__ == "__main__":
    unittest.main()
