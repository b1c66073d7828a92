"""
Tests for the Terraform state IAM parser.
"""

import os
import unittest

from src.iam_drift.errors import TerraformStateError
from src.iam_drift.terraform import TERRAFORM_STATE_FILE_SIZE_LIMIT, TerraformParser
from src.iam_drift.types import FOLDER, ORGANIZATION, PROJECT, UNKNOWN, AssetIAM, IAMCondition

from .fakes import FakeStorage, folder, project

ORG_ID = "123456789012"
TESTDATA = os.path.join(os.path.dirname(__file__), "testdata")


def read_testdata(name: str) -> bytes:
    with open(os.path.join(TESTDATA, name), "rb") as f:
        return f.read()


class TestTerraformParser(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = FakeStorage(
            {
                "tf-state-a": {
                    "networking/default.tfstate": read_testdata("iam.tfstate"),
                    "networking/default.tflock": b"lock",
                },
                "tf-state-b": {"empty/default.tfstate": read_testdata("empty.tfstate")},
                "tf-state-c": {"broken/default.tfstate": b"{not json"},
            }
        )
        self.parser = TerraformParser(self.storage, ORG_ID)
        self.parser.set_assets(
            {"1001": folder("1001", "engineering", ORG_ID, "Organization")},
            {"2002": project("2002", "my-project", "1001")},
        )

    def test_state_file_uris(self) -> None:
        uris = self.parser.state_file_uris(["tf-state-a", "tf-state-b"])
        self.assertEqual(
            uris,
            [
                "gs://tf-state-a/networking/default.tfstate",
                "gs://tf-state-b/empty/default.tfstate",
            ],
        )

    def test_process_states(self) -> None:
        uri = "gs://tf-state-a/networking/default.tfstate"
        iams = self.parser.process_states([uri])

        self.assertEqual(list(iams), [uri])
        self.assertEqual(
            iams[uri],
            [
                AssetIAM(ORG_ID, ORGANIZATION, "group:platform@example.com", "roles/browser"),
                AssetIAM("1001", FOLDER, "group:viewers@example.com", "roles/viewer"),
                AssetIAM("1001", FOLDER, "user:alice@example.com", "roles/viewer"),
                AssetIAM(
                    "2002",
                    PROJECT,
                    "serviceAccount:deployer@my-project.iam.gserviceaccount.com",
                    "roles/owner",
                    IAMCondition(
                        title="expires_2030",
                        expression='request.time < timestamp("2031-01-01T00:00:00Z")',
                        description="Expires at the end of 2030",
                    ),
                ),
            ],
        )
        self.assertEqual(self.storage.limits, [TERRAFORM_STATE_FILE_SIZE_LIMIT])

    def test_process_states_invalid_json(self) -> None:
        with self.assertRaises(TerraformStateError) as context:
            self.parser.process_states(["gs://tf-state-c/broken/default.tfstate"])
        self.assertIn("gs://tf-state-c/broken/default.tfstate", str(context.exception))

    def test_process_states_invalid_uri(self) -> None:
        with self.assertRaises(ValueError):
            self.parser.process_states(["s3://bucket/default.tfstate"])

    def test_state_without_resources(self) -> None:
        self.assertTrue(self.parser.state_without_resources("gs://tf-state-b/empty/default.tfstate"))
        self.assertFalse(
            self.parser.state_without_resources("gs://tf-state-a/networking/default.tfstate")
        )

    def test_unknown_folder_is_kept_with_unknown_type(self) -> None:
        state = {
            "resources": [
                {
                    "type": "google_folder_iam_member",
                    "instances": [
                        {
                            "attributes": {
                                "folder": "folders/999",
                                "member": "user:a@x.com",
                                "role": "roles/viewer",
                            }
                        }
                    ],
                }
            ]
        }

        with self.assertLogs("iam_drift", level="WARNING"):
            iams = self.parser.parse_terraform_state_iam(state)

        self.assertEqual(iams, [AssetIAM("999", UNKNOWN, "user:a@x.com", "roles/viewer")])

    def test_project_resolved_by_id_or_name(self) -> None:
        for reference in ("2002", "my-project"):
            state = {
                "resources": [
                    {
                        "type": "google_project_iam_binding",
                        "instances": [
                            {
                                "attributes": {
                                    "project": reference,
                                    "members": ["user:a@x.com"],
                                    "role": "roles/editor",
                                }
                            }
                        ],
                    }
                ]
            }
            iams = self.parser.parse_terraform_state_iam(state)
            self.assertEqual(iams, [AssetIAM("2002", PROJECT, "user:a@x.com", "roles/editor")])

    def test_non_iam_resources_and_missing_attributes_are_skipped(self) -> None:
        state = {
            "resources": [
                {"type": "google_storage_bucket", "instances": "not inspected"},
                {"type": "google_project_iam_binding", "instances": [{}]},
            ]
        }
        self.assertEqual(self.parser.parse_terraform_state_iam(state), [])

    def test_instances_must_be_a_list(self) -> None:
        state = {"resources": [{"type": "google_project_iam_member", "instances": "oops"}]}
        with self.assertRaises(TerraformStateError):
            self.parser.parse_terraform_state_iam(state, "gs://b/default.tfstate")

    def test_instance_must_be_an_object(self) -> None:
        for instance in ("oops", ["attributes"], {"attributes": "oops"}):
            state = {"resources": [{"type": "google_project_iam_member", "instances": [instance]}]}
            with self.assertRaises(TerraformStateError) as context:
                self.parser.parse_terraform_state_iam(state, "gs://b/default.tfstate")
            self.assertIn("gs://b/default.tfstate", str(context.exception))

    def test_null_attributes_decode_as_empty(self) -> None:
        state = {
            "resources": [
                {
                    "type": "google_folder_iam_member",
                    "instances": [
                        {"attributes": {"folder": None, "member": "user:a@x.com", "role": "roles/viewer"}}
                    ],
                },
                {
                    "type": "google_project_iam_member",
                    "instances": [
                        {
                            "attributes": {
                                "project": None,
                                "member": None,
                                "role": None,
                                "condition": [{"title": None, "expression": "true"}],
                            }
                        }
                    ],
                },
            ]
        }

        with self.assertLogs("iam_drift", level="WARNING"):
            iams = self.parser.parse_terraform_state_iam(state)

        self.assertEqual(
            iams,
            [
                AssetIAM("", UNKNOWN, "user:a@x.com", "roles/viewer"),
                AssetIAM("", UNKNOWN, "", "", IAMCondition(title="", expression="true")),
            ],
        )


if __name__ == "__main__":
    unittest.main()
