"""
Tests for the IAM drift comparators.
"""

import unittest

from src.iam_drift.comparators import (
    DEFAULT_URI_FILTER_PATTERNS,
    compare_iam,
    drift_message,
    filter_default_uris,
    filter_ignored,
    select_from,
)
from src.iam_drift.types import (
    ORGANIZATION,
    PROJECT,
    AssetIAM,
    IAMDrift,
    IgnoredAssets,
    TerraformStateIAMSource,
)

STATE = "gs://tf-state/default.tfstate"

BROWSER = AssetIAM("123", ORGANIZATION, "group:g@x.com", "roles/browser")
BROWSER_URI = "/organizations/123/roles/browser/group:g@x.com"
OWNER = AssetIAM("P1", PROJECT, "user:a@x.com", "roles/owner")
OWNER_URI = "/organizations/123/projects/p1/roles/owner/user:a@x.com"
COMPUTE_AGENT_URI = (
    "/organizations/123/projects/p1/roles/compute.serviceAgent/"
    "serviceAccount:service-987654321@compute-system.iam.gserviceaccount.com"
)
COMPUTE_AGENT = AssetIAM(
    "P1",
    PROJECT,
    "serviceAccount:service-987654321@compute-system.iam.gserviceaccount.com",
    "roles/compute.serviceAgent",
)


def tf(iam: AssetIAM) -> TerraformStateIAMSource:
    return TerraformStateIAMSource(asset_iam=iam, state_file_uri=STATE)


class TestCompareIAM(unittest.TestCase):
    def test_identical_sources_have_no_drift(self) -> None:
        drift = compare_iam(
            {BROWSER_URI: BROWSER, OWNER_URI: OWNER},
            {BROWSER_URI: tf(BROWSER), OWNER_URI: tf(OWNER)},
            IgnoredAssets(),
            IgnoredAssets(),
        )
        self.assertEqual(drift.click_ops_changes, {})
        self.assertEqual(drift.missing_terraform_changes, {})
        self.assertFalse(drift.drift_detected)

    def test_live_only_grant_is_click_ops(self) -> None:
        drift = compare_iam({BROWSER_URI: BROWSER}, {}, IgnoredAssets(), IgnoredAssets())
        self.assertEqual(drift.click_ops_changes, {BROWSER_URI: BROWSER})
        self.assertEqual(drift.missing_terraform_changes, {})

    def test_state_only_grant_is_missing_terraform(self) -> None:
        drift = compare_iam({}, {OWNER_URI: tf(OWNER)}, IgnoredAssets(), IgnoredAssets())
        self.assertEqual(drift.click_ops_changes, {})
        self.assertEqual(drift.missing_terraform_changes, {OWNER_URI: tf(OWNER)})

    def test_expanded_ignores_apply_before_diff(self) -> None:
        expanded = IgnoredAssets(project_ids={"P1"})
        drift = compare_iam({OWNER_URI: OWNER}, {}, IgnoredAssets(), expanded)
        self.assertFalse(drift.drift_detected)

    def test_raw_lines_apply_after_diff(self) -> None:
        ignored = IgnoredAssets(iam_assets={BROWSER_URI})
        drift = compare_iam({BROWSER_URI: BROWSER}, {OWNER_URI: tf(OWNER)}, ignored, ignored)
        self.assertEqual(drift.click_ops_changes, {})
        self.assertEqual(list(drift.missing_terraform_changes), [OWNER_URI])

    def test_service_agents_are_never_reported(self) -> None:
        drift = compare_iam(
            {COMPUTE_AGENT_URI: COMPUTE_AGENT}, {}, IgnoredAssets(), IgnoredAssets()
        )
        self.assertFalse(drift.drift_detected)

        drift = compare_iam(
            {}, {COMPUTE_AGENT_URI: tf(COMPUTE_AGENT)}, IgnoredAssets(), IgnoredAssets()
        )
        self.assertFalse(drift.drift_detected)

    def test_custom_patterns_replace_defaults(self) -> None:
        drift = compare_iam(
            {COMPUTE_AGENT_URI: COMPUTE_AGENT}, {}, IgnoredAssets(), IgnoredAssets(), patterns=()
        )
        self.assertEqual(list(drift.click_ops_changes), [COMPUTE_AGENT_URI])


class TestFilters(unittest.TestCase):
    def test_filter_default_uris_matches_anywhere(self) -> None:
        uris = [
            COMPUTE_AGENT_URI,
            "/organizations/123/roles/editor/serviceAccount:42-compute@developer.gserviceaccount.com",
            BROWSER_URI,
        ]
        self.assertEqual(filter_default_uris(uris), [BROWSER_URI])

    def test_default_patterns_are_immutable(self) -> None:
        self.assertIsInstance(DEFAULT_URI_FILTER_PATTERNS, tuple)
        self.assertGreater(len(DEFAULT_URI_FILTER_PATTERNS), 0)

    def test_filter_ignored_handles_both_sources(self) -> None:
        ignored = IgnoredAssets(roles={"/roles/owner/user:a@x.com"})
        self.assertEqual(filter_ignored({OWNER_URI: OWNER, BROWSER_URI: BROWSER}, ignored), {BROWSER_URI: BROWSER})
        self.assertEqual(filter_ignored({OWNER_URI: tf(OWNER)}, ignored), {})

    def test_select_from_skips_unknown_uris(self) -> None:
        self.assertEqual(
            select_from([BROWSER_URI, "missing"], {BROWSER_URI: BROWSER}), {BROWSER_URI: BROWSER}
        )


class TestDriftMessage(unittest.TestCase):
    def test_no_drift(self) -> None:
        self.assertEqual(drift_message(IAMDrift()), "")

    def test_both_sections_sorted(self) -> None:
        drift = IAMDrift(
            click_ops_changes={"/b": BROWSER, "/a": BROWSER},
            missing_terraform_changes={"/c": tf(OWNER)},
        )
        self.assertEqual(
            drift_message(drift),
            "Found Click Ops Changes \n> /a\n> /b\n\nFound Missing Terraform Changes \n> /c",
        )

    def test_missing_terraform_only(self) -> None:
        drift = IAMDrift(missing_terraform_changes={"/c": tf(OWNER)})
        self.assertEqual(drift_message(drift), "Found Missing Terraform Changes \n> /c")


if __name__ == "__main__":
    unittest.main()
