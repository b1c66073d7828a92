"""
IAM Drift Comparators Module.

This module diffs the live IAM memberships of an organization against the
memberships declared in Terraform state, applying the driftignore entries and
the built-in list of Google-managed service agents.
"""

import re
from typing import Dict, Iterable, List, Mapping, Sequence, Set, TypeVar

from ..utils import setup_logging
from .driftignore import is_ignored
from .types import AssetIAM, IAMDrift, IgnoredAssets, TerraformStateIAMSource

logger = setup_logging()

V = TypeVar("V", AssetIAM, TerraformStateIAMSource)

# Memberships GCP grants to its own service agents when an API is enabled.
# They never appear in Terraform state and are not reported as drift.
DEFAULT_URI_FILTER_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"aiplatform\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-aiplatform\.iam\.gserviceaccount\.com",
        r"apigateway\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-apigateway\.iam\.gserviceaccount\.com",
        r"apigateway_management\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-apigateway-mgmt\.iam\.gserviceaccount\.com",
        r"appengine\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-gae-service\.iam\.gserviceaccount\.com",
        r"appengineflex\.serviceAgent/serviceAccount:service-(?:\d*)@gae-api-prod\.iam\.gserviceaccount\.com",
        r"appengineflex\.serviceAgent/serviceAccount:service-(?:\d*)@gae-api-prod\.google\.com\.iam\.gserviceaccount\.com",
        r"artifactregistry\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-artifactregistry\.iam\.gserviceaccount\.com",
        r"batch\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudbatch\.iam\.gserviceaccount\.com",
        r"bigquerydatatransfer\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-bigquerydatatransfer\.iam\.gserviceaccount\.com",
        r"binaryauthorization\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-binaryauthorization\.iam\.gserviceaccount\.com",
        r"cloudasset\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudasset\.iam\.gserviceaccount\.com",
        r"cloudbuild\.builds\.builder/serviceAccount:(?:\d*)@cloudbuild\.gserviceaccount\.com",
        r"cloudbuild\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudbuild\.iam\.gserviceaccount\.com",
        r"cloudfunctions\.serviceAgent/serviceAccount:service-(?:\d*)@gcf-admin-robot\.iam\.gserviceaccount\.com",
        r"cloudfunctions\.serviceAgent/serviceAccount:service-project-(?:\d*)@security-center-api\.iam\.gserviceaccount\.com",
        r"cloudiot\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudiot\.iam\.gserviceaccount\.com",
        r"cloudkms\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudkms\.iam\.gserviceaccount\.com",
        r"cloudscheduler\.serviceAgent/serviceAccount:(?:\d*)-compute@developer\.gserviceaccount\.com",
        r"cloudscheduler\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudscheduler\.iam\.gserviceaccount\.com",
        r"cloudtpu\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-tpu\.iam\.gserviceaccount\.com",
        r"compute\.networkViewer/serviceAccount:(?:\d*)-compute@developer\.gserviceaccount\.com",
        r"compute\.serviceAgent/serviceAccount:service-(?:\d*)@compute-system\.iam\.gserviceaccount\.com",
        r"connectors\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-connectors\.iam\.gserviceaccount\.com",
        r"container\.serviceAgent/serviceAccount:service-(?:\d*)@container-engine-robot\.iam\.gserviceaccount\.com",
        r"containeranalysis\.ServiceAgent/serviceAccount:service-(?:\d*)@container-analysis\.iam\.gserviceaccount\.com",
        r"containerregistry\.ServiceAgent/serviceAccount:service-(?:\d*)@containerregistry\.iam\.gserviceaccount\.com",
        r"containerscanning\.ServiceAgent/serviceAccount:service-(?:\d*)@gcp-sa-containerscanning\.iam\.gserviceaccount\.com",
        r"containerthreatdetection.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-ktd-control\.iam\.gserviceaccount\.com",
        r"dataflow\.serviceAgent/serviceAccount:service-(?:\d*)@dataflow-service-producer-prod\.iam\.gserviceaccount\.com",
        r"dataform\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-dataform\.iam\.gserviceaccount\.com",
        r"datafusion\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-datafusion\.iam\.gserviceaccount\.com",
        r"datapipelines\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-datapipelines\.iam\.gserviceaccount\.com",
        r"dataprep\.serviceAgent/serviceAccount:service-(?:\d*)@trifacta-gcloud-prod\.iam\.gserviceaccount\.com",
        r"dataproc\.serviceAgent/serviceAccount:service-(?:\d*)@dataproc-accounts\.iam\.gserviceaccount\.com",
        r"editor/serviceAccount:(?:\d*)-compute@developer\.gserviceaccount\.com",
        r"editor/serviceAccount:(?:\d*)@cloudservices\.gserviceaccount\.com",
        r"endpointsportal\.serviceAgent/serviceAccount:service-(?:\d*)@endpoints-portal\.iam\.gserviceaccount\.com",
        r"eventarc\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-eventarc\.iam\.gserviceaccount\.com",
        r"file\.serviceAgent/serviceAccount:service-(?:\d*)@cloud-filer\.iam\.gserviceaccount\.com",
        r"firebase\.managementServiceAgent/serviceAccount:firebase-service-account@firebase-sa-management\.iam\.gserviceaccount\.com",
        r"firebase\.managementServiceAgent/serviceAccount:service-(?:\d*)@gcp-sa-firebase\.iam\.gserviceaccount\.com",
        r"firebaserules\.system/serviceAccount:service-(?:\d*)@firebase-rules\.iam\.gserviceaccount\.com",
        r"firebasestorage\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-firebasestorage\.iam\.gserviceaccount\.com",
        r"firestore\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-firestore\.iam\.gserviceaccount\.com",
        r"healthcare\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-healthcare\.iam\.gserviceaccount\.com",
        r"iap\.settingsAdmin/serviceAccount:(?:\d*)-compute@developer\.gserviceaccount\.com",
        r"identitytoolkit\.viewer/serviceAccount:(?:\d*)-compute@developer\.gserviceaccount\.com",
        r"integrations\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-integrations\.iam\.gserviceaccount\.com",
        r"lifesciences\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-lifesciences\.iam\.gserviceaccount\.com",
        r"logging\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-logging\.iam\.gserviceaccount\.com",
        r"ml\.serviceAgent/serviceAccount:service-(?:\d*)@cloud-ml\.google\.com\.iam\.gserviceaccount\.com",
        r"ml\.serviceAgent/serviceAccount:service-(?:\d*)@cloud-ml\.iam\.gserviceaccount\.com",
        r"monitoring\.notificationServiceAgent/serviceAccount:service-(?:\d*)@gcp-sa-monitoring-notification\.iam\.gserviceaccount\.com",
        r"networkmanagement\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-networkmanagement\.iam\.gserviceaccount\.com",
        r"notebooks\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-notebooks\.iam\.gserviceaccount\.com",
        r"osconfig\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-osconfig\.iam\.gserviceaccount\.com",
        r"pubsub\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-pubsub\.iam\.gserviceaccount\.com",
        r"redis\.serviceAgent/serviceAccount:service-(?:\d*)@cloud-redis\.iam\.gserviceaccount\.com",
        r"run\.serviceAgent/serviceAccount:service-(?:\d*)@serverless-robot-prod\.iam\.gserviceaccount\.com",
        r"securitycenter\.serviceAgent/serviceAccount:service-org-(?:\d*)@security-center-api\.iam\.gserviceaccount\.com",
        r"securitycenter\.serviceAgent/serviceAccount:service-project-(?:\d*)@security-center-api\.iam\.gserviceaccount\.com",
        r"servicenetworking\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-cloudasset\.iam\.gserviceaccount\.com",
        r"servicenetworking\.serviceAgent/serviceAccount:service-(?:\d*)@service-networking\.iam\.gserviceaccount\.com",
        r"spanner\.serviceAgent/serviceAccount:(?:\d*)-compute@developer\.gserviceaccount\.com",
        r"storage\.admin/serviceAccount:cloud-data-pipeline@koi-b2637a0100e14f34c8c1-tp\.iam\.gserviceaccount\.com",
        r"storage\.admin/serviceAccount:project-(?:\d*)@storage-transfer-service\.iam\.gserviceaccount\.com",
        r"storage\.objectViewer/serviceAccount:project-(?:\d*)@storage-transfer-service\.iam\.gserviceaccount\.com",
        r"storageinsights\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-storageinsights\.iam\.gserviceaccount\.com",
        r"storagetransfer\.serviceAgent/serviceAccount:project-(?:\d*)@storage-transfer-service\.iam\.gserviceaccount\.com",
        r"tpu\.serviceAgent/serviceAccount:service-(?:\d*)@cloud-tpu\.iam\.gserviceaccount\.com",
        r"vpcaccess\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-vpcaccess\.iam\.gserviceaccount\.com",
        r"websecurityscanner\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-websecurityscanner\.iam\.gserviceaccount\.com",
        r"workflows\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-workflows\.iam\.gserviceaccount\.com",
        r"workstations\.serviceAgent/serviceAccount:service-(?:\d*)@gcp-sa-workstations\.iam\.gserviceaccount\.com",
    )
)


def filter_default_uris(
    uris: Iterable[str], patterns: Sequence[re.Pattern[str]] = DEFAULT_URI_FILTER_PATTERNS
) -> List[str]:
    """Drops every URI matching one of the service agent patterns anywhere in the string."""
    return [uri for uri in uris if not any(p.search(uri) for p in patterns)]


def filter_ignored(values: Mapping[str, V], ignored: IgnoredAssets) -> Dict[str, V]:
    """Removes memberships whose role/member pair, project or folder is ignored."""
    filtered: Dict[str, V] = {}
    for uri, value in values.items():
        iam: AssetIAM = getattr(value, "asset_iam", value)
        if not is_ignored(iam, ignored):
            filtered[uri] = value
    return filtered


def select_from(uris: Iterable[str], source: Mapping[str, V]) -> Dict[str, V]:
    """Returns the entries of source keyed by the given URIs, skipping unknown ones."""
    return {uri: source[uri] for uri in uris if uri in source}


def compare_iam(
    gcp_iam: Mapping[str, AssetIAM],
    tf_iam: Mapping[str, TerraformStateIAMSource],
    ignored: IgnoredAssets,
    ignored_expanded: IgnoredAssets,
    patterns: Sequence[re.Pattern[str]] = DEFAULT_URI_FILTER_PATTERNS,
) -> IAMDrift:
    """
    Compares live IAM with the IAM declared in Terraform state.

    The comparison runs in stages:
    1. Drop memberships on ignored roles, projects and folders (expanded set)
    2. Diff the remaining URIs in both directions
    3. Drop URIs listed verbatim in the driftignore file
    4. Drop URIs granted to Google-managed service agents

    Args:
        gcp_iam: Live memberships keyed by URI
        tf_iam: Declared memberships keyed by URI
        ignored: The parsed driftignore entries
        ignored_expanded: The driftignore entries expanded down the hierarchy
        patterns: Service agent patterns to filter out

    Returns:
        IAMDrift holding the click ops and missing Terraform changes
    """
    gcp_in_scope = filter_ignored(gcp_iam, ignored_expanded)
    tf_in_scope = filter_ignored(tf_iam, ignored_expanded)

    logger.debug(
        f"GCP IAM entries: {len(gcp_in_scope)} in scope, "
        f"{len(gcp_iam) - len(gcp_in_scope)} ignored"
    )
    logger.debug(
        f"Terraform IAM entries: {len(tf_in_scope)} in scope, "
        f"{len(tf_iam) - len(tf_in_scope)} ignored"
    )

    click_ops: Set[str] = set(gcp_in_scope) - set(tf_in_scope)
    missing_terraform: Set[str] = set(tf_in_scope) - set(gcp_in_scope)

    click_ops_not_ignored = click_ops - ignored.iam_assets
    missing_terraform_not_ignored = missing_terraform - ignored.iam_assets

    click_ops_final = filter_default_uris(click_ops_not_ignored, patterns)
    missing_terraform_final = filter_default_uris(missing_terraform_not_ignored, patterns)

    logger.debug(
        f"Found {len(click_ops_final)} click ops changes "
        f"({len(click_ops) - len(click_ops_final)} ignored)"
    )
    logger.debug(
        f"Found {len(missing_terraform_final)} missing terraform changes "
        f"({len(missing_terraform) - len(missing_terraform_final)} ignored)"
    )

    return IAMDrift(
        click_ops_changes=select_from(click_ops_final, gcp_iam),
        missing_terraform_changes=select_from(missing_terraform_final, tf_iam),
    )


def drift_message(drift: IAMDrift) -> str:
    """Formats the drifted URIs as a plain text message; empty when there is no drift."""
    sections: List[str] = []
    if drift.click_ops_changes:
        uris = sorted(drift.click_ops_changes)
        sections.append("Found Click Ops Changes \n> " + "\n> ".join(uris))
    if drift.missing_terraform_changes:
        uris = sorted(drift.missing_terraform_changes)
        sections.append("Found Missing Terraform Changes \n> " + "\n> ".join(uris))
    return "\n\n".join(sections)
