"""Registration reconciliation pipeline."""

from __future__ import annotations

from .dates import DateNormalization, format_date, normalize_date
from .dedupe import (
    DuplicateCluster,
    DuplicateMember,
    find_all_duplicates,
    find_duplicates_by_last4,
    find_duplicates_by_name_email,
)
from .driver import BatchMutationDriver, DocumentChange, GroupResult, MutationSummary
from .email_index import (
    AssociationSummary,
    EmailIndexSummary,
    build_email_map,
    merge_email_index,
    rebuild_email_index,
    sync_associated_registrations,
)
from .fields import canonicalize_fields, obsolete_fields_patch, strip_invalid_fields
from .load import ImportSummary, build_registration_document, import_registrations
from .migrate import MigrationPlan, MigrationSummary, cancelled_plan, migrate, non_shibirarthi_plan
from .passes import (
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_REJECTED,
    DateFailure,
    DateNormalizationReport,
    NegativePhone,
    StatusUpdateSummary,
    cleanup_invalid_fields,
    find_negative_phones,
    normalize_dates,
    normalize_field_names,
    normalize_pickup_locations,
    normalize_post_tour,
    normalize_zones,
    remove_obsolete_fields,
    update_status,
)
from .values import is_negative_phone, normalize_pickup_location, normalize_post_tour as normalize_post_tour_value, normalize_zone

__all__ = [
    "AssociationSummary",
    "BatchMutationDriver",
    "DateFailure",
    "DateNormalization",
    "DateNormalizationReport",
    "DocumentChange",
    "DuplicateCluster",
    "DuplicateMember",
    "EmailIndexSummary",
    "GroupResult",
    "ImportSummary",
    "MigrationPlan",
    "MigrationSummary",
    "MutationSummary",
    "NegativePhone",
    "STATUS_APPROVED",
    "STATUS_CANCELLED",
    "STATUS_REJECTED",
    "StatusUpdateSummary",
    "build_email_map",
    "build_registration_document",
    "canonicalize_fields",
    "cancelled_plan",
    "cleanup_invalid_fields",
    "find_all_duplicates",
    "find_duplicates_by_last4",
    "find_duplicates_by_name_email",
    "find_negative_phones",
    "format_date",
    "import_registrations",
    "is_negative_phone",
    "merge_email_index",
    "migrate",
    "non_shibirarthi_plan",
    "normalize_date",
    "normalize_dates",
    "normalize_field_names",
    "normalize_pickup_location",
    "normalize_pickup_locations",
    "normalize_post_tour",
    "normalize_post_tour_value",
    "normalize_zone",
    "normalize_zones",
    "obsolete_fields_patch",
    "rebuild_email_index",
    "remove_obsolete_fields",
    "strip_invalid_fields",
    "sync_associated_registrations",
    "update_status",
]
