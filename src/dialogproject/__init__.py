"""Migration and structural validation engine for dialog projects."""

from .export import LayoutFunction, apply_layout, export_project
from .id_mapping import IdRemapper
from .ingestion import (
    ERROR_MESSAGES,
    ImportErrorCode,
    ImportFailure,
    ImportResult,
    ImportSuccess,
    MigrationInfo,
    ProjectImporter,
    ValidationSummary,
    import_project,
    process_import,
)
from .migration import MigrationError, MigrationPlan, describe_migration, migrate_project
from .schema import (
    CURRENT_SCHEMA_VERSION,
    LEGACY_SCHEMA_VERSION,
    DialogNode,
    Edge,
    LegacyProject,
    Project,
    Tag,
)
from .settings import EngineSettings
from .validation import (
    ValidationIssue,
    ValidationIssueType,
    ValidationResult,
    format_validation_report,
    quick_validate,
    validate_project,
)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "LEGACY_SCHEMA_VERSION",
    "Project",
    "LegacyProject",
    "DialogNode",
    "Edge",
    "Tag",
    "IdRemapper",
    "MigrationError",
    "MigrationPlan",
    "migrate_project",
    "describe_migration",
    "ValidationIssue",
    "ValidationIssueType",
    "ValidationResult",
    "validate_project",
    "quick_validate",
    "format_validation_report",
    "EngineSettings",
    "ImportErrorCode",
    "ImportFailure",
    "ImportResult",
    "ImportSuccess",
    "MigrationInfo",
    "ValidationSummary",
    "ERROR_MESSAGES",
    "ProjectImporter",
    "import_project",
    "process_import",
    "LayoutFunction",
    "apply_layout",
    "export_project",
]
