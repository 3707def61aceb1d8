"""Import pipeline turning untrusted project text into a validated project.

Every import runs the same ordered gates::

    size -> sanitize -> parse -> reference cycles -> nesting depth
         -> cardinality -> migration -> validation -> success

The gates live in :func:`process_import`, which both the isolated worker
process and the in-process fallback call, so the two execution paths cannot
drift apart.
"""

from __future__ import annotations

import json
import logging
import multiprocessing
import pickle
import queue
import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Mapping, Union

from .migration import MigrationError, migrate_project
from .sanitization import (
    count_collection,
    exceeds_nesting_depth,
    has_circular_references,
    payload_size,
    sanitize_text,
)
from .schema import CURRENT_SCHEMA_VERSION, LEGACY_SCHEMA_VERSION, Project
from .settings import EngineSettings
from .validation import validate_project

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class ImportErrorCode(str, Enum):
    """Closed taxonomy of import failures."""

    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_JSON = "INVALID_JSON"
    CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
    TOO_MANY_NODES = "TOO_MANY_NODES"
    TOO_MANY_EDGES = "TOO_MANY_EDGES"
    MIGRATION_FAILED = "MIGRATION_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    TIMEOUT = "TIMEOUT"
    ISOLATION_BOUNDARY_ERROR = "ISOLATION_BOUNDARY_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


ERROR_MESSAGES: Mapping[ImportErrorCode, str] = MappingProxyType(
    {
        ImportErrorCode.FILE_TOO_LARGE: "The file is too large to import.",
        ImportErrorCode.INVALID_JSON: "The file is not valid JSON or is corrupted.",
        ImportErrorCode.CIRCULAR_REFERENCE: (
            "The file contains circular references and cannot be processed."
        ),
        ImportErrorCode.TOO_MANY_NODES: "The project has too many nodes.",
        ImportErrorCode.TOO_MANY_EDGES: "The project has too many connections.",
        ImportErrorCode.MIGRATION_FAILED: (
            "Failed to convert the project to the current format."
        ),
        ImportErrorCode.VALIDATION_FAILED: (
            "The project has critical errors that prevent it from loading."
        ),
        ImportErrorCode.TIMEOUT: "The import took too long and was cancelled.",
        ImportErrorCode.ISOLATION_BOUNDARY_ERROR: (
            "An error occurred while processing the file."
        ),
        ImportErrorCode.UNKNOWN_ERROR: (
            "An unexpected error occurred while importing the file."
        ),
    }
)


@dataclass(frozen=True)
class MigrationInfo:
    """How the imported document relates to the current schema."""

    was_migrated: bool
    from_version: str
    to_version: str = CURRENT_SCHEMA_VERSION


@dataclass(frozen=True)
class ValidationSummary:
    """Counts-only view of the validation outcome."""

    is_valid: bool
    error_count: int
    warning_count: int


@dataclass(frozen=True)
class ImportSuccess:
    """A project that passed every import gate."""

    success: ClassVar[bool] = True

    project: Project
    validation_summary: ValidationSummary
    migration_info: MigrationInfo | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "project": self.project.to_document(),
            "validationSummary": {
                "isValid": self.validation_summary.is_valid,
                "errorCount": self.validation_summary.error_count,
                "warningCount": self.validation_summary.warning_count,
            },
        }
        if self.migration_info is not None:
            payload["migrationInfo"] = {
                "wasMigrated": self.migration_info.was_migrated,
                "fromVersion": self.migration_info.from_version,
                "toVersion": self.migration_info.to_version,
            }
        return payload


@dataclass(frozen=True)
class ImportFailure:
    """A rejected import. ``internal_detail`` is for logs only."""

    success: ClassVar[bool] = False

    error_code: ImportErrorCode
    human_message: str
    internal_detail: Any = None

    @classmethod
    def from_code(cls, code: ImportErrorCode, detail: Any = None) -> "ImportFailure":
        return cls(error_code=code, human_message=ERROR_MESSAGES[code], internal_detail=detail)

    def to_payload(self) -> dict[str, Any]:
        return {"errorCode": self.error_code.value, "humanMessage": self.human_message}


ImportResult = Union[ImportSuccess, ImportFailure]


@dataclass(frozen=True)
class ImportRequest:
    """The single message sent across the isolation boundary."""

    raw_text: str | bytes
    origin_name: str | None = None


class _GateRejected(Exception):
    """Internal signal used by the gates to short-circuit the pipeline."""

    def __init__(self, code: ImportErrorCode, reason: str, detail: Any = None) -> None:
        super().__init__(reason)
        self.code = code
        self.reason = reason
        self.detail = detail


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Unsupported JSON constant: {token}")


def check_size(payload: str | bytes, settings: EngineSettings) -> None:
    size = payload_size(payload)
    if size > settings.max_file_size:
        raise _GateRejected(
            ImportErrorCode.FILE_TOO_LARGE,
            f"File too large: {size} bytes. Maximum allowed: {settings.max_file_size} bytes",
        )


def decode_payload(payload: str | bytes) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise _GateRejected(
            ImportErrorCode.INVALID_JSON, f"Payload is not UTF-8 text: {exc}"
        ) from exc


def parse_document(text: str) -> Any:
    """Parse sanitized text as JSON, rejecting non-standard constants."""

    try:
        return json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        raise _GateRejected(ImportErrorCode.INVALID_JSON, f"Invalid JSON format: {exc}") from exc


def check_references(document: Any) -> None:
    if has_circular_references(document):
        raise _GateRejected(
            ImportErrorCode.CIRCULAR_REFERENCE, "Circular references detected in data"
        )


def check_depth(document: Any, settings: EngineSettings) -> None:
    if exceeds_nesting_depth(document, settings.max_depth):
        raise _GateRejected(
            ImportErrorCode.INVALID_JSON,
            f"Document nests deeper than {settings.max_depth} levels",
        )


def check_cardinality(document: Any, settings: EngineSettings) -> None:
    if not isinstance(document, Mapping):
        return

    node_count = count_collection(document, "nodes")
    if node_count > settings.max_nodes:
        raise _GateRejected(
            ImportErrorCode.TOO_MANY_NODES,
            f"Too many nodes: {node_count}. Maximum allowed: {settings.max_nodes}",
        )

    edge_count = count_collection(document, "edges", "connections")
    if edge_count > settings.max_edges:
        raise _GateRejected(
            ImportErrorCode.TOO_MANY_EDGES,
            f"Too many edges: {edge_count}. Maximum allowed: {settings.max_edges}",
        )


def _declared_version(document: Any) -> str:
    if isinstance(document, Mapping):
        version = document.get("schemaVersion")
        if isinstance(version, str) and version:
            return version
    return LEGACY_SCHEMA_VERSION


def run_migration(document: Any) -> tuple[Project, MigrationInfo]:
    from_version = _declared_version(document)
    try:
        project = migrate_project(document)
    except MigrationError as exc:
        cause = exc.cause
        raise _GateRejected(
            ImportErrorCode.MIGRATION_FAILED,
            str(exc),
            {
                "message": str(exc),
                "item_id": exc.item_id,
                "cause": str(cause) if cause is not None else None,
                "cause_type": type(cause).__name__ if cause is not None else None,
            },
        ) from exc

    info = MigrationInfo(
        was_migrated=from_version != CURRENT_SCHEMA_VERSION,
        from_version=from_version,
    )
    return project, info


def run_validation(project: Project) -> ValidationSummary:
    result = validate_project(project)
    critical = result.critical_errors
    if critical:
        raise _GateRejected(
            ImportErrorCode.VALIDATION_FAILED,
            "Project has critical validation errors: "
            + ", ".join(issue.message for issue in critical),
            {"critical_errors": [issue.to_payload() for issue in critical]},
        )
    return ValidationSummary(
        is_valid=result.is_valid,
        error_count=len(result.errors),
        warning_count=len(result.warnings),
    )


def process_import(
    request: ImportRequest, settings: EngineSettings | None = None
) -> ImportResult:
    """Run every import gate for ``request`` in the current process.

    Failures never raise; they are classified into :class:`ImportErrorCode`.
    """

    active = settings if settings is not None else EngineSettings()
    origin = request.origin_name or "<memory>"

    try:
        check_size(request.raw_text, active)
        text = sanitize_text(decode_payload(request.raw_text))
        document = parse_document(text)
        check_references(document)
        check_depth(document, active)
        check_cardinality(document, active)
        project, migration_info = run_migration(document)
        summary = run_validation(project)
    except _GateRejected as rejection:
        logger.warning(
            "Import of %s rejected with %s: %s",
            origin,
            rejection.code.value,
            rejection.reason,
        )
        return ImportFailure.from_code(rejection.code, rejection.detail)
    except Exception:
        logger.exception("Unexpected failure while importing %s", origin)
        return ImportFailure.from_code(ImportErrorCode.UNKNOWN_ERROR)

    logger.info(
        "Imported %s: %d nodes, %d edges (%d errors, %d warnings)",
        origin,
        len(project.nodes),
        len(project.edges),
        summary.error_count,
        summary.warning_count,
    )
    return ImportSuccess(
        project=project,
        validation_summary=summary,
        migration_info=migration_info,
    )


def _isolated_entry(
    request: ImportRequest, settings: EngineSettings, channel: Any
) -> None:
    channel.put(process_import(request, settings))


class ProjectImporter:
    """Import projects inside a worker process with a wall-clock timeout.

    When isolation is disabled, or a worker process cannot be started, the
    identical pipeline runs in the calling process instead. On timeout the
    worker is left to finish on its own and its late result is discarded.
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings if settings is not None else EngineSettings.from_env()

    def import_project(
        self, raw_text: str | bytes, origin_name: str | None = None
    ) -> ImportResult:
        """Import ``raw_text`` and return a success or classified failure."""

        request = ImportRequest(raw_text=raw_text, origin_name=origin_name)
        if not self.settings.use_isolation:
            return process_import(request, self.settings)
        return self._import_isolated(request)

    def _import_isolated(self, request: ImportRequest) -> ImportResult:
        try:
            context = multiprocessing.get_context(self.settings.start_method)
            channel = context.Queue(maxsize=1)
            worker = context.Process(
                target=_isolated_entry,
                args=(request, self.settings, channel),
                name="dialogproject-import",
                daemon=True,
            )
            worker.start()
        except (OSError, ValueError, RuntimeError, AssertionError, pickle.PicklingError) as exc:
            # AssertionError: daemonic processes may not start children.
            logger.warning("Isolated import unavailable (%s); running in-process", exc)
            return process_import(request, self.settings)

        deadline = time.monotonic() + self.settings.timeout_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.error(
                    "Import of %s timed out after %.1fs",
                    request.origin_name or "<memory>",
                    self.settings.timeout_seconds,
                )
                return ImportFailure.from_code(ImportErrorCode.TIMEOUT)
            try:
                result = channel.get(timeout=min(remaining, _POLL_INTERVAL))
            except queue.Empty:
                if worker.is_alive():
                    continue
                try:
                    result = channel.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    logger.error(
                        "Import worker exited with code %s without a result",
                        worker.exitcode,
                    )
                    return ImportFailure.from_code(ImportErrorCode.ISOLATION_BOUNDARY_ERROR)
            worker.join(timeout=_POLL_INTERVAL)
            return result


def import_project(
    raw_text: str | bytes,
    origin_name: str | None = None,
    *,
    settings: EngineSettings | None = None,
) -> ImportResult:
    """Import a serialized project using a fresh :class:`ProjectImporter`."""

    return ProjectImporter(settings).import_project(raw_text, origin_name)


__all__ = [
    "ERROR_MESSAGES",
    "ImportErrorCode",
    "ImportFailure",
    "ImportRequest",
    "ImportResult",
    "ImportSuccess",
    "MigrationInfo",
    "ProjectImporter",
    "ValidationSummary",
    "check_cardinality",
    "check_depth",
    "check_references",
    "check_size",
    "import_project",
    "parse_document",
    "process_import",
    "run_migration",
    "run_validation",
]
