"""
Two-Stage Bundle Validation

DESIGN DECISION: An import bundle is validated in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- The bundle is a JSON object
- monthlyData, clientsData and settings are present and are objects
- Optional keys, when present, have the right shape
- Month partitions are keyed by YYYY-MM and hold lists
- This catches truncated, hand-edited or foreign files

STAGE 2 - VERSION VALIDATION:
- The version is one we can read (1.0, 1.1, 1.2)
- A missing version is read as 1.0
- This catches bundles written by a newer release

WHY TWO STAGES:
1. Better error messages (a broken file vs. a file from the future)
2. Stage 2 is meaningless if stage 1 fails
3. The envelope maps each stage to its own exception

IMPORTANT: Validation NEVER fixes anything. Upgrading an accepted bundle
is the envelope's job, after validation has passed.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ordersystem.utils.dates import is_month_key

CURRENT_VERSION = "1.2"
SUPPORTED_VERSIONS = ("1.0", "1.1", "1.2")
LEGACY_VERSIONS = ("1.0", "1.1")

REQUIRED_OBJECTS = ("monthlyData", "clientsData", "settings")


class ValidationIssue(BaseModel):
    """A single problem found in a bundle."""
    field: str = Field(..., description="Bundle path the issue refers to")
    issue_type: str = Field(..., description="missing | invalid_type | invalid_value | duplicate | unsupported")
    message: str
    severity: Literal["error", "warning"] = "error"


class BundleValidationResult(BaseModel):
    """Outcome of both validation stages."""
    version: Optional[str] = Field(default=None, description="Version the bundle will be read as")
    schema_valid: bool = False
    version_supported: bool = False
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.version_supported

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]


class BundleValidator:
    """
    Validates import bundles through a two-stage pipeline.

    Stage 1: Schema validation
    Stage 2: Version validation (only if stage 1 passes)
    """

    def _validate_schema(self, data: Any) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not isinstance(data, dict):
            issues.append(ValidationIssue(
                field="$",
                issue_type="invalid_type",
                message=f"Bundle must be a JSON object, got {type(data).__name__}",
            ))
            return False, issues

        for key in REQUIRED_OBJECTS:
            if key not in data:
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="missing",
                    message=f"'{key}' is required",
                ))
            elif not isinstance(data[key], dict):
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="invalid_type",
                    message=f"'{key}' must be an object, got {type(data[key]).__name__}",
                ))

        if isinstance(data.get("monthlyData"), dict):
            issues.extend(self._check_months(data["monthlyData"]))

        for key in ("clientsData", "inventory"):
            if isinstance(data.get(key), dict):
                issues.extend(self._check_records(key, data[key]))

        if "inventory" in data and data["inventory"] is not None and not isinstance(data["inventory"], dict):
            issues.append(ValidationIssue(
                field="inventory",
                issue_type="invalid_type",
                message="'inventory' must be an object",
            ))

        if "availableMonths" in data and data["availableMonths"] is not None:
            issues.extend(self._check_available_months(data["availableMonths"]))

        current = data.get("currentMonth")
        if current not in (None, "") and not is_month_key(current):
            issues.append(ValidationIssue(
                field="currentMonth",
                issue_type="invalid_value",
                message=f"currentMonth {current!r} is not a month key; the current month will be used",
                severity="warning",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _check_months(self, monthly_data: dict) -> list[ValidationIssue]:
        issues = []
        for month, snapshot in monthly_data.items():
            path = f"monthlyData.{month}"
            if not is_month_key(month):
                issues.append(ValidationIssue(
                    field=path,
                    issue_type="invalid_value",
                    message=f"Month key {month!r} is not YYYY-MM",
                ))
                continue
            if not isinstance(snapshot, dict):
                issues.append(ValidationIssue(
                    field=path,
                    issue_type="invalid_type",
                    message=f"Month {month} must be an object",
                ))
                continue
            for part in ("orders", "expenses"):
                value = snapshot.get(part)
                if value is not None and not isinstance(value, list):
                    issues.append(ValidationIssue(
                        field=f"{path}.{part}",
                        issue_type="invalid_type",
                        message=f"{part} of {month} must be a list",
                    ))
                elif value and not all(isinstance(item, dict) for item in value):
                    issues.append(ValidationIssue(
                        field=f"{path}.{part}",
                        issue_type="invalid_type",
                        message=f"Every entry in {part} of {month} must be an object",
                    ))
        return issues

    def _check_records(self, key: str, records: dict) -> list[ValidationIssue]:
        return [
            ValidationIssue(
                field=f"{key}.{record_id}",
                issue_type="invalid_type",
                message=f"Entry {record_id!r} of {key} must be an object, got {type(record).__name__}",
            )
            for record_id, record in records.items()
            if not isinstance(record, dict)
        ]

    def _check_available_months(self, months: Any) -> list[ValidationIssue]:
        if not isinstance(months, list):
            return [ValidationIssue(
                field="availableMonths",
                issue_type="invalid_type",
                message="'availableMonths' must be a list",
            )]

        issues = []
        seen = set()
        for index, entry in enumerate(months):
            key = entry.get("key") if isinstance(entry, dict) else entry
            if not is_month_key(key):
                issues.append(ValidationIssue(
                    field=f"availableMonths[{index}]",
                    issue_type="invalid_value",
                    message=f"{entry!r} is not a month entry",
                ))
            elif key in seen:
                issues.append(ValidationIssue(
                    field=f"availableMonths[{index}]",
                    issue_type="duplicate",
                    message=f"Month {key} is listed twice",
                ))
            seen.add(key)
        return issues

    def _validate_version(self, data: dict) -> tuple[Optional[str], list[ValidationIssue]]:
        """
        Stage 2: Version validation.

        Returns: (version_to_read_as or None, list_of_issues)
        """
        version = data.get("version")
        if version is None:
            return "1.0", [ValidationIssue(
                field="version",
                issue_type="missing",
                message="No version; reading the bundle as 1.0",
                severity="warning",
            )]

        version = str(version)
        if version not in SUPPORTED_VERSIONS:
            return None, [ValidationIssue(
                field="version",
                issue_type="unsupported",
                message=(
                    f"Bundle version {version} cannot be read; "
                    f"supported versions are {', '.join(SUPPORTED_VERSIONS)}"
                ),
            )]
        return version, []

    def validate(self, data: Any) -> BundleValidationResult:
        """Run full two-stage validation pipeline."""
        schema_valid, issues = self._validate_schema(data)

        version = None
        if schema_valid:
            version, version_issues = self._validate_version(data)
            issues.extend(version_issues)

        return BundleValidationResult(
            version=version,
            schema_valid=schema_valid,
            version_supported=version is not None,
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )

    def get_user_friendly_summary(self, result: BundleValidationResult) -> str:
        """Summary suitable for a notification."""
        if result.is_valid and not result.warnings:
            return "Файлът е валиден."

        lines = []
        if result.errors:
            lines.append("Файлът не може да бъде импортиран:")
            lines.extend(f"  • {issue.message}" for issue in result.errors)
        if result.warnings:
            lines.append("Внимание:")
            lines.extend(f"  • {warning}" for warning in result.warnings)
        return "\n".join(lines)
