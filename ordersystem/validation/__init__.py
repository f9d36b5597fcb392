"""Validation of import bundles."""

from ordersystem.validation.validator import (
    CURRENT_VERSION,
    LEGACY_VERSIONS,
    SUPPORTED_VERSIONS,
    BundleValidationResult,
    BundleValidator,
    ValidationIssue,
)

__all__ = [
    "CURRENT_VERSION",
    "LEGACY_VERSIONS",
    "SUPPORTED_VERSIONS",
    "BundleValidationResult",
    "BundleValidator",
    "ValidationIssue",
]
