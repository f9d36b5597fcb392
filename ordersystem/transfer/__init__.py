"""Versioned JSON bundles for manual backup and restore."""

from ordersystem.transfer.envelope import (
    BUNDLE_KEYS,
    EnvelopeError,
    ImportExportEnvelope,
    IncompatibleVersionError,
    InvalidEnvelopeError,
    upgrade_bundle,
)

__all__ = [
    "BUNDLE_KEYS",
    "EnvelopeError",
    "ImportExportEnvelope",
    "IncompatibleVersionError",
    "InvalidEnvelopeError",
    "upgrade_bundle",
]
