"""
Persistence Models

Shapes reported by the keyed store and the backup vault.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Aggregate status of the persistence medium."""
    OK = "ok"
    WARNING = "warning"  # Usage at or above the warning ratio
    ERROR = "error"      # Usage at or above the error ratio, or last write failed


class StorageHealth(BaseModel):
    """Snapshot of the persistence medium."""
    model_config = ConfigDict(populate_by_name=True)

    status: HealthStatus = Field(default=HealthStatus.OK)
    used_bytes: int = Field(default=0, ge=0, alias="usedBytes")
    quota_bytes: int = Field(default=0, ge=0, alias="quotaBytes")
    backup_count: int = Field(default=0, ge=0, alias="backupCount")
    last_save: Optional[int] = Field(
        default=None,
        alias="lastSave",
        description="Epoch milliseconds of the last successful save"
    )
    error: Optional[str] = Field(default=None, description="Last write failure")

    @property
    def usage_ratio(self) -> float:
        if not self.quota_bytes:
            return 0.0
        return self.used_bytes / self.quota_bytes

    @property
    def used_mb(self) -> float:
        return round(self.used_bytes / (1024 * 1024), 2)

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "used_bytes": self.used_bytes,
            "quota_bytes": self.quota_bytes,
            "usage_ratio": round(self.usage_ratio, 4),
            "backup_count": self.backup_count,
            "last_save": self.last_save,
            "error": self.error,
        }


class BackupRecord(BaseModel):
    """
    One rolling backup of a persisted key.

    `payload` is the serialized JSON text exactly as it was saved.
    """
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(..., description="Logical key (without prefix)")
    storage_key: str = Field(..., alias="storageKey", description="Medium key of the backup")
    timestamp: int = Field(..., description="Epoch milliseconds")
    size: int = Field(..., ge=0, description="Payload size in bytes")
    payload: str = Field(..., repr=False)
