# Sync_Reports.py
# Description: Structured results returned by the coordinator's public operations
#
# Imports
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
#
# Local Imports
from cabinetpm_sync.Sync.Conflict_Resolver import ConflictRecord
#
########################################################################################################################
#
# Functions:

@dataclass
class TablePullResult:
    pulled: int = 0
    conflicts: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    error: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pulled": self.pulled, "conflicts": self.conflicts, "deleted": self.deleted,
            "skipped": self.skipped, "errors": self.errors, "error": self.error, "cancelled": self.cancelled,
        }


@dataclass
class TablePushResult:
    pushed: int = 0
    deleted: int = 0
    errors: int = 0
    error: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pushed": self.pushed, "deleted": self.deleted, "errors": self.errors,
            "error": self.error, "cancelled": self.cancelled,
        }


@dataclass
class PullReport:
    per_table: Dict[str, TablePullResult] = field(default_factory=dict)
    conflicts: List[ConflictRecord] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None

    @property
    def total_pulled(self) -> int:
        return sum(r.pulled for r in self.per_table.values())

    @property
    def total_conflicts(self) -> int:
        return sum(r.conflicts for r in self.per_table.values())

    @property
    def total_errors(self) -> int:
        return sum(r.errors for r in self.per_table.values())

    @property
    def failed_tables(self) -> List[str]:
        return [name for name, r in self.per_table.items() if r.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "total_pulled": self.total_pulled,
            "total_conflicts": self.total_conflicts,
            "total_errors": self.total_errors,
            "per_table": {name: r.to_dict() for name, r in self.per_table.items()},
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass
class PushReport:
    per_table: Dict[str, TablePushResult] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    @property
    def total_pushed(self) -> int:
        return sum(r.pushed for r in self.per_table.values())

    @property
    def total_deleted(self) -> int:
        return sum(r.deleted for r in self.per_table.values())

    @property
    def total_errors(self) -> int:
        return sum(r.errors for r in self.per_table.values())

    @property
    def failed_tables(self) -> List[str]:
        return [name for name, r in self.per_table.items() if r.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "total_pushed": self.total_pushed,
            "total_deleted": self.total_deleted,
            "total_errors": self.total_errors,
            "per_table": {name: r.to_dict() for name, r in self.per_table.items()},
        }


@dataclass
class SyncReport:
    pull_result: Optional[PullReport] = None
    push_result: Optional[PushReport] = None
    success: bool = True
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
            "pull_result": self.pull_result.to_dict() if self.pull_result else None,
            "push_result": self.push_result.to_dict() if self.push_result else None,
        }

#
# End of Sync_Reports.py
########################################################################################################################
