# Conflict_Resolver.py
# Description: Decides, per incoming record, whether the remote or the local version wins
#
# Imports
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from cabinetpm_sync.Constants import (
    LOCAL_ID_COLUMN,
    ORIGIN_DEVICE_COLUMN,
    REMOTE_EDITED_AT,
    REMOTE_GLOBAL_ID,
    REMOTE_ORIGIN_DEVICE,
    REMOTE_UPDATED_AT,
    SYNC_FLAG_COLUMN,
    SYNC_STATE_SYNCED,
    UPDATED_AT_COLUMN,
)
from cabinetpm_sync.Utils.Timestamps import is_strictly_newer
#
########################################################################################################################
#
# Functions:

class Outcome(str, Enum):
    ACCEPT_REMOTE = "accept_remote"
    KEEP_LOCAL = "keep_local"
    CONFLICT = "conflict"


class ConflictPolicy(str, Enum):
    """What happens to a record that changed both locally (unsynced) and remotely."""
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    LATEST_WINS = "latest_wins"

    @classmethod
    def from_value(cls, value: "str | ConflictPolicy") -> "ConflictPolicy":
        if isinstance(value, ConflictPolicy):
            return value
        normalized = str(value).strip().lower().replace("-", "_")
        if normalized == "master_wins":
            return cls.REMOTE_WINS
        try:
            return cls(normalized)
        except ValueError as e:
            raise ValueError(
                f"Unknown conflict policy '{value}'. Expected one of: {', '.join(p.value for p in cls)}"
            ) from e


DEFAULT_CONFLICT_POLICY = ConflictPolicy.LOCAL_WINS


def _is_synced(local: Dict[str, Any]) -> bool:
    value = local.get(SYNC_FLAG_COLUMN)
    try:
        return value is not None and int(value) == SYNC_STATE_SYNCED
    except (TypeError, ValueError):
        return False


def classify(local: Optional[Dict[str, Any]], remote: Dict[str, Any], local_device_id: str) -> Outcome:
    """
    Pure three-way decision for one incoming record.

    1. No local counterpart: ACCEPT_REMOTE.
    2. Remote was last written by this device: KEEP_LOCAL.
    3. Local is synced: ACCEPT_REMOTE only when the remote updated_at is strictly newer.
    4. Local has unsynced changes: CONFLICT.

    Raises:
        ValueError: If the remote updated_at cannot be parsed (rule 3 only).
    """
    if local is None:
        return Outcome.ACCEPT_REMOTE
    if remote.get(REMOTE_ORIGIN_DEVICE) and remote.get(REMOTE_ORIGIN_DEVICE) == local_device_id:
        return Outcome.KEEP_LOCAL
    if _is_synced(local):
        if is_strictly_newer(remote.get(REMOTE_UPDATED_AT), local.get(UPDATED_AT_COLUMN)):
            return Outcome.ACCEPT_REMOTE
        return Outcome.KEEP_LOCAL
    return Outcome.CONFLICT


@dataclass
class ConflictRecord:
    table: str
    global_id: Optional[str]
    local_id: Any
    local_device: Optional[str]
    remote_device: Optional[str]
    policy: str
    kept: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Resolution:
    outcome: Outcome
    apply_remote: bool
    conflict: Optional[ConflictRecord] = None
    reason: str = ""


@dataclass
class ConflictResolver:
    """
    Applies the configured policy on top of `classify` and keeps per-cycle
    conflict bookkeeping. Call `reset()` at the start of each cycle.
    """
    policy: ConflictPolicy = DEFAULT_CONFLICT_POLICY
    conflicts: List[ConflictRecord] = field(default_factory=list)

    def __post_init__(self):
        self.policy = ConflictPolicy.from_value(self.policy)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    def reset(self):
        self.conflicts = []

    def set_policy(self, policy: "str | ConflictPolicy"):
        self.policy = ConflictPolicy.from_value(policy)
        logger.info(f"Conflict policy set to '{self.policy.value}'")

    def resolve(self, table: str, local: Optional[Dict[str, Any]], remote: Dict[str, Any],
                local_device_id: str) -> Resolution:
        outcome = classify(local, remote, local_device_id)
        if outcome is Outcome.ACCEPT_REMOTE:
            return Resolution(outcome, True, reason="no local version" if local is None else "remote is newer")
        if outcome is Outcome.KEEP_LOCAL:
            return Resolution(outcome, False, reason="local is current")

        if self.policy is ConflictPolicy.LOCAL_WINS:
            apply_remote = False
        elif self.policy is ConflictPolicy.REMOTE_WINS:
            apply_remote = True
        else:
            # Edit times on both sides; the remote updated_at is its push time
            remote_edited = remote.get(REMOTE_EDITED_AT) or remote.get(REMOTE_UPDATED_AT)
            apply_remote = is_strictly_newer(remote_edited, local.get(UPDATED_AT_COLUMN))

        record = ConflictRecord(
            table=table,
            global_id=remote.get(REMOTE_GLOBAL_ID),
            local_id=local.get(LOCAL_ID_COLUMN),
            local_device=local.get(ORIGIN_DEVICE_COLUMN),
            remote_device=remote.get(REMOTE_ORIGIN_DEVICE),
            policy=self.policy.value,
            kept="remote" if apply_remote else "local",
        )
        self.conflicts.append(record)
        logger.warning(
            f"Conflict on {table} {record.global_id}: local unsynced change vs remote from "
            f"{record.remote_device}; policy '{self.policy.value}' keeps {record.kept}"
        )
        return Resolution(outcome, apply_remote, conflict=record, reason=f"conflict, {record.kept} kept")

#
# End of Conflict_Resolver.py
########################################################################################################################
