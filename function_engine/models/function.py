"""
Function metadata record.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
import uuid


class Runtime(str, Enum):
    PYTHON312 = 'python3.12'


class SyncStatus(str, Enum):
    NOT_READY = 'NOT_READY'
    READY = 'READY'


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ServerlessFunction:
    name: str
    tenant_id: str
    description: Optional[str] = None
    runtime: Runtime = Runtime.PYTHON312
    layer_version: Optional[int] = None
    latest_version: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.NOT_READY
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['runtime'] = self.runtime.value
        data['sync_status'] = self.sync_status.value
        data['created_at'] = self.created_at.isoformat()
        data['updated_at'] = self.updated_at.isoformat()
        return data
