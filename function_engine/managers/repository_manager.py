"""
Implements an in-process function metadata repository.
"""
from function_engine.interfaces.repository_interface import FunctionRepositoryInterface
from function_engine.models.function import ServerlessFunction
from function_engine.exceptions import FunctionNotFound
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import threading

class InMemoryFunctionRepository(FunctionRepositoryInterface):
    def __init__(self):
        self._records: Dict[Tuple[str, str], ServerlessFunction] = {}
        self._lock = threading.Lock()

    def create(self, function: ServerlessFunction) -> ServerlessFunction:
        with self._lock:
            self._records[(function.tenant_id, function.id)] = replace(function)
        return replace(function)

    def find_one(self, tenant_id: str, function_id: str) -> Optional[ServerlessFunction]:
        with self._lock:
            record = self._records.get((tenant_id, function_id))
        return replace(record) if record else None

    def find_many(self, tenant_id: str) -> List[ServerlessFunction]:
        with self._lock:
            records = [replace(record) for (owner, _), record in self._records.items() if owner == tenant_id]
        return sorted(records, key=lambda record: record.created_at)

    def update(self,
               tenant_id: str,
               function_id: str,
               **fields: Any) -> ServerlessFunction:
        with self._lock:
            record = self._records.get((tenant_id, function_id))
            if record is None:
                raise FunctionNotFound('Function does not exist')
            record = replace(record, updated_at=datetime.now(timezone.utc), **fields)
            self._records[(tenant_id, function_id)] = record
        return replace(record)

    def delete(self, tenant_id: str, function_id: str) -> None:
        with self._lock:
            self._records.pop((tenant_id, function_id), None)
