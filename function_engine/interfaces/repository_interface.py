"""
Defines the interface of the store holding function metadata records.

Repository:
1. Create Record
2. Find One Record
3. Find All Records of a Tenant
4. Update Record
5. Delete Record
"""
from typing import Protocol, Optional, List, Any
from function_engine.models.function import ServerlessFunction

class FunctionRepositoryInterface(Protocol):
    def create(self, function: ServerlessFunction) -> ServerlessFunction:
        raise NotImplementedError

    def find_one(self, tenant_id: str, function_id: str) -> Optional[ServerlessFunction]:
        raise NotImplementedError

    def find_many(self, tenant_id: str) -> List[ServerlessFunction]:
        raise NotImplementedError

    def update(self,
               tenant_id: str,
               function_id: str,
               **fields: Any) -> ServerlessFunction:
        raise NotImplementedError

    def delete(self, tenant_id: str, function_id: str) -> None:
        raise NotImplementedError
