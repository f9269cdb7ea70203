"""
Defines the interface every execution backend implements.

Driver:
1. Delete Function
2. Build Version
3. Publish Draft
4. Execute Version
"""
from typing import Protocol, Optional, Any
from function_engine.models.execution_result import ExecutionResult
from function_engine.models.function import Runtime

class ServerlessDriverInterface(Protocol):
    def delete(self, function_id: str) -> None:
        raise NotImplementedError

    def build(self,
              tenant_id: str,
              function_id: str,
              version: str,
              layer_version: Optional[int],
              runtime: Runtime) -> None:
        raise NotImplementedError

    def publish(self,
                tenant_id: str,
                function_id: str,
                current_version: Optional[str],
                layer_version: Optional[int],
                runtime: Runtime) -> str:
        raise NotImplementedError

    def execute(self,
                function_id: str,
                version: str,
                payload: Any) -> ExecutionResult:
        raise NotImplementedError
