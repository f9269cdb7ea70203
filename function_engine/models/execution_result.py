"""
Execution result returned by every driver, whatever the backend.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ExecutionStatus(str, Enum):
    SUCCESS = 'SUCCESS'
    ERROR = 'ERROR'


@dataclass
class ExecutionError:
    error_type: str
    error_message: str
    stack_trace: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Any) -> 'ExecutionError':
        """Build an error from a camelCase payload (Lambda error body or listener envelope)
        Args:
            payload: decoded error payload, usually {'errorType', 'errorMessage', 'stackTrace'}
        Return:
            the ExecutionError, with 'Unknown' type when the payload is not a dictionary
        """
        if not isinstance(payload, dict):
            return cls(error_type='Unknown', error_message=str(payload))

        stack_trace = payload.get('stackTrace') or []
        if isinstance(stack_trace, str):
            stack_trace = stack_trace.split('\n')
        lines = []
        for entry in stack_trace:
            for line in str(entry).split('\n'):
                if line.strip():
                    lines.append(line.rstrip())

        return cls(error_type=str(payload.get('errorType', 'Unknown')),
                   error_message=str(payload.get('errorMessage', '')),
                   stack_trace=lines)

    def to_dict(self) -> Dict[str, Any]:
        return {'errorType': self.error_type,
                'errorMessage': self.error_message,
                'stackTrace': list(self.stack_trace)}


@dataclass
class ExecutionResult:
    data: Any
    duration: int
    status: ExecutionStatus
    error: Optional[ExecutionError] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {'data': self.data,
                  'duration': self.duration,
                  'status': self.status.value}
        if self.error is not None:
            result['error'] = self.error.to_dict()
        return result
