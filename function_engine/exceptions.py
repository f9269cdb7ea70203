"""
Errors raised by the function engine.

Every error carries a stable `code` so outer adapters (API layers, workflow steps)
can map it without matching on class names or messages.
"""
from typing import List, Optional


class FunctionEngineException(Exception):
    code = 'FUNCTION_ENGINE_ERROR'

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class FunctionNotFound(FunctionEngineException):
    code = 'FUNCTION_NOT_FOUND'


class FunctionVersionNotFound(FunctionEngineException):
    code = 'FUNCTION_VERSION_NOT_FOUND'


class UnsupportedVersionLabel(FunctionEngineException):
    code = 'UNSUPPORTED_VERSION_LABEL'


class NoOpPublishRejected(FunctionEngineException):
    code = 'NO_OP_PUBLISH_REJECTED'


class ExecutionRateLimitExceeded(FunctionEngineException):
    code = 'EXECUTION_RATE_LIMIT_EXCEEDED'


class BuildInfrastructureFailure(FunctionEngineException):
    code = 'BUILD_INFRASTRUCTURE_FAILURE'


class ExecutionInfrastructureFailure(FunctionEngineException):
    code = 'EXECUTION_INFRASTRUCTURE_FAILURE'


class FunctionCleanupFailure(FunctionEngineException):
    """Raised after a function record was deleted but its artifacts were not fully removed."""
    code = 'FUNCTION_CLEANUP_FAILURE'

    def __init__(self, message: str, function=None, errors: Optional[List[Exception]] = None):
        super().__init__(message)
        self.function = function
        self.errors = errors or []


class ArtifactNotFound(FunctionEngineException):
    code = 'ARTIFACT_NOT_FOUND'


class ThrottlerException(FunctionEngineException):
    code = 'THROTTLE_LIMIT_REACHED'


class ConfigurationError(FunctionEngineException):
    code = 'INVALID_CONFIGURATION'


class InvalidFilePath(FunctionEngineException):
    code = 'INVALID_FILE_PATH'
