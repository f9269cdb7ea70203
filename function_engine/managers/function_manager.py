"""
Implements the function service, the single entry point of the engine.

Function Service:
1. Create Function
2. Update Function
3. Publish Function
4. Execute Function
5. Delete Function
6. Get Source Code
7. Get Available Packages
"""
from function_engine.utils.logger import logger
from function_engine.utils.folders import DRAFT_VERSION, get_function_folder
from function_engine.interfaces.driver_interface import ServerlessDriverInterface
from function_engine.interfaces.repository_interface import FunctionRepositoryInterface
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.interfaces.template_interface import TemplateProviderInterface
from function_engine.interfaces.throttler_interface import ThrottlerInterface
from function_engine.managers.layer_manager import get_layer_dependencies
from function_engine.managers.template_manager import StarterTemplateProvider
from function_engine.managers.version_manager import VersionManager
from function_engine.models.execution_result import ExecutionResult
from function_engine.models.function import ServerlessFunction, SyncStatus
from function_engine.exceptions import (
    ExecutionRateLimitExceeded,
    FunctionCleanupFailure,
    FunctionNotFound,
    InvalidFilePath,
    ThrottlerException,
)
from typing import Any, Dict, List, Optional, Union
import posixpath

LAST_LAYER_VERSION = 1
EXEC_THROTTLE_LIMIT = 10
EXEC_THROTTLE_TTL = 60

def normalize_code_path(path: str) -> str:
    """Normalize a draft-relative file path, rejecting paths that leave the draft folder"""
    normalized = posixpath.normpath(path)
    if posixpath.isabs(normalized) or normalized in ('.', '..') or normalized.startswith('../'):
        raise InvalidFilePath(f'file path "{path}" is outside the function folder')
    return normalized

class ServerlessFunctionService:
    def __init__(self,
                 repository: FunctionRepositoryInterface,
                 storage: ArtifactStoreInterface,
                 driver: ServerlessDriverInterface,
                 throttler: ThrottlerInterface,
                 template_provider: Optional[TemplateProviderInterface] = None,
                 layer_version: Optional[int] = LAST_LAYER_VERSION,
                 exec_throttle_limit: int = EXEC_THROTTLE_LIMIT,
                 exec_throttle_ttl: int = EXEC_THROTTLE_TTL):
        """Initialize function service resources
        Args:
            repository: stores function metadata records
            storage: the artifact store holding function sources
            driver: the execution backend chosen at process start
            throttler: the rate limiter guarding executions
            template_provider: supplies the starter files of new functions
            layer_version: the dependency layer new functions are pinned to, None for no layer
            exec_throttle_limit: executions allowed per tenant within exec_throttle_ttl
            exec_throttle_ttl: the throttling window, in seconds
        """
        self.repository = repository
        self.storage = storage
        self.driver = driver
        self.throttler = throttler
        self.template_provider = template_provider or StarterTemplateProvider()
        self.layer_version = layer_version
        self.exec_throttle_limit = exec_throttle_limit
        self.exec_throttle_ttl = exec_throttle_ttl
        self.version_manager = VersionManager(storage, driver, repository)

    def find_one(self, function_id: str, tenant_id: str) -> ServerlessFunction:
        function = self.repository.find_one(tenant_id, function_id)
        if function is None:
            raise FunctionNotFound('Function does not exist')
        return function

    def find_many(self, tenant_id: str) -> List[ServerlessFunction]:
        return self.repository.find_many(tenant_id)

    def _build_draft(self, function: ServerlessFunction) -> ServerlessFunction:
        """Rebuild the draft and flag the record READY; a failing build leaves it NOT_READY"""
        self.driver.build(tenant_id=function.tenant_id,
                          function_id=function.id,
                          version=DRAFT_VERSION,
                          layer_version=function.layer_version,
                          runtime=function.runtime)
        return self.repository.update(function.tenant_id, function.id, sync_status=SyncStatus.READY)

    def create(self,
               name: str,
               description: Optional[str],
               tenant_id: str) -> ServerlessFunction:
        """Create a function from the starter template and build its draft
        Args:
            name: the display name
            description: an optional description
            tenant_id: the workspace owning the function
        Return:
            the created function record
        """
        function = self.repository.create(ServerlessFunction(name=name,
                                                             description=description,
                                                             tenant_id=tenant_id,
                                                             layer_version=self.layer_version,
                                                             sync_status=SyncStatus.NOT_READY))

        draft_folder = get_function_folder(tenant_id, function.id, DRAFT_VERSION)
        for file in self.template_provider.get_files():
            self.storage.write(file.content, file.name, posixpath.join(draft_folder, file.path))

        function = self._build_draft(function)
        logger.info(f'[SUCCESS] created function "{function.id}"')
        return function

    def update(self,
               function_id: str,
               tenant_id: str,
               code: Dict[str, Union[str, bytes]],
               name: Optional[str] = None,
               description: Optional[str] = None) -> ServerlessFunction:
        """Overwrite draft files and rebuild the draft
        Args:
            function_id: the function id
            tenant_id: the workspace owning the function
            code: {relative path: content}, paths may contain subdirectories
            name: a new display name, unchanged when None
            description: a new description, unchanged when None
        Return:
            the refreshed function record
        """
        function = self.find_one(function_id, tenant_id)
        code = {normalize_code_path(path): content for path, content in code.items()}

        fields = {'sync_status': SyncStatus.NOT_READY}
        if name is not None:
            fields['name'] = name
        if description is not None:
            fields['description'] = description
        function = self.repository.update(tenant_id, function_id, **fields)

        draft_folder = get_function_folder(tenant_id, function_id, DRAFT_VERSION)
        for path, content in code.items():
            self.storage.write(content,
                               posixpath.basename(path),
                               posixpath.join(draft_folder, posixpath.dirname(path)))

        function = self._build_draft(function)
        logger.info(f'[SUCCESS] updated function "{function_id}"')
        return function

    def publish(self, function_id: str, tenant_id: str) -> ServerlessFunction:
        return self.version_manager.publish(self.find_one(function_id, tenant_id))

    def _throttle_execution(self, tenant_id: str) -> None:
        try:
            self.throttler.throttle(f'{tenant_id}-function-execution',
                                    self.exec_throttle_limit,
                                    self.exec_throttle_ttl)
        except ThrottlerException as e:
            logger.warning(f'[WARNING] execution rate limit reached for tenant "{tenant_id}"')
            raise ExecutionRateLimitExceeded('Function execution rate limit exceeded') from e

    def execute(self,
                function_id: str,
                tenant_id: str,
                payload: Any,
                version: str = 'latest') -> ExecutionResult:
        """Execute a version of a function
        Args:
            function_id: the function id
            tenant_id: the workspace owning the function
            payload: the event handed to the handler
            version: a version label; "latest" resolves to the last published version or the draft
        Return:
            the execution result
        """
        self._throttle_execution(tenant_id)
        function = self.find_one(function_id, tenant_id)
        return self.driver.execute(function_id=function.id,
                                   version=self.version_manager.resolve_version(function, version),
                                   payload=payload)

    def delete(self, function_id: str, tenant_id: str) -> ServerlessFunction:
        """Delete the record, then tear down deployments and stored versions

        The record deletion is final: cleanup errors are collected and raised as
        FunctionCleanupFailure once every cleanup step was attempted.
        Args:
            function_id: the function id
            tenant_id: the workspace owning the function
        Return:
            the deleted function record
        """
        function = self.find_one(function_id, tenant_id)
        self.repository.delete(tenant_id, function_id)
        logger.info(f'[SUCCESS] deleted record of function "{function_id}"')

        errors = []
        try:
            self.driver.delete(function_id)
        except Exception as e:
            logger.error(f'[FAIL] cannot tear down deployments of "{function_id}" ({e})')
            errors.append(e)

        try:
            self.storage.delete(get_function_folder(tenant_id, function_id))
        except Exception as e:
            logger.error(f'[FAIL] cannot delete stored versions of "{function_id}" ({e})')
            errors.append(e)

        if errors:
            raise FunctionCleanupFailure(f'function "{function_id}" was deleted but its cleanup failed',
                                         function=function,
                                         errors=errors)
        return function

    def get_source_code(self,
                        function_id: str,
                        tenant_id: str,
                        version: str) -> Optional[Dict[str, str]]:
        return self.version_manager.get_source_code(self.find_one(function_id, tenant_id), version)

    def get_available_packages(self) -> Dict[str, str]:
        if not self.layer_version:
            return {}
        return get_layer_dependencies(self.layer_version)
