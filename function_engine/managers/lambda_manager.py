"""
Implements the managed-cloud driver on top of AWS Lambda.

One Lambda function per engine function:
1. "draft" is the unpublished $LATEST code
2. every numbered version is an immutable Lambda version with the same number
"""
from function_engine.utils.logger import logger
from function_engine.utils.folders import DRAFT_VERSION, check_concrete_version, get_function_folder
from function_engine.interfaces.driver_interface import ServerlessDriverInterface
from function_engine.interfaces.layer_interface import LayerInterface
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.managers.build_manager import FunctionBuilder
from function_engine.models.execution_result import ExecutionResult, ExecutionError, ExecutionStatus
from function_engine.models.function import Runtime
from function_engine.exceptions import (
    BuildInfrastructureFailure,
    ExecutionInfrastructureFailure,
    FunctionEngineException,
    FunctionVersionNotFound,
)
from botocore.client import BaseClient
from botocore.exceptions import ClientError, WaiterError
from typing import Any, Optional, Type
import json
import time

MAX_WAIT_TIME = 20
HANDLER = 'src.index.handler'
FUNCTION_TIMEOUT = 900

class LambdaDriver(ServerlessDriverInterface):
    def __init__(self,
                 lambda_client: BaseClient,
                 storage: ArtifactStoreInterface,
                 role_arn: str,
                 scratch_root: str,
                 layer_manager: Optional[LayerInterface] = None,
                 timeout: int = FUNCTION_TIMEOUT,
                 max_wait_time: int = MAX_WAIT_TIME):
        """Initialize Lambda driver resources
        Args:
            lambda_client: the Lambda client, used to make calls to AWS
            storage: the artifact store holding function sources
            role_arn: the Amazon Resource Name of the IAM role the functions assume
            scratch_root: the directory receiving build outputs
            layer_manager: publishes the shared dependency layer, required when a layer version is requested
            timeout: how long a function may run before Lambda stops it, in seconds
            max_wait_time: how long to wait for a function update to settle, in seconds
        """
        self.client = lambda_client
        self.storage = storage
        self.role_arn = role_arn
        self.builder = FunctionBuilder(storage, scratch_root)
        self.layer_manager = layer_manager
        self.timeout = timeout
        self.max_wait_time = max_wait_time

    def _wait_function_updates(self,
                               function_id: str,
                               error_class: Type[FunctionEngineException]) -> None:
        """Wait until the last update of a function is applied
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/waiter/FunctionUpdatedV2.html
        Args:
            function_id: the Lambda function name
            error_class: the engine error raised when the function does not settle in time
        """
        waiter = self.client.get_waiter('function_updated_v2')
        try:
            waiter.wait(FunctionName=function_id,
                        WaiterConfig={'Delay': 1, 'MaxAttempts': self.max_wait_time})
        except WaiterError as e:
            last_response = e.last_response or {}
            if last_response.get('Error', {}).get('Code') == 'ResourceNotFoundException':
                raise FunctionVersionNotFound(f'function "{function_id}" is not deployed') from e
            logger.error(f'[FAIL] function "{function_id}" did not settle within {self.max_wait_time}s ({e})')
            raise error_class(f'function "{function_id}" did not settle within {self.max_wait_time}s') from e

    def _check_function_exists(self, function_id: str) -> bool:
        """Check if the Lambda function exists
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/get_function.html
        Args:
            function_id: the Lambda function name
        Return:
            True/False if the function exists/doesn't exist
        """
        try:
            self.client.get_function(FunctionName=function_id)
            return True
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceNotFoundException':
                return False
            raise

    def delete(self, function_id: str) -> None:
        """Deletes the Lambda function and all of its versions; a missing function is skipped
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/delete_function.html
        Args:
            function_id: the function to delete
        """
        try:
            if not self._check_function_exists(function_id):
                logger.info(f'[SKIP] Lambda function "{function_id}" does not exist')
                return
            self.client.delete_function(FunctionName=function_id)
        except ClientError as e:
            logger.error(f'[FAIL] cannot delete Lambda function "{function_id}" ({e})')
            raise BuildInfrastructureFailure(f'cannot delete Lambda function "{function_id}"') from e
        logger.info(f'[SUCCESS] deleted Lambda function "{function_id}"')

    def build(self,
              tenant_id: str,
              function_id: str,
              version: str,
              layer_version: Optional[int],
              runtime: Runtime) -> None:
        """Deploy the stored sources of a version as the function's $LATEST code
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/create_function.html
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/update_function_code.html
        Args:
            tenant_id: the workspace owning the function
            function_id: the function id, used as the Lambda function name
            version: the concrete version label to deploy
            layer_version: the shared dependency layer to attach, or None
            runtime: the Lambda runtime
        """
        check_concrete_version(version)

        artifact = self.builder.build(tenant_id, function_id, version)
        zip_bytes = self.builder.package(artifact)
        environment = {'Variables': artifact.env_variables}

        try:
            if not self._check_function_exists(function_id):
                layers = []
                if layer_version:
                    if self.layer_manager is None:
                        raise BuildInfrastructureFailure('a layer version was requested but no layer manager is configured')
                    layers.append(self.layer_manager.create_layer_if_not_exists(layer_version))

                self.client.create_function(FunctionName=function_id,
                                            Runtime=runtime.value,
                                            Role=self.role_arn,
                                            Handler=HANDLER,
                                            Code={'ZipFile': zip_bytes},
                                            Layers=layers,
                                            Environment=environment,
                                            Description='Lambda function to run user script',
                                            Timeout=self.timeout)
                logger.info(f'[SUCCESS] created Lambda function "{function_id}"')
            else:
                self.client.update_function_code(FunctionName=function_id, ZipFile=zip_bytes)
                self._wait_function_updates(function_id, BuildInfrastructureFailure)
                self.client.update_function_configuration(FunctionName=function_id,
                                                          Environment=environment)
                logger.info(f'[SUCCESS] updated Lambda function "{function_id}"')
        except ClientError as e:
            logger.error(f'[FAIL] cannot deploy Lambda function "{function_id}" ({e})')
            raise BuildInfrastructureFailure(f'cannot deploy Lambda function "{function_id}"') from e

        self._wait_function_updates(function_id, BuildInfrastructureFailure)

    def publish(self,
                tenant_id: str,
                function_id: str,
                current_version: Optional[str],
                layer_version: Optional[int],
                runtime: Runtime) -> str:
        """Deploy the draft, cut a new Lambda version and store its sources
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/publish_version.html
        Args:
            tenant_id: the workspace owning the function
            function_id: the function id
            current_version: the latest published label, unused since Lambda numbers versions itself
            layer_version: the shared dependency layer to attach, or None
            runtime: the Lambda runtime
        Return:
            the new version label
        """
        self.build(tenant_id, function_id, DRAFT_VERSION, layer_version, runtime)

        try:
            response = self.client.publish_version(FunctionName=function_id)
        except ClientError as e:
            logger.error(f'[FAIL] cannot publish new version of "{function_id}" ({e})')
            raise BuildInfrastructureFailure(f'cannot publish new version of "{function_id}"') from e

        new_version = response.get('Version')
        if not new_version:
            raise BuildInfrastructureFailure('new published version is undefined')

        self.storage.copy(get_function_folder(tenant_id, function_id, DRAFT_VERSION),
                          get_function_folder(tenant_id, function_id, new_version))

        logger.info(f'[SUCCESS] published version "{new_version}" of "{function_id}"')
        return new_version

    def execute(self,
                function_id: str,
                version: str,
                payload: Any) -> ExecutionResult:
        """Invokes a version of the Lambda function
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/invoke.html
        Args:
            function_id: the function id
            version: the concrete version label
            payload: the event handed to the handler (JSON serializable)
        Return:
            the execution result; user-code errors are reported with status ERROR
        """
        check_concrete_version(version)

        function_name = function_id if version == DRAFT_VERSION else f'{function_id}:{version}'

        self._wait_function_updates(function_id, ExecutionInfrastructureFailure)

        start_time = time.perf_counter()
        try:
            response = self.client.invoke(FunctionName=function_name,
                                          Payload=json.dumps(payload).encode('utf-8'))
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceNotFoundException':
                raise FunctionVersionNotFound(f"Function Version '{version}' does not exist") from e
            logger.error(f'[FAIL] cannot invoke "{function_name}" ({e})')
            raise ExecutionInfrastructureFailure(f'cannot invoke "{function_name}"') from e

        raw_payload = response['Payload'].read() if response.get('Payload') else b''
        duration = int((time.perf_counter() - start_time) * 1000)

        try:
            parsed = json.loads(raw_payload) if raw_payload.strip() else None
        except ValueError as e:
            logger.error(f'[FAIL] cannot decode payload returned by "{function_name}" ({e})')
            raise ExecutionInfrastructureFailure(f'cannot decode payload returned by "{function_name}"') from e

        if response.get('FunctionError'):
            logger.info(f'[INFO] "{function_name}" raised an error')
            return ExecutionResult(data=None,
                                   duration=duration,
                                   status=ExecutionStatus.ERROR,
                                   error=ExecutionError.from_payload(parsed))

        logger.info(f'[SUCCESS] invoked "{function_name}"')
        return ExecutionResult(data=parsed,
                               duration=duration,
                               status=ExecutionStatus.SUCCESS)
