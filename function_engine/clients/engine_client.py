"""
Wires the engine from its configuration. The driver is chosen here, once.
"""
from function_engine.config import EngineConfig
from function_engine.interfaces.driver_interface import ServerlessDriverInterface
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.managers.function_manager import ServerlessFunctionService
from function_engine.managers.lambda_manager import LambdaDriver
from function_engine.managers.layer_manager import LambdaLayerManager, LocalLayerManager
from function_engine.managers.local_manager import LocalDriver
from function_engine.managers.local_storage_manager import LocalArtifactStore
from function_engine.managers.repository_manager import InMemoryFunctionRepository
from function_engine.managers.s3_manager import S3ArtifactStore
from function_engine.managers.throttler_manager import InMemoryThrottler
from function_engine.interfaces.repository_interface import FunctionRepositoryInterface
from function_engine.interfaces.throttler_interface import ThrottlerInterface
from typing import Optional
import boto3

def create_storage(config: EngineConfig) -> ArtifactStoreInterface:
    if config.storage == 's3':
        return S3ArtifactStore(boto3.client('s3', region_name=config.aws_region), config.bucket_name)
    return LocalArtifactStore(config.storage_root)

def create_driver(config: EngineConfig, storage: ArtifactStoreInterface) -> ServerlessDriverInterface:
    if config.driver == 'lambda':
        lambda_client = boto3.client('lambda', region_name=config.aws_region)
        return LambdaDriver(lambda_client=lambda_client,
                            storage=storage,
                            role_arn=config.lambda_role_arn,
                            scratch_root=config.scratch_root,
                            layer_manager=LambdaLayerManager(lambda_client),
                            timeout=config.lambda_timeout,
                            max_wait_time=config.max_wait_time)
    return LocalDriver(storage=storage,
                       scratch_root=config.scratch_root,
                       layer_manager=LocalLayerManager(config.scratch_root),
                       execution_timeout=config.execution_timeout)

def create_engine(config: Optional[EngineConfig] = None,
                  repository: Optional[FunctionRepositoryInterface] = None,
                  throttler: Optional[ThrottlerInterface] = None) -> ServerlessFunctionService:
    """Build the function service
    Args:
        config: the engine configuration, read from the environment when None
        repository: the metadata repository, in-memory when None
        throttler: the rate limiter, in-memory when None
    Return:
        the function service
    """
    config = config or EngineConfig.from_env()
    config.validate()
    storage = create_storage(config)
    return ServerlessFunctionService(repository=repository or InMemoryFunctionRepository(),
                                     storage=storage,
                                     driver=create_driver(config, storage),
                                     throttler=throttler or InMemoryThrottler(),
                                     layer_version=config.layer_version,
                                     exec_throttle_limit=config.exec_throttle_limit,
                                     exec_throttle_ttl=config.exec_throttle_ttl)
