"""
Engine configuration, read from FUNCTION_ENGINE_* environment variables.

An optional .env file is loaded first with python-dotenv; variables already set in
the process environment win.
"""
from function_engine.exceptions import ConfigurationError
from function_engine.managers.function_manager import EXEC_THROTTLE_LIMIT, EXEC_THROTTLE_TTL, LAST_LAYER_VERSION
from function_engine.managers.lambda_manager import FUNCTION_TIMEOUT, MAX_WAIT_TIME
from dataclasses import dataclass, field
from dotenv import load_dotenv
from typing import Mapping, Optional
import os
import tempfile

DRIVER_TYPES = ('local', 'lambda')
STORAGE_TYPES = ('local', 's3')
ENV_PREFIX = 'FUNCTION_ENGINE_'

def _default_scratch_root() -> str:
    return os.path.join(tempfile.gettempdir(), 'function-engine')

@dataclass
class EngineConfig:
    driver: str = 'local'
    storage: str = 'local'
    storage_root: str = './.function-engine-storage'
    bucket_name: Optional[str] = None
    aws_region: str = 'us-east-1'
    lambda_role_arn: Optional[str] = None
    lambda_timeout: int = FUNCTION_TIMEOUT
    max_wait_time: int = MAX_WAIT_TIME
    scratch_root: str = field(default_factory=_default_scratch_root)
    execution_timeout: Optional[float] = None
    exec_throttle_limit: int = EXEC_THROTTLE_LIMIT
    exec_throttle_ttl: int = EXEC_THROTTLE_TTL
    layer_version: Optional[int] = LAST_LAYER_VERSION

    @classmethod
    def from_env(cls,
                 env_file: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None) -> 'EngineConfig':
        """Build the configuration from the environment
        Args:
            env_file: a dotenv file to load first, searched from the working directory when None
            environ: the variables to read, os.environ when None
        Return:
            the validated configuration
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        def get(name: str, default=None):
            value = environ.get(ENV_PREFIX + name)
            return default if value in (None, '') else value

        defaults = cls()
        try:
            layer_version = get('LAYER_VERSION')
            execution_timeout = get('EXECUTION_TIMEOUT')
            config = cls(driver=get('DRIVER', defaults.driver).lower(),
                         storage=get('STORAGE', defaults.storage).lower(),
                         storage_root=get('STORAGE_ROOT', defaults.storage_root),
                         bucket_name=get('BUCKET_NAME'),
                         aws_region=get('AWS_REGION', defaults.aws_region),
                         lambda_role_arn=get('LAMBDA_ROLE_ARN'),
                         lambda_timeout=int(get('LAMBDA_TIMEOUT', defaults.lambda_timeout)),
                         max_wait_time=int(get('MAX_WAIT_TIME', defaults.max_wait_time)),
                         scratch_root=get('SCRATCH_ROOT', defaults.scratch_root),
                         execution_timeout=float(execution_timeout) if execution_timeout else None,
                         exec_throttle_limit=int(get('EXEC_THROTTLE_LIMIT', defaults.exec_throttle_limit)),
                         exec_throttle_ttl=int(get('EXEC_THROTTLE_TTL', defaults.exec_throttle_ttl)),
                         layer_version=int(layer_version) if layer_version else defaults.layer_version)
        except ValueError as e:
            raise ConfigurationError(f'invalid numeric setting ({e})') from e

        config.validate()
        return config

    def validate(self) -> None:
        if self.driver not in DRIVER_TYPES:
            raise ConfigurationError(f'unknown driver "{self.driver}", expected one of {DRIVER_TYPES}')
        if self.storage not in STORAGE_TYPES:
            raise ConfigurationError(f'unknown storage "{self.storage}", expected one of {STORAGE_TYPES}')
        if self.driver == 'lambda' and not self.lambda_role_arn:
            raise ConfigurationError('the lambda driver requires FUNCTION_ENGINE_LAMBDA_ROLE_ARN')
        if self.storage == 's3' and not self.bucket_name:
            raise ConfigurationError('s3 storage requires FUNCTION_ENGINE_BUCKET_NAME')
        if self.max_wait_time <= 0:
            raise ConfigurationError('FUNCTION_ENGINE_MAX_WAIT_TIME must be positive')
