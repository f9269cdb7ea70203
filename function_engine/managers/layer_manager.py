"""
Implements the shared dependency layer cache.

A layer version is built once per backend and reused by every function pinned to it:
1. Local: a directory under the scratch root, probed with os.access
2. Lambda: a layer version tagged with the layer number in its description
"""
from function_engine.utils.logger import logger
from function_engine.utils.folders import COMMON_LAYER_NAME, LAYER_PACKAGES_FOLDER, get_layer_scratch_folder
from function_engine.utils.lockfile import get_installed_versions
from function_engine.interfaces.layer_interface import LayerInterface
from function_engine.managers.build_manager import generate_deployment_package
from function_engine.models.function import Runtime
from function_engine.exceptions import BuildInfrastructureFailure
from botocore.client import BaseClient
from botocore.exceptions import ClientError
from typing import Callable, Dict, Optional
import os
import shutil
import subprocess
import sys
import tempfile

LAYERS_FOLDER = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'layers')
MANIFEST_FILE_NAME = 'requirements.in'
LOCK_FILE_NAME = 'requirements.txt'

def get_layer_definition_folder(version: int) -> str:
    return os.path.join(LAYERS_FOLDER, f'v{version}')

def get_layer_dependencies(version: int) -> Dict[str, str]:
    """Read the manifest/lock pair of a layer version
    Args:
        version: the layer version
    Return:
        {declared dependency: locked version}
    """
    folder = get_layer_definition_folder(version)
    with open(os.path.join(folder, MANIFEST_FILE_NAME)) as f:
        manifest = f.read()
    with open(os.path.join(folder, LOCK_FILE_NAME)) as f:
        lock = f.read()
    return get_installed_versions(manifest, lock)

def install_layer_dependencies(version: int, destination: str) -> None:
    """Install the locked dependencies of a layer version into destination/python
    Args:
        version: the layer version
        destination: the directory receiving the layer
    """
    definition_folder = get_layer_definition_folder(version)
    lock_path = os.path.join(definition_folder, LOCK_FILE_NAME)
    if not os.path.isfile(lock_path):
        raise BuildInfrastructureFailure(f'layer version {version} is not defined')

    os.makedirs(destination, exist_ok=True)
    shutil.copy(os.path.join(definition_folder, MANIFEST_FILE_NAME), destination)
    shutil.copy(lock_path, destination)

    command = [sys.executable, '-m', 'pip', 'install', '--quiet', '--no-input',
               '--target', os.path.join(destination, LAYER_PACKAGES_FOLDER),
               '-r', os.path.join(destination, LOCK_FILE_NAME)]
    try:
        subprocess.run(command, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        logger.error(f'[FAIL] cannot install layer {version} dependencies ({e.stderr.strip()})')
        raise BuildInfrastructureFailure(f'cannot install layer {version} dependencies') from e
    logger.info(f'[SUCCESS] installed layer {version} dependencies in "{destination}"')

class LocalLayerManager(LayerInterface):
    def __init__(self,
                 scratch_root: str,
                 installer: Callable[[int, str], None] = install_layer_dependencies):
        """Initialize local layer resources
        Args:
            scratch_root: the directory holding local deployments and layers
            installer: builds a layer version into a directory, injectable for unit testing
        """
        self.scratch_root = scratch_root
        self.installer = installer

    def get_layer_folder(self, version: int) -> str:
        return get_layer_scratch_folder(self.scratch_root, version)

    def create_layer_if_not_exists(self, version: int) -> str:
        """Build the layer directory unless it already exists
        Args:
            version: the layer version
        Return:
            the layer directory
        """
        layer_folder = self.get_layer_folder(version)
        if os.access(layer_folder, os.F_OK):
            logger.info(f'[SKIP] layer {version} already exists in "{layer_folder}"')
            return layer_folder

        # Install next to the final folder so a failed install leaves nothing behind
        parent_folder = os.path.dirname(layer_folder)
        os.makedirs(parent_folder, exist_ok=True)
        staging_folder = tempfile.mkdtemp(prefix=f'.{version}-', dir=parent_folder)
        try:
            self.installer(version, staging_folder)
            os.replace(staging_folder, layer_folder)
        except OSError as e:
            if not os.access(layer_folder, os.F_OK):
                logger.error(f'[FAIL] cannot create layer {version} in "{layer_folder}" ({e})')
                raise BuildInfrastructureFailure(f'cannot create layer {version}') from e
            logger.info(f'[SKIP] layer {version} was created concurrently in "{layer_folder}"')
        finally:
            shutil.rmtree(staging_folder, ignore_errors=True)

        logger.info(f'[SUCCESS] created layer {version} in "{layer_folder}"')
        return layer_folder

class LambdaLayerManager(LayerInterface):
    def __init__(self,
                 lambda_client: BaseClient,
                 runtime: Runtime = Runtime.PYTHON312,
                 installer: Callable[[int, str], None] = install_layer_dependencies,
                 layer_name: str = COMMON_LAYER_NAME):
        """Initialize Lambda layer resources
        Args:
            lambda_client: the Lambda client, used to make calls to AWS
            runtime: the runtime the published layers are compatible with
            installer: builds a layer version into a directory, injectable for unit testing
            layer_name: the name shared by every version of the common layer
        """
        self.client = lambda_client
        self.runtime = runtime
        self.installer = installer
        self.layer_name = layer_name

    def _get_last_layer_version(self) -> Optional[Dict[str, str]]:
        """Get the most recent version of the common layer
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/list_layer_versions.html
        Return:
            the layer version description, or None if no version was ever published
        """
        try:
            response = self.client.list_layer_versions(LayerName=self.layer_name, MaxItems=1)
        except ClientError as e:
            if e.response['Error']['Code'] == 'ResourceNotFoundException':
                return None
            logger.error(f'[FAIL] cannot list versions of layer "{self.layer_name}" ({e})')
            raise BuildInfrastructureFailure(f'cannot list versions of layer "{self.layer_name}"') from e

        layer_versions = response.get('LayerVersions', [])
        return layer_versions[0] if layer_versions else None

    def create_layer_if_not_exists(self, version: int) -> str:
        """Publish the layer unless its most recent version is already tagged with this version
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/lambda/client/publish_layer_version.html
        Args:
            version: the layer version
        Return:
            the layer version ARN
        """
        last_layer = self._get_last_layer_version()
        if last_layer and last_layer.get('Description') == str(version) and last_layer.get('LayerVersionArn'):
            logger.info(f'[SKIP] layer {version} already published')
            return last_layer['LayerVersionArn']

        with tempfile.TemporaryDirectory() as temp_dir:
            layer_folder = os.path.join(temp_dir, 'layer')
            self.installer(version, layer_folder)
            zip_bytes = generate_deployment_package(layer_folder)

        try:
            response = self.client.publish_layer_version(LayerName=self.layer_name,
                                                         Content={'ZipFile': zip_bytes},
                                                         CompatibleRuntimes=[self.runtime.value],
                                                         Description=str(version))
        except ClientError as e:
            logger.error(f'[FAIL] cannot publish layer {version} ({e})')
            raise BuildInfrastructureFailure(f'cannot publish layer {version}') from e

        layer_arn = response.get('LayerVersionArn')
        if not layer_arn:
            raise BuildInfrastructureFailure(f'published layer {version} has no ARN')

        logger.info(f'[SUCCESS] published layer {version}')
        return layer_arn
