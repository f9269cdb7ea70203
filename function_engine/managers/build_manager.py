"""
Implements the build pipeline shared by every driver.

Build:
1. Download the stored version folder into the scratch area
2. Compile the sources into the build output folder
3. Read the environment file
4. Package the build output as a ZIP deployment package
"""
from function_engine.utils.logger import logger
from function_engine.utils.folders import (
    ENV_FILE_NAME,
    OUTDIR_FOLDER,
    SOURCE_FOLDER,
    check_concrete_version,
    get_function_folder,
    get_scratch_folder,
)
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.exceptions import ArtifactNotFound, BuildInfrastructureFailure
from dataclasses import dataclass, field
from dotenv import dotenv_values
from typing import Dict
import io
import os
import py_compile
import shutil
import tempfile
import zipfile

def generate_deployment_package(source_path: str) -> bytes:
    """Creates a ZIP file from either a file or directory
    Args:
        source_path: the local file or directory to ZIP
    Return:
        the zipped file or directory as bytes
    """
    zip_buffer = io.BytesIO()

    with zipfile.ZipFile(zip_buffer, 'w', zipfile.ZIP_DEFLATED) as zipf:
        if os.path.isdir(source_path):
            for root, _, files in os.walk(source_path):
                for file in files:
                    file_path = os.path.join(root, file)
                    arcname = os.path.relpath(file_path, start=source_path)
                    zipf.write(file_path, arcname)
        else:
            zipf.write(source_path, arcname=os.path.basename(source_path))

    zip_buffer.seek(0)
    return zip_buffer.read()

def parse_env_file(env_path: str) -> Dict[str, str]:
    """Parse a dotenv file into environment variables; a missing file means no variables"""
    if not os.path.isfile(env_path):
        return {}
    return {key: value or '' for key, value in dotenv_values(env_path).items()}

@dataclass
class BuildArtifact:
    folder: str
    output_folder: str
    env_variables: Dict[str, str] = field(default_factory=dict)

class FunctionBuilder:
    def __init__(self, storage: ArtifactStoreInterface, scratch_root: str):
        """Initialize build resources
        Args:
            storage: the artifact store holding function sources
            scratch_root: the directory receiving working copies and build outputs
        """
        self.storage = storage
        self.scratch_root = scratch_root

    def get_build_folder(self, function_id: str, version: str) -> str:
        return get_scratch_folder(self.scratch_root, function_id, version)

    def materialize(self,
                    tenant_id: str,
                    function_id: str,
                    version: str,
                    build_folder: str) -> str:
        """Download the stored sources of a version into a working copy
        Args:
            tenant_id: the workspace owning the function
            function_id: the function id
            version: the concrete version label
            build_folder: the working copy directory
        Return:
            the working copy directory
        """
        folder_path = get_function_folder(tenant_id, function_id, version)
        try:
            self.storage.download(folder_path, build_folder)
        except ArtifactNotFound as e:
            logger.error(f'[FAIL] no stored sources for "{function_id}" version "{version}"')
            raise BuildInfrastructureFailure(f'no stored sources for version "{version}"') from e
        return build_folder

    def compile(self, build_folder: str) -> str:
        """Copy the sources into the build output and byte-compile them to catch syntax errors
        Args:
            build_folder: the working copy directory
        Return:
            the build output directory
        """
        source_folder = os.path.join(build_folder, SOURCE_FOLDER)
        output_folder = os.path.join(build_folder, OUTDIR_FOLDER)
        if not os.path.isdir(source_folder):
            raise BuildInfrastructureFailure(f'missing "{SOURCE_FOLDER}" folder in "{build_folder}"')

        shutil.rmtree(output_folder, ignore_errors=True)
        shutil.copytree(source_folder, os.path.join(output_folder, SOURCE_FOLDER))

        for root, _, files in os.walk(output_folder):
            for file in files:
                if not file.endswith('.py'):
                    continue
                try:
                    py_compile.compile(os.path.join(root, file), doraise=True)
                except py_compile.PyCompileError as e:
                    logger.error(f'[FAIL] cannot compile "{file}" ({e.msg.strip()})')
                    raise BuildInfrastructureFailure(f'cannot compile "{file}": {e.msg.strip()}') from e

        logger.info(f'[SUCCESS] compiled sources into "{output_folder}"')
        return output_folder

    def build(self, tenant_id: str, function_id: str, version: str) -> BuildArtifact:
        """Build a version in a staging folder, then swap it in place of the previous build
        Args:
            tenant_id: the workspace owning the function
            function_id: the function id
            version: the concrete version label
        Return:
            the build artifact; a failed build keeps the previous one untouched
        """
        check_concrete_version(version)
        build_folder = self.get_build_folder(function_id, version)
        parent_folder = os.path.dirname(build_folder)
        os.makedirs(parent_folder, exist_ok=True)
        staging_folder = tempfile.mkdtemp(prefix=f'.{version}-', dir=parent_folder)
        try:
            self.materialize(tenant_id, function_id, version, staging_folder)
            self.compile(staging_folder)
            shutil.rmtree(build_folder, ignore_errors=True)
            os.replace(staging_folder, build_folder)
        except OSError as e:
            logger.error(f'[FAIL] cannot replace the build of "{function_id}" version "{version}" ({e})')
            raise BuildInfrastructureFailure(f'cannot replace the build of version "{version}"') from e
        finally:
            shutil.rmtree(staging_folder, ignore_errors=True)

        return BuildArtifact(folder=build_folder,
                             output_folder=os.path.join(build_folder, OUTDIR_FOLDER),
                             env_variables=parse_env_file(os.path.join(build_folder, ENV_FILE_NAME)))

    def package(self, artifact: BuildArtifact) -> bytes:
        return generate_deployment_package(artifact.output_folder)
