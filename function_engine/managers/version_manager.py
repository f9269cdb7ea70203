"""
Implements the draft -> numbered version state machine.

DRAFT is mutable and exists as soon as the function does. Each publish freezes the
draft into PUBLISHED(n) with n = latest + 1; numbered versions are never modified
and only disappear with the whole function.
"""
from function_engine.utils.logger import logger
from function_engine.utils.folders import (
    DRAFT_VERSION,
    ENV_FILE_NAME,
    INDEX_FILE_NAME,
    LATEST_VERSION,
    SOURCE_FOLDER,
    get_function_folder,
)
from function_engine.interfaces.driver_interface import ServerlessDriverInterface
from function_engine.interfaces.repository_interface import FunctionRepositoryInterface
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.models.function import ServerlessFunction
from function_engine.exceptions import ArtifactNotFound, NoOpPublishRejected
from typing import Dict, Optional
import posixpath

class VersionManager:
    def __init__(self,
                 storage: ArtifactStoreInterface,
                 driver: ServerlessDriverInterface,
                 repository: FunctionRepositoryInterface):
        self.storage = storage
        self.driver = driver
        self.repository = repository

    @staticmethod
    def resolve_version(function: ServerlessFunction, version: str) -> str:
        """Resolve the "latest" alias to the last published version, or to the draft before any publish"""
        if version == LATEST_VERSION:
            return function.latest_version or DRAFT_VERSION
        return version

    def get_source_code(self,
                        function: ServerlessFunction,
                        version: str) -> Optional[Dict[str, str]]:
        """Read the environment file and entry module of a version
        Args:
            function: the function record
            version: a version label, "latest" allowed
        Return:
            {relative path: content}, or None when the version has no stored files
        """
        folder_path = get_function_folder(function.tenant_id,
                                          function.id,
                                          self.resolve_version(function, version))
        try:
            with self.storage.read(posixpath.join(folder_path, SOURCE_FOLDER), INDEX_FILE_NAME) as index_file:
                index_code = index_file.read().decode('utf-8')
            with self.storage.read(folder_path, ENV_FILE_NAME) as env_file:
                env_code = env_file.read().decode('utf-8')
        except ArtifactNotFound:
            return None

        return {ENV_FILE_NAME: env_code,
                posixpath.join(SOURCE_FOLDER, INDEX_FILE_NAME): index_code}

    def publish(self, function: ServerlessFunction) -> ServerlessFunction:
        """Freeze the draft into the next numbered version
        Args:
            function: the function record
        Return:
            the refreshed function record
        """
        if function.latest_version is not None:
            latest_code = self.get_source_code(function, LATEST_VERSION)
            draft_code = self.get_source_code(function, DRAFT_VERSION)
            if latest_code == draft_code:
                logger.info(f'[SKIP] draft of "{function.id}" is unchanged since version "{function.latest_version}"')
                raise NoOpPublishRejected('Cannot publish a new version when code has not changed')

        new_version = self.driver.publish(tenant_id=function.tenant_id,
                                          function_id=function.id,
                                          current_version=function.latest_version,
                                          layer_version=function.layer_version,
                                          runtime=function.runtime)

        updated = self.repository.update(function.tenant_id, function.id, latest_version=new_version)
        logger.info(f'[SUCCESS] "{function.id}" latest version is now "{new_version}"')
        return updated
