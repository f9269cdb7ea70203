"""
Implements the artifact store on the local filesystem.
"""
from function_engine.utils.logger import logger
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.exceptions import ArtifactNotFound, BuildInfrastructureFailure, InvalidFilePath
from typing import Union, BinaryIO
import io
import os
import shutil

class LocalArtifactStore(ArtifactStoreInterface):
    def __init__(self, storage_root: str):
        """Initialize local artifact store resources
        Args:
            storage_root: the directory every folder path is resolved against
        """
        self.storage_root = storage_root

    def _resolve(self, folder_path: str) -> str:
        """Map a folder path onto the storage root, refusing paths that leave it"""
        root = os.path.abspath(self.storage_root)
        path = os.path.abspath(os.path.join(root, *[part for part in folder_path.split('/') if part]))
        if os.path.commonpath([root, path]) != root:
            raise InvalidFilePath(f'path "{folder_path}" is outside the storage root')
        return path

    def download(self, folder_path: str, local_folder: str) -> str:
        source = self._resolve(folder_path)
        if not os.path.isdir(source):
            raise ArtifactNotFound(f'folder "{folder_path}" does not exist')
        try:
            shutil.copytree(source, local_folder, dirs_exist_ok=True)
        except OSError as e:
            logger.error(f'[FAIL] cannot download folder "{folder_path}" ({e})')
            raise BuildInfrastructureFailure(f'cannot download folder "{folder_path}"') from e
        logger.info(f'[SUCCESS] downloaded folder "{folder_path}" to "{local_folder}"')
        return local_folder

    def write(self,
              content: Union[str, bytes],
              name: str,
              folder: str) -> None:
        if isinstance(content, str):
            content = content.encode('utf-8')
        destination = self._resolve(folder)
        try:
            os.makedirs(destination, exist_ok=True)
            with open(os.path.join(destination, name), 'wb') as f:
                f.write(content)
        except OSError as e:
            logger.error(f'[FAIL] cannot write file "{name}" in "{folder}" ({e})')
            raise BuildInfrastructureFailure(f'cannot write file "{name}"') from e
        logger.info(f'[SUCCESS] wrote file "{name}" in "{folder}"')

    def copy(self, source_folder: str, destination_folder: str) -> None:
        source = self._resolve(source_folder)
        if not os.path.isdir(source):
            raise ArtifactNotFound(f'folder "{source_folder}" does not exist')
        try:
            shutil.copytree(source, self._resolve(destination_folder), dirs_exist_ok=True)
        except OSError as e:
            logger.error(f'[FAIL] cannot copy folder "{source_folder}" to "{destination_folder}" ({e})')
            raise BuildInfrastructureFailure(f'cannot copy folder "{source_folder}"') from e
        logger.info(f'[SUCCESS] copied folder "{source_folder}" to "{destination_folder}"')

    def delete(self, folder_path: str) -> None:
        target = self._resolve(folder_path)
        if not os.path.exists(target):
            logger.info(f'[SKIP] folder "{folder_path}" does not exist')
            return
        try:
            shutil.rmtree(target)
        except OSError as e:
            logger.error(f'[FAIL] cannot delete folder "{folder_path}" ({e})')
            raise BuildInfrastructureFailure(f'cannot delete folder "{folder_path}"') from e
        logger.info(f'[SUCCESS] deleted folder "{folder_path}"')

    def read(self, folder_path: str, filename: str) -> BinaryIO:
        path = os.path.join(self._resolve(folder_path), filename)
        try:
            with open(path, 'rb') as f:
                return io.BytesIO(f.read())
        except FileNotFoundError as e:
            raise ArtifactNotFound(f'file "{filename}" does not exist in "{folder_path}"') from e
