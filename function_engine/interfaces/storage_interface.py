"""
Defines the interface of the artifact store holding function sources.

Artifact Store:
1. Download Folder
2. Write File
3. Copy Folder
4. Delete Folder
5. Read File
"""
from typing import Protocol, Union, BinaryIO

class ArtifactStoreInterface(Protocol):
    def download(self, folder_path: str, local_folder: str) -> str:
        raise NotImplementedError

    def write(self,
              content: Union[str, bytes],
              name: str,
              folder: str) -> None:
        raise NotImplementedError

    def copy(self, source_folder: str, destination_folder: str) -> None:
        raise NotImplementedError

    def delete(self, folder_path: str) -> None:
        raise NotImplementedError

    def read(self, folder_path: str, filename: str) -> BinaryIO:
        raise NotImplementedError
