"""
Implements the artifact store on top of S3.
"""
from function_engine.utils.logger import logger
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.exceptions import ArtifactNotFound, BuildInfrastructureFailure
from botocore.client import BaseClient
from botocore.exceptions import ClientError
from typing import List, Union, BinaryIO
import io
import os
import posixpath

# delete_objects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

class S3ArtifactStore(ArtifactStoreInterface):
    def __init__(self, s3_client: BaseClient, bucket_name: str):
        """Initialize S3 artifact store resources
        Args:
            s3_client: the S3 client, injectable for unit testing
            bucket_name: the bucket holding every tenant's function folders
        """
        self._client = s3_client
        self.bucket_name = bucket_name

    @staticmethod
    def _as_prefix(folder_path: str) -> str:
        return folder_path.rstrip('/') + '/'

    def _list_keys(self, folder_path: str) -> List[str]:
        """List every object key under a folder
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/paginator/ListObjectsV2.html
        Args:
            folder_path: the virtual folder (prefix) to list
        Return:
            the object keys, across all result pages
        """
        paginator = self._client.get_paginator('list_objects_v2')
        keys = []
        for page in paginator.paginate(Bucket=self.bucket_name, Prefix=self._as_prefix(folder_path)):
            for obj in page.get('Contents', []):
                keys.append(obj['Key'])
        return keys

    def download(self, folder_path: str, local_folder: str) -> str:
        """Download every object of a folder, keeping the relative layout
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/guide/s3-example-download-file.html
        Args:
            folder_path: the virtual folder in the bucket
            local_folder: the local destination directory
        Return:
            the local destination directory
        """
        prefix = self._as_prefix(folder_path)
        try:
            keys = self._list_keys(folder_path)
            if not keys:
                raise ArtifactNotFound(f'folder "{folder_path}" does not exist in bucket "{self.bucket_name}"')

            for key in keys:
                # Folder markers have no content to download
                if key.endswith('/'):
                    continue
                destination_path = os.path.join(local_folder, *key[len(prefix):].split('/'))
                os.makedirs(os.path.dirname(destination_path), exist_ok=True)
                self._client.download_file(self.bucket_name, key, destination_path)
        except (ClientError, OSError) as e:
            logger.error(f'[FAIL] cannot download folder "{folder_path}" ({e})')
            raise BuildInfrastructureFailure(f'cannot download folder "{folder_path}"') from e

        logger.info(f'[SUCCESS] downloaded folder "{folder_path}" to "{local_folder}"')
        return local_folder

    def write(self,
              content: Union[str, bytes],
              name: str,
              folder: str) -> None:
        """Write (or overwrite) a single object
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/put_object.html
        Args:
            content: the file content
            name: the file name
            folder: the virtual folder receiving the file
        """
        if isinstance(content, str):
            content = content.encode('utf-8')
        key = posixpath.join(folder, name)
        try:
            self._client.put_object(Bucket=self.bucket_name, Key=key, Body=content)
        except ClientError as e:
            logger.error(f'[FAIL] cannot write object "{key}" ({e})')
            raise BuildInfrastructureFailure(f'cannot write object "{key}"') from e
        logger.info(f'[SUCCESS] wrote object "{key}"')

    def copy(self, source_folder: str, destination_folder: str) -> None:
        """Copy every object of a folder into another folder
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/copy_object.html
        Args:
            source_folder: the folder to copy
            destination_folder: the folder receiving the copies
        """
        source_prefix = self._as_prefix(source_folder)
        destination_prefix = self._as_prefix(destination_folder)
        try:
            keys = self._list_keys(source_folder)
            if not keys:
                raise ArtifactNotFound(f'folder "{source_folder}" does not exist in bucket "{self.bucket_name}"')

            for key in keys:
                self._client.copy_object(Bucket=self.bucket_name,
                                         CopySource={'Bucket': self.bucket_name, 'Key': key},
                                         Key=destination_prefix + key[len(source_prefix):])
        except ClientError as e:
            logger.error(f'[FAIL] cannot copy folder "{source_folder}" to "{destination_folder}" ({e})')
            raise BuildInfrastructureFailure(f'cannot copy folder "{source_folder}"') from e
        logger.info(f'[SUCCESS] copied folder "{source_folder}" to "{destination_folder}"')

    def delete(self, folder_path: str) -> None:
        """Delete every object of a folder; an empty folder is not an error
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/delete_objects.html
        Args:
            folder_path: the folder to delete
        """
        try:
            keys = self._list_keys(folder_path)
            for start in range(0, len(keys), DELETE_BATCH_SIZE):
                batch = keys[start:start + DELETE_BATCH_SIZE]
                self._client.delete_objects(Bucket=self.bucket_name,
                                            Delete={'Objects': [{'Key': key} for key in batch]})
        except ClientError as e:
            logger.error(f'[FAIL] cannot delete folder "{folder_path}" ({e})')
            raise BuildInfrastructureFailure(f'cannot delete folder "{folder_path}"') from e
        logger.info(f'[SUCCESS] deleted {len(keys)} objects in "{folder_path}"')

    def read(self, folder_path: str, filename: str) -> BinaryIO:
        """Read a single object
        Docs:
            https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/s3/client/get_object.html
        Args:
            folder_path: the virtual folder holding the file
            filename: the file name
        Return:
            a binary stream over the object content
        """
        key = posixpath.join(folder_path, filename)
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            code = e.response['Error']['Code']
            if code in ('NoSuchKey', '404'):
                raise ArtifactNotFound(f'object "{key}" does not exist') from e
            logger.error(f'[FAIL] cannot read object "{key}" ({e})')
            raise
        return io.BytesIO(response['Body'].read())
