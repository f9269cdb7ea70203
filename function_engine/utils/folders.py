"""
Folder layout shared by the artifact store, the drivers and the scratch area.

Stored versions live under:
    workspace-{tenant_id}/serverlessFunction/{function_id}/{version}/
Scratch deployments live under:
    {scratch_root}/{function_id}/{version}/
"""
from typing import Optional
import os
import posixpath

from function_engine.exceptions import UnsupportedVersionLabel

DRAFT_VERSION = 'draft'
LATEST_VERSION = 'latest'

FUNCTIONS_FOLDER = 'serverlessFunction'
SOURCE_FOLDER = 'src'
OUTDIR_FOLDER = 'dist'
INDEX_FILE_NAME = 'index.py'
ENV_FILE_NAME = '.env'
LAYER_PACKAGES_FOLDER = 'python'
COMMON_LAYER_NAME = 'function-engine-common-layer'


def check_concrete_version(version: Optional[str]) -> None:
    """Reject the "latest" alias where a stored version label is required"""
    if version == LATEST_VERSION:
        raise UnsupportedVersionLabel('cannot support "latest" version')


def get_function_folder(tenant_id: str,
                        function_id: str,
                        version: Optional[str] = None) -> str:
    """Build the artifact-store folder of a function version
    Args:
        tenant_id: the workspace owning the function
        function_id: the function id
        version: "draft" or a numbered label; None addresses the folder of every version
    Return:
        the folder path, ending with '/' when version is None
    """
    check_concrete_version(version)
    return posixpath.join(f'workspace-{tenant_id}', FUNCTIONS_FOLDER, function_id, version or '')


def get_scratch_folder(scratch_root: str, function_id: str, version: str) -> str:
    check_concrete_version(version)
    return os.path.join(scratch_root, function_id, version)


def get_layer_scratch_folder(scratch_root: str, layer_version: int) -> str:
    return os.path.join(scratch_root, COMMON_LAYER_NAME, str(layer_version))
