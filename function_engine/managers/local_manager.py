"""
Implements the local-process driver.

Deploying a version materializes its build output and a generated listener script
under the scratch root; executing it spawns a fresh Python interpreter running the
listener, which answers with exactly one JSON envelope on stdout.
"""
from function_engine.utils.logger import logger
from function_engine.utils.folders import (
    DRAFT_VERSION,
    LAYER_PACKAGES_FOLDER,
    OUTDIR_FOLDER,
    check_concrete_version,
    get_function_folder,
    get_scratch_folder,
)
from function_engine.utils.error_trace import parse_error_trace
from function_engine.interfaces.driver_interface import ServerlessDriverInterface
from function_engine.interfaces.layer_interface import LayerInterface
from function_engine.interfaces.storage_interface import ArtifactStoreInterface
from function_engine.managers.build_manager import FunctionBuilder
from function_engine.models.execution_result import ExecutionResult, ExecutionError, ExecutionStatus
from function_engine.models.function import Runtime
from function_engine.exceptions import (
    BuildInfrastructureFailure,
    ExecutionInfrastructureFailure,
    FunctionVersionNotFound,
)
from typing import Any, Dict, Optional
import json
import os
import subprocess
import sys
import time

LISTENER_FILE_NAME = 'listener.py'

LISTENER_TEMPLATE = '''import asyncio
import importlib
import inspect
import json
import os
import sys
import traceback

HERE = os.path.dirname(os.path.abspath(__file__))

os.environ.update(__ENV_VARIABLES__)
sys.path.insert(0, HERE)
sys.path.insert(0, os.path.join(HERE, "__LAYER_FOLDER__"))

# stdout is reserved for the result envelope
channel = sys.stdout
sys.stdout = sys.stderr

index = importlib.import_module("src.index")


def main():
    message = json.loads(sys.stdin.readline() or "{}")
    try:
        result = index.handler(message.get("event"), message.get("context"))
        if inspect.iscoroutine(result):
            result = asyncio.run(result)
        envelope = {"ok": True, "data": result}
    except Exception as error:
        trace = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        envelope = {
            "ok": False,
            "error": {
                "errorType": type(error).__name__,
                "errorMessage": str(error),
                "stackTrace": [line for line in trace.split("\\n") if line.strip() != ""],
            },
        }
    channel.write(json.dumps(envelope, default=str) + "\\n")
    channel.flush()


main()
os._exit(0)
'''

def render_listener(env_variables: Dict[str, str]) -> str:
    return (LISTENER_TEMPLATE
            .replace('__ENV_VARIABLES__', repr(dict(env_variables)))
            .replace('__LAYER_FOLDER__', LAYER_PACKAGES_FOLDER))

class LocalDriver(ServerlessDriverInterface):
    def __init__(self,
                 storage: ArtifactStoreInterface,
                 scratch_root: str,
                 layer_manager: Optional[LayerInterface] = None,
                 execution_timeout: Optional[float] = None):
        """Initialize local driver resources
        Args:
            storage: the artifact store holding function sources
            scratch_root: the directory holding local deployments
            layer_manager: builds the shared dependency layer, required when a layer version is requested
            execution_timeout: seconds before a running worker is killed, None to wait indefinitely
        """
        self.storage = storage
        self.scratch_root = scratch_root
        self.builder = FunctionBuilder(storage, scratch_root)
        self.layer_manager = layer_manager
        self.execution_timeout = execution_timeout

    def get_listener_path(self, function_id: str, version: str) -> str:
        return os.path.join(get_scratch_folder(self.scratch_root, function_id, version),
                            OUTDIR_FOLDER,
                            LISTENER_FILE_NAME)

    def delete(self, function_id: str) -> None:
        logger.info(f'[SKIP] nothing deployed outside the scratch area for "{function_id}"')

    def build(self,
              tenant_id: str,
              function_id: str,
              version: str,
              layer_version: Optional[int],
              runtime: Runtime) -> None:
        """Materialize a version's build output and listener under the scratch root
        Args:
            tenant_id: the workspace owning the function
            function_id: the function id
            version: the concrete version label to deploy
            layer_version: the shared dependency layer to link, or None
            runtime: unused, the worker runs on the engine's interpreter
        """
        check_concrete_version(version)

        layer_folder = None
        if layer_version:
            if self.layer_manager is None:
                raise BuildInfrastructureFailure('a layer version was requested but no layer manager is configured')
            layer_folder = self.layer_manager.create_layer_if_not_exists(layer_version)

        artifact = self.builder.build(tenant_id, function_id, version)

        try:
            with open(os.path.join(artifact.output_folder, LISTENER_FILE_NAME), 'w') as f:
                f.write(render_listener(artifact.env_variables))

            if layer_folder:
                try:
                    os.symlink(os.path.join(layer_folder, LAYER_PACKAGES_FOLDER),
                               os.path.join(artifact.output_folder, LAYER_PACKAGES_FOLDER),
                               target_is_directory=True)
                except FileExistsError:
                    pass
        except OSError as e:
            logger.error(f'[FAIL] cannot deploy "{function_id}" version "{version}" locally ({e})')
            raise BuildInfrastructureFailure(f'cannot deploy "{function_id}" version "{version}" locally') from e

        logger.info(f'[SUCCESS] built "{function_id}" version "{version}" in "{artifact.output_folder}"')

    def publish(self,
                tenant_id: str,
                function_id: str,
                current_version: Optional[str],
                layer_version: Optional[int],
                runtime: Runtime) -> str:
        """Copy the draft sources to the next numbered version and build it
        Args:
            tenant_id: the workspace owning the function
            function_id: the function id
            current_version: the latest published label, or None before the first publish
            layer_version: the shared dependency layer to link, or None
            runtime: unused, the worker runs on the engine's interpreter
        Return:
            the new version label
        """
        new_version = str(int(current_version) + 1) if current_version else '1'

        self.storage.copy(get_function_folder(tenant_id, function_id, DRAFT_VERSION),
                          get_function_folder(tenant_id, function_id, new_version))

        self.build(tenant_id, function_id, new_version, layer_version, runtime)

        logger.info(f'[SUCCESS] published version "{new_version}" of "{function_id}"')
        return new_version

    @staticmethod
    def _read_envelope(stdout: str) -> Optional[Dict[str, Any]]:
        lines = [line for line in stdout.split('\n') if line.strip()]
        if not lines:
            return None
        try:
            envelope = json.loads(lines[-1])
        except ValueError:
            return None
        return envelope if isinstance(envelope, dict) and 'ok' in envelope else None

    def execute(self,
                function_id: str,
                version: str,
                payload: Any) -> ExecutionResult:
        """Run a version in a fresh worker process
        Args:
            function_id: the function id
            version: the concrete version label
            payload: the event handed to the handler (JSON serializable)
        Return:
            the execution result; user-code errors are reported with status ERROR
        """
        check_concrete_version(version)

        listener_file = self.get_listener_path(function_id, version)
        if not os.path.isfile(listener_file):
            raise FunctionVersionNotFound(f"Function Version '{version}' does not exist")

        message = json.dumps({'event': payload,
                              'context': {'functionId': function_id, 'functionVersion': version}})

        start_time = time.perf_counter()
        try:
            process = subprocess.Popen([sys.executable, listener_file],
                                       stdin=subprocess.PIPE,
                                       stdout=subprocess.PIPE,
                                       stderr=subprocess.PIPE,
                                       cwd=os.path.dirname(listener_file),
                                       text=True)
        except OSError as e:
            logger.error(f'[FAIL] cannot start worker for "{function_id}" ({e})')
            raise ExecutionInfrastructureFailure(f'cannot start worker for "{function_id}"') from e

        try:
            stdout, stderr = process.communicate(input=message + '\n', timeout=self.execution_timeout)
        except subprocess.TimeoutExpired as e:
            logger.error(f'[FAIL] worker for "{function_id}" timed out after {self.execution_timeout}s')
            raise ExecutionInfrastructureFailure(f'worker timed out after {self.execution_timeout}s') from e
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()

        duration = int((time.perf_counter() - start_time) * 1000)

        envelope = self._read_envelope(stdout)
        if envelope is not None:
            if stderr.strip():
                logger.debug(f'worker output for "{function_id}":\n{stderr}')
            if envelope['ok']:
                logger.info(f'[SUCCESS] executed "{function_id}" version "{version}"')
                return ExecutionResult(data=envelope.get('data'),
                                       duration=duration,
                                       status=ExecutionStatus.SUCCESS)
            logger.info(f'[INFO] "{function_id}" version "{version}" raised an error')
            return ExecutionResult(data=None,
                                   duration=duration,
                                   status=ExecutionStatus.ERROR,
                                   error=ExecutionError.from_payload(envelope.get('error')))

        if stderr.strip():
            logger.info(f'[INFO] "{function_id}" version "{version}" crashed')
            return ExecutionResult(data=None,
                                   duration=duration,
                                   status=ExecutionStatus.ERROR,
                                   error=parse_error_trace(stderr))

        if process.returncode != 0:
            raise ExecutionInfrastructureFailure(f'Child process exited with code {process.returncode}')
        raise ExecutionInfrastructureFailure('Child process exited without a result')
