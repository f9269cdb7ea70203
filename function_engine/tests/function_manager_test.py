"""
Test ServerlessFunctionService end to end on the local driver with Python's unittest.
"""
from core import *
from function_engine.managers.function_manager import ServerlessFunctionService
from function_engine.managers.local_manager import LocalDriver
from function_engine.managers.repository_manager import InMemoryFunctionRepository
from function_engine.managers.throttler_manager import InMemoryThrottler
from function_engine.models.execution_result import ExecutionStatus
from function_engine.models.function import SyncStatus
from function_engine.utils.folders import get_function_folder
from function_engine.exceptions import (
    ArtifactNotFound,
    BuildInfrastructureFailure,
    ExecutionRateLimitExceeded,
    FunctionCleanupFailure,
    FunctionNotFound,
    InvalidFilePath,
    NoOpPublishRejected,
)
import io

UPDATED_HANDLER = (
    "def handler(event, context):\n"
    "    return 'updated'\n"
)

class ServerlessFunctionServiceTest(unittest.TestCase):
    def setUp(self):
        """Set up a service on a local store and driver in temporary directories
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = LocalArtifactStore(os.path.join(self.temp_dir.name, 'storage'))
        self.driver = LocalDriver(storage=self.store,
                                  scratch_root=os.path.join(self.temp_dir.name, 'scratch'))
        self.repository = InMemoryFunctionRepository()
        self.service = ServerlessFunctionService(repository=self.repository,
                                                 storage=self.store,
                                                 driver=self.driver,
                                                 throttler=InMemoryThrottler(),
                                                 layer_version=None)

    def tearDown(self):
        """Clean up test resources
        """
        self.temp_dir.cleanup()

    def _read(self, function_id: str, version: str, path: str, name: str) -> bytes:
        folder = get_function_folder(TENANT_ID, function_id, version)
        return self.store.read(posixpath.join(folder, path) if path else folder, name).read()

    def test_create(self):
        """Test ServerlessFunctionService.create writes the starter files and builds the draft
        """
        function = self.service.create('hello', 'says hello', TENANT_ID)

        self.assertEqual(function.sync_status, SyncStatus.READY)
        self.assertIsNone(function.latest_version)
        self.assertEqual(self.service.find_one(function.id, TENANT_ID).name, 'hello')
        self.assertEqual([f.id for f in self.service.find_many(TENANT_ID)], [function.id])
        self.assertEqual(self.service.find_many('tenant-2'), [])

        code = self.service.get_source_code(function.id, TENANT_ID, 'draft')
        self.assertEqual(set(code), {'.env', 'src/index.py'})
        self.assertIn('def handler(event, context)', code['src/index.py'])

    def test_execute_latest_before_publish(self):
        """Test ServerlessFunctionService.execute runs the draft until a version is published
        """
        function = self.service.create('hello', None, TENANT_ID)

        result = self.service.execute(function.id, TENANT_ID, {'name': 'engine'})

        self.assertEqual(result.status, ExecutionStatus.SUCCESS)
        self.assertEqual(result.data['message'], 'Hello, engine!')

    def test_publish(self):
        """Test ServerlessFunctionService.publish freezes the draft into version 1
        """
        function = self.service.create('hello', None, TENANT_ID)

        function = self.service.publish(function.id, TENANT_ID)

        self.assertEqual(function.latest_version, '1')
        self.assertEqual(self.repository.find_one(TENANT_ID, function.id).latest_version, '1')
        self.assertEqual(self._read(function.id, '1', 'src', 'index.py'),
                         self._read(function.id, 'draft', 'src', 'index.py'))
        self.assertEqual(self._read(function.id, '1', '', '.env'),
                         self._read(function.id, 'draft', '', '.env'))

    def test_publish_unchanged_draft(self):
        """Test ServerlessFunctionService.publish rejects a draft identical to the latest version
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.service.publish(function.id, TENANT_ID)

        with self.assertRaises(NoOpPublishRejected):
            self.service.publish(function.id, TENANT_ID)

        self.assertEqual(self.service.find_one(function.id, TENANT_ID).latest_version, '1')

    def test_update_and_republish(self):
        """Test draft edits stay out of published versions until the next publish
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.service.publish(function.id, TENANT_ID)

        function = self.service.update(function.id, TENANT_ID, {'src/index.py': UPDATED_HANDLER}, name='renamed')

        self.assertEqual(function.name, 'renamed')
        self.assertEqual(function.sync_status, SyncStatus.READY)
        self.assertEqual(self.service.execute(function.id, TENANT_ID, {}, version='draft').data, 'updated')
        self.assertNotEqual(self.service.execute(function.id, TENANT_ID, {}).data, 'updated')

        function = self.service.publish(function.id, TENANT_ID)

        self.assertEqual(function.latest_version, '2')
        self.assertEqual(self.service.execute(function.id, TENANT_ID, {}).data, 'updated')
        self.assertNotEqual(self.service.execute(function.id, TENANT_ID, {}, version='1').data, 'updated')

    def test_update_nested_files(self):
        """Test ServerlessFunctionService.update writes files in subfolders of the draft
        """
        function = self.service.create('hello', None, TENANT_ID)

        self.service.update(function.id, TENANT_ID, {
            'src/utils/helpers.py': 'VALUE = 5\n',
            'src/index.py': ("from src.utils.helpers import VALUE\n"
                             "def handler(event, context):\n"
                             "    return VALUE\n"),
        })

        self.assertEqual(self._read(function.id, 'draft', 'src/utils', 'helpers.py'), b'VALUE = 5\n')
        self.assertEqual(self.service.execute(function.id, TENANT_ID, {}).data, 5)

    def test_update_build_failure(self):
        """Test ServerlessFunctionService.update leaves the function NOT_READY when the build fails
        """
        function = self.service.create('hello', None, TENANT_ID)

        with self.assertRaises(BuildInfrastructureFailure):
            self.service.update(function.id, TENANT_ID, {'src/index.py': 'def handler(:\n'})

        self.assertEqual(self.service.find_one(function.id, TENANT_ID).sync_status, SyncStatus.NOT_READY)

    def test_update_rejects_paths_leaving_the_draft(self):
        """Test ServerlessFunctionService.update cannot write into another tenant's function
        """
        function = self.service.create('hello', None, TENANT_ID)
        other = self.service.create('other', None, 'tenant-2')
        other_code = self.service.get_source_code(other.id, 'tenant-2', 'draft')

        invalid_paths = [
            f'../../../../workspace-tenant-2/serverlessFunction/{other.id}/draft/src/index.py',
            '../1/src/index.py',
            '/src/index.py',
            'src/../..',
        ]
        for path in invalid_paths:
            with self.subTest(path=path):
                with self.assertRaises(InvalidFilePath):
                    self.service.update(function.id, TENANT_ID, {path: UPDATED_HANDLER})

        self.assertEqual(self.service.get_source_code(other.id, 'tenant-2', 'draft'), other_code)
        self.assertEqual(self.service.find_one(function.id, TENANT_ID).sync_status, SyncStatus.READY)

        # Paths are normalized before being written
        self.service.update(function.id, TENANT_ID, {'src/utils/../index.py': UPDATED_HANDLER})
        self.assertEqual(self.service.execute(function.id, TENANT_ID, {}).data, 'updated')

    def test_update_build_failure_keeps_last_build(self):
        """Test a failed draft rebuild keeps the previous draft build runnable
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.service.update(function.id, TENANT_ID, {'src/index.py': UPDATED_HANDLER})

        with self.assertRaises(BuildInfrastructureFailure):
            self.service.update(function.id, TENANT_ID, {'src/index.py': 'def handler(:\n'})

        self.assertEqual(self.service.execute(function.id, TENANT_ID, {}, version='draft').data, 'updated')

    def test_execute_user_error(self):
        """Test ServerlessFunctionService.execute returns handler errors as results
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.service.update(function.id, TENANT_ID, {'src/index.py': ("def handler(event, context):\n"
                                                                     "    raise KeyError('missing')\n")})

        result = self.service.execute(function.id, TENANT_ID, {})

        self.assertEqual(result.status, ExecutionStatus.ERROR)
        self.assertEqual(result.error.error_type, 'KeyError')

    def test_execute_rate_limit(self):
        """Test ServerlessFunctionService.execute throttles executions per tenant
        """
        self.service.exec_throttle_limit = 2
        function = self.service.create('hello', None, TENANT_ID)

        self.service.execute(function.id, TENANT_ID, {})
        self.service.execute(function.id, TENANT_ID, {})
        with self.assertRaises(ExecutionRateLimitExceeded):
            self.service.execute(function.id, TENANT_ID, {})

    def test_unknown_function(self):
        """Test operations on a function id that does not exist
        """
        with self.assertRaises(FunctionNotFound):
            self.service.find_one('missing', TENANT_ID)
        with self.assertRaises(FunctionNotFound):
            self.service.update('missing', TENANT_ID, {'src/index.py': HELLO_HANDLER})
        with self.assertRaises(FunctionNotFound):
            self.service.publish('missing', TENANT_ID)
        with self.assertRaises(FunctionNotFound):
            self.service.execute('missing', TENANT_ID, {})
        with self.assertRaises(FunctionNotFound):
            self.service.delete('missing', TENANT_ID)

    def test_tenant_isolation(self):
        """Test a function cannot be reached from another tenant
        """
        function = self.service.create('hello', None, TENANT_ID)

        with self.assertRaises(FunctionNotFound):
            self.service.execute(function.id, 'tenant-2', {})

    def test_get_source_code_missing_version(self):
        """Test ServerlessFunctionService.get_source_code on a version that was never published
        """
        function = self.service.create('hello', None, TENANT_ID)

        self.assertIsNone(self.service.get_source_code(function.id, TENANT_ID, '3'))
        self.assertIsNotNone(self.service.get_source_code(function.id, TENANT_ID, 'latest'))

    def test_delete(self):
        """Test ServerlessFunctionService.delete removes the record and stored versions
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.service.publish(function.id, TENANT_ID)

        deleted = self.service.delete(function.id, TENANT_ID)

        self.assertEqual(deleted.id, function.id)
        self.assertIsNone(self.repository.find_one(TENANT_ID, function.id))
        with self.assertRaises(ArtifactNotFound):
            self._read(function.id, 'draft', 'src', 'index.py')

    def test_delete_cleanup_failure(self):
        """Test ServerlessFunctionService.delete still removes the record when cleanup fails
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.driver.delete = MagicMock(side_effect=RuntimeError('backend down'))

        with self.assertRaises(FunctionCleanupFailure) as context:
            self.service.delete(function.id, TENANT_ID)

        self.assertEqual(context.exception.function.id, function.id)
        self.assertEqual(len(context.exception.errors), 1)
        self.assertIsNone(self.repository.find_one(TENANT_ID, function.id))
        # Storage cleanup still ran
        with self.assertRaises(ArtifactNotFound):
            self._read(function.id, 'draft', 'src', 'index.py')

    def test_get_available_packages(self):
        """Test ServerlessFunctionService.get_available_packages
        """
        self.assertEqual(self.service.get_available_packages(), {})

        self.service.layer_version = 1
        packages = self.service.get_available_packages()
        self.assertEqual(packages['requests'], '2.32.3')
        self.assertEqual(set(packages), {'requests', 'python-dateutil', 'pydantic'})


class VersionManagerTest(unittest.TestCase):
    def setUp(self):
        """Set up a version manager with a mocked driver
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = LocalArtifactStore(os.path.join(self.temp_dir.name, 'storage'))
        self.driver = MagicMock()
        self.repository = InMemoryFunctionRepository()
        self.service = ServerlessFunctionService(repository=self.repository,
                                                 storage=self.store,
                                                 driver=self.driver,
                                                 throttler=InMemoryThrottler(),
                                                 layer_version=None)

    def tearDown(self):
        """Clean up test resources
        """
        self.temp_dir.cleanup()

    def test_resolve_version(self):
        """Test VersionManager.resolve_version on the "latest" alias
        """
        function = self.service.create('hello', None, TENANT_ID)
        resolve = self.service.version_manager.resolve_version

        self.assertEqual(resolve(function, 'latest'), 'draft')
        self.assertEqual(resolve(function, '4'), '4')

        self.driver.publish.return_value = '7'
        function = self.service.publish(function.id, TENANT_ID)
        self.assertEqual(resolve(function, 'latest'), '7')
        self.assertEqual(resolve(function, 'draft'), 'draft')

    def test_publish_forwards_current_version(self):
        """Test VersionManager.publish hands the current latest version to the driver
        """
        function = self.service.create('hello', None, TENANT_ID)
        self.driver.publish.return_value = '1'
        self.service.publish(function.id, TENANT_ID)

        # The mocked driver never stored version 1, so the draft always differs
        self.driver.publish.return_value = '2'
        function = self.service.publish(function.id, TENANT_ID)

        self.assertEqual(function.latest_version, '2')
        self.assertEqual(self.driver.publish.call_args.kwargs['current_version'], '1')

    def test_execute_resolves_latest(self):
        """Test ServerlessFunctionService.execute hands a concrete version to the driver
        """
        function = self.service.create('hello', None, TENANT_ID)

        self.service.execute(function.id, TENANT_ID, {'a': 1})

        self.driver.execute.assert_called_once_with(function_id=function.id, version='draft', payload={'a': 1})

    def test_get_source_code_closes_streams(self):
        """Test VersionManager.get_source_code closes the streams it reads
        """
        function = self.service.create('hello', None, TENANT_ID)
        streams = []

        def read(folder_path, filename):
            stream = io.BytesIO(b'content')
            streams.append(stream)
            return stream

        self.service.version_manager.storage = MagicMock(read=MagicMock(side_effect=read))

        code = self.service.version_manager.get_source_code(function, 'draft')

        self.assertEqual(code, {'.env': 'content', 'src/index.py': 'content'})
        self.assertEqual(len(streams), 2)
        self.assertTrue(all(stream.closed for stream in streams))
