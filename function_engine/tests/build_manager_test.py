"""
Test FunctionBuilder with Python's unittest
"""
from core import *
from function_engine.managers.build_manager import FunctionBuilder
from function_engine.exceptions import BuildInfrastructureFailure, UnsupportedVersionLabel
import io
import zipfile

class FunctionBuilderTest(unittest.TestCase):
    def setUp(self):
        """Set up a local store and a builder in temporary directories
        """
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = LocalArtifactStore(os.path.join(self.temp_dir.name, 'storage'))
        self.builder = FunctionBuilder(self.store, os.path.join(self.temp_dir.name, 'scratch'))

    def tearDown(self):
        """Clean up test resources
        """
        self.temp_dir.cleanup()

    def test_build(self):
        """Test FunctionBuilder.build
        """
        write_version(self.store, 'f1', env='GREETING=hello\n# comment\nEMPTY=\n')

        artifact = self.builder.build(TENANT_ID, 'f1', 'draft')

        self.assertEqual(artifact.folder, self.builder.get_build_folder('f1', 'draft'))
        self.assertTrue(os.path.isfile(os.path.join(artifact.output_folder, 'src', 'index.py')))
        self.assertEqual(artifact.env_variables, {'GREETING': 'hello', 'EMPTY': ''})

    def test_build_replaces_previous_output(self):
        """Test FunctionBuilder.build does not keep files removed from storage
        """
        write_version(self.store, 'f1')
        artifact = self.builder.build(TENANT_ID, 'f1', 'draft')
        stale_file = os.path.join(artifact.output_folder, 'src', 'stale.py')
        with open(stale_file, 'w') as f:
            f.write('x = 1\n')

        self.builder.build(TENANT_ID, 'f1', 'draft')

        self.assertFalse(os.path.exists(stale_file))

    def test_build_syntax_error(self):
        """Test FunctionBuilder.build rejects sources that do not compile
        """
        write_version(self.store, 'f1', index_source='def handler(event, context)\n    return 1\n')

        with self.assertRaises(BuildInfrastructureFailure):
            self.builder.build(TENANT_ID, 'f1', 'draft')

    def test_failed_build_keeps_previous_output(self):
        """Test FunctionBuilder.build leaves the last good build in place when a rebuild fails
        """
        write_version(self.store, 'f1')
        artifact = self.builder.build(TENANT_ID, 'f1', 'draft')

        write_version(self.store, 'f1', index_source='def handler(event, context)\n    return 1\n')
        with self.assertRaises(BuildInfrastructureFailure):
            self.builder.build(TENANT_ID, 'f1', 'draft')

        with open(os.path.join(artifact.output_folder, 'src', 'index.py')) as f:
            self.assertEqual(f.read(), HELLO_HANDLER)
        # No staging folder is left next to the build
        self.assertEqual(os.listdir(os.path.dirname(artifact.folder)), ['draft'])

    def test_build_missing_version(self):
        """Test FunctionBuilder.build on a version without stored sources
        """
        with self.assertRaises(BuildInfrastructureFailure):
            self.builder.build(TENANT_ID, 'f1', '3')

        with self.assertRaises(UnsupportedVersionLabel):
            self.builder.build(TENANT_ID, 'f1', 'latest')

    def test_package(self):
        """Test FunctionBuilder.package zips the build output
        """
        write_version(self.store, 'f1')
        artifact = self.builder.build(TENANT_ID, 'f1', 'draft')

        with zipfile.ZipFile(io.BytesIO(self.builder.package(artifact))) as zipf:
            self.assertIn('src/index.py', zipf.namelist())
            self.assertEqual(zipf.read('src/index.py').decode('utf-8'), HELLO_HANDLER)
