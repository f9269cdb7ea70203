"""
Test the stderr error classification with Python's unittest
"""
from core import *
from function_engine.utils.error_trace import parse_error_trace

TRACEBACK = """Traceback (most recent call last):
  File "/tmp/dist/listener.py", line 17, in <module>
    index = importlib.import_module("src.index")
  File "/tmp/dist/src/index.py", line 1, in <module>
    raise RuntimeError("bad import: missing key")

RuntimeError: bad import: missing key
"""

class ParseErrorTraceTest(unittest.TestCase):
    def test_traceback(self):
        """Test parse_error_trace on a Python traceback
        """
        error = parse_error_trace(TRACEBACK)

        self.assertEqual(error.error_type, 'RuntimeError')
        self.assertEqual(error.error_message, 'bad import: missing key')
        self.assertEqual(error.stack_trace[0], 'Traceback (most recent call last):')
        self.assertNotIn('', error.stack_trace)

    def test_no_error_line(self):
        """Test parse_error_trace when no line names an error
        """
        error = parse_error_trace('Segmentation fault\n')

        self.assertEqual(error.error_type, 'Unknown')
        self.assertEqual(error.error_message, '')
        self.assertEqual(error.stack_trace, ['Segmentation fault'])
