"""
Run all function engine unit tests
- Artifact stores (S3, local)
- Build pipeline
- Dependency layers
- Drivers (Lambda, local process)
- Version manager
- Function service

Designed to be run by the CLI
"""
import unittest
import sys
import os

# Looks at project root directory; used for finding function_engine/tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT)

if __name__ == "__main__":
    loader = unittest.TestLoader()
    suite = loader.discover(start_dir=os.path.join(ROOT, "function_engine", "tests"), pattern="*_test.py")
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)
    sys.exit(0 if result.wasSuccessful() else 1)
