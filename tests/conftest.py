import sys
import os

_TESTS_DIR = os.path.dirname(__file__)

# backend/ modules (allocator, plan_manager, server, ...) are imported flat
sys.path.insert(0, os.path.join(_TESTS_DIR, "..", "backend"))

# scripts/check_plan.py is importable for CLI tests
sys.path.insert(0, os.path.join(_TESTS_DIR, "..", "scripts"))

# plan_fixtures.py lives beside the tests
sys.path.insert(0, _TESTS_DIR)
