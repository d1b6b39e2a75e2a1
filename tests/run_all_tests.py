"""
Master test runner - executes the suite and writes chatbot_test_report.log.
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tests.test_logger import test_logger


def run_all_tests():
    """Run all tests bottom-up and log the summary."""
    test_logger.logger.info("Starting chatbot test run...")

    # Lower layers first so failures point at the root cause
    test_files = [
        "tests/test_logging.py",
        "tests/test_models.py",
        "tests/test_config.py",
        "tests/test_keywords.py",
        "tests/test_document_index.py",
        "tests/test_rag_tool.py",
        "tests/test_gate.py",
        "tests/test_history.py",
        "tests/test_connection.py",
        "tests/test_messenger.py",
        "tests/test_agent.py",
        "tests/test_api.py"
    ]

    pytest_args = [
        "-v",
        "--tb=short",
        "--disable-warnings",
        *test_files
    ]

    exit_code = pytest.main(pytest_args)

    summary = test_logger.generate_summary()
    if summary['failed'] == 0:
        test_logger.logger.info("✓ ALL TESTS PASSED!")
    else:
        test_logger.logger.info(f"✗ {summary['failed']} TESTS FAILED")

    return exit_code


if __name__ == "__main__":
    sys.exit(run_all_tests())
