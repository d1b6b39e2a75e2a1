"""
Shared test-report logger for the chatbot test suite.

Every test records its start and outcome here; results go to
chatbot_test_report.log and the console.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path


class TestLogger:
    """Collects PASS/FAIL/SKIP records and writes a summary at the end."""

    __test__ = False

    def __init__(self, log_file: str = "chatbot_test_report.log"):
        self.log_file = Path(__file__).parent.parent / log_file
        self.test_results = []
        self.start_time = datetime.now()

        self.logger = logging.getLogger("ChatbotTestLogger")
        self.logger.setLevel(logging.DEBUG)
        self.logger.handlers = []
        self.logger.propagate = False

        formatter = logging.Formatter(
            '[%(asctime)s] [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        file_handler = logging.FileHandler(self.log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

        self.log_header()

    def log_header(self):
        self.logger.info("=" * 80)
        self.logger.info("PUBLIC SERVICE CHATBOT - TEST REPORT")
        self.logger.info("=" * 80)
        self.logger.info(f"Session started: {self.start_time.strftime('%Y-%m-%d %H:%M:%S')}")
        self.logger.info(f"Log file: {self.log_file.absolute()}")
        self.logger.info("=" * 80)

    def _record(self, module: str, function: str, test_name: str, result: str, message: str) -> None:
        self.test_results.append({
            'timestamp': datetime.now(),
            'module': module,
            'function': function,
            'test': test_name,
            'result': result,
            'message': message
        })

    def log_test_start(self, module: str, function: str, test_name: str):
        """
        Log test start.

        Args:
            module: Module under test (e.g. 'gate.py')
            function: Function or method under test
            test_name: Short case name
        """
        self.logger.info(f"▶ Testing: {module} → {function} → {test_name}")

    def log_test_pass(self, module: str, function: str, test_name: str, message: str = ""):
        self._record(module, function, test_name, 'PASS', message)
        msg = f"✓ PASS: {module} → {function} → {test_name}"
        if message:
            msg += f" | {message}"
        self.logger.info(msg)

    def log_test_fail(self, module: str, function: str, test_name: str, error: str):
        self._record(module, function, test_name, 'FAIL', error)
        self.logger.error(f"✗ FAIL: {module} → {function} → {test_name}")
        self.logger.error(f"  Error: {error}")

    def log_test_skip(self, module: str, function: str, test_name: str, reason: str):
        self._record(module, function, test_name, 'SKIP', reason)
        self.logger.warning(f"⊘ SKIP: {module} → {function} → {test_name} | {reason}")

    def log_section(self, section_name: str):
        self.logger.info("-" * 80)
        self.logger.info(f"  {section_name}")
        self.logger.info("-" * 80)

    def generate_summary(self):
        """Log totals and failed cases; returns the counts."""
        end_time = datetime.now()
        duration = end_time - self.start_time

        counts = {
            status: sum(1 for r in self.test_results if r['result'] == status)
            for status in ('PASS', 'FAIL', 'SKIP')
        }
        total = len(self.test_results)
        pass_rate = (counts['PASS'] / total * 100) if total > 0 else 0

        self.logger.info("=" * 80)
        self.logger.info("TEST SUMMARY")
        self.logger.info("=" * 80)
        self.logger.info(f"Total Tests:     {total}")
        self.logger.info(f"Passed:          {counts['PASS']} ({pass_rate:.1f}%)")
        self.logger.info(f"Failed:          {counts['FAIL']}")
        self.logger.info(f"Skipped:         {counts['SKIP']}")
        self.logger.info(f"Duration:        {duration.total_seconds():.2f} seconds")
        self.logger.info("=" * 80)

        failed = [r for r in self.test_results if r['result'] == 'FAIL']
        for result in failed:
            self.logger.info(f"  • {result['module']} → {result['function']} → {result['test']}")
            self.logger.info(f"    Error: {result['message']}")

        return {
            'total': total,
            'passed': counts['PASS'],
            'failed': counts['FAIL'],
            'skipped': counts['SKIP'],
            'pass_rate': pass_rate,
            'duration': duration.total_seconds()
        }


# Global test logger instance
test_logger = TestLogger()
