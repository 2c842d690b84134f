"""
Shell helper

Usage:
python -m pytest tests/test_utils.py
"""

import subprocess
import unittest

from netmon.utils import bash, last_line


class TestBash(unittest.TestCase):
    def test_returns_raw_output(self):
        assert bash("echo 10.0.0.2 172.17.0.1; echo second") == "10.0.0.2 172.17.0.1\nsecond\n"

    def test_failure_raises(self):
        with self.assertRaises(subprocess.CalledProcessError):
            bash("exit 3")

    def test_timeout(self):
        with self.assertRaises(subprocess.TimeoutExpired):
            bash("sleep 5", timeout=0.2)

    def test_last_line(self):
        assert last_line("a\n\nb  \n\n") == "b"
        assert last_line("") == ""
        assert last_line(None) == ""
