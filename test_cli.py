#!/usr/bin/env python3
"""Tests for the psim command line: summary output, ISA check, and errors."""
import contextlib
import io
import os
import tempfile
import unittest
from unittest import mock

import cli
from yis import IsaState
from testprogs import ASUM_YO, HALT_YO, MIXED_YO


class CliTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def write_yo(self, text, name="prog.yo"):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, "w") as f:
            f.write(text)
        return path

    def run_cli(self, *args):
        out = io.StringIO()
        rc = cli.main(list(args), out=out)
        return rc, out.getvalue()


class TestSummary(CliTestCase):
    def test_halt_summary(self):
        rc, text = self.run_cli("-v", "1", self.write_yo(HALT_YO))
        self.assertEqual(rc, 0)
        self.assertEqual(text,
            "1 instructions executed\n"
            "Status = HLT\n"
            "Condition Codes: Z=1 S=0 O=0\n"
            "Changed Register State:\n"
            "Changed Memory State:\n"
            "Load/use stalls: 0, return bubbles: 0, mispredicted branches: 0\n"
            "CPI: 1 cycles/1 instructions = 1.00\n")

    def test_asum_summary(self):
        rc, text = self.run_cli("-v", "1", self.write_yo(ASUM_YO))
        self.assertIn("34 instructions executed\n", text)
        self.assertIn("%rax:\t0x0000000000000000\t0x0000abcdabcdabcd\n", text)
        self.assertIn("%rsp:\t0x0000000000000000\t0x0000000000000200\n", text)
        self.assertIn("0x01f0:\t0x0000000000000000\t0x0000000000000055\n", text)
        self.assertIn("0x01f8:\t0x0000000000000000\t0x0000000000000013\n", text)
        self.assertIn("Load/use stalls: 4, return bubbles: 6, mispredicted branches: 1\n",
                      text)
        self.assertTrue(text.endswith("CPI: 46 cycles/34 instructions = 1.35\n"))

    def test_quiet(self):
        rc, text = self.run_cli("-v", "0", self.write_yo(HALT_YO))
        self.assertEqual(text, "CPI: 1 cycles/1 instructions = 1.00\n")

    def test_trace_verbosity(self):
        rc, text = self.run_cli(self.write_yo(MIXED_YO))
        lines = text.splitlines()
        self.assertEqual(lines[0], "Y86-64 Processor: PIPE")
        self.assertEqual(lines[1], "105 bytes of code read")
        self.assertIn("Cycle 0. CC=Z=1 S=0 O=0, Stat=AOK", text)
        self.assertIn("Status = HLT", text)

    def test_instruction_limit(self):
        rc, text = self.run_cli("-v", "1", "-l", "3", self.write_yo(ASUM_YO))
        self.assertIn("3 instructions executed\nStatus = AOK\n", text)

    def test_reads_stdin(self):
        with mock.patch("sys.stdin", io.StringIO(HALT_YO)):
            rc, text = self.run_cli("-v", "1")
        self.assertIn("Status = HLT", text)


class TestIsaCheck(CliTestCase):
    def test_check_succeeds(self):
        rc, text = self.run_cli("-v", "0", "-t", self.write_yo(ASUM_YO))
        self.assertEqual(text, "ISA Check Succeeds\n"
                               "CPI: 46 cycles/34 instructions = 1.35\n")

    def test_check_fails_without_changing_exit_code(self):
        with mock.patch.object(IsaState, "run", return_value=0):
            rc, text = self.run_cli("-v", "1", "-t", self.write_yo(MIXED_YO))
        self.assertEqual(rc, 0)
        self.assertIn("ISA Register != Pipeline Register File\n", text)
        self.assertIn("ISA Memory != Pipeline Memory\n", text)
        self.assertIn("ISA Cond. Codes (Z=1 S=0 O=0) != Pipeline Cond. Codes "
                      "(Z=0 S=0 O=0)\n", text)
        self.assertIn("ISA Check Fails\n", text)


class TestErrors(CliTestCase):
    def run_failing(self, *args):
        err = io.StringIO()
        with contextlib.redirect_stderr(err):
            with self.assertRaises(SystemExit) as cm:
                self.run_cli(*args)
        return cm.exception.code, err.getvalue()

    def test_missing_file(self):
        path = os.path.join(self.tmpdir.name, "nope.yo")
        code, err = self.run_failing(path)
        self.assertEqual(code, 1)
        self.assertEqual(err, f"Couldn't open object file {path}\n")

    def test_empty_image(self):
        code, err = self.run_failing(self.write_yo("# nothing\n"))
        self.assertEqual(code, 1)
        self.assertEqual(err, "No lines of code found\n")

    def test_malformed_image(self):
        code, err = self.run_failing(self.write_yo("0x000 00\n"))
        self.assertEqual(code, 1)
        self.assertIn("Line 1: Expected colon", err)

    def test_bad_verbosity(self):
        code, err = self.run_failing("-v", "3", self.write_yo(HALT_YO))
        self.assertEqual(code, 2)
        self.assertIn("Invalid verbosity 3", err)


if __name__ == "__main__":
    unittest.main()
