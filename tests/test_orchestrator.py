"""test_orchestrator.py

Unit tests for the per-file treatment: outcomes, cleanup and status
aggregation.
"""

import io
import os
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest import mock

from chunkzip.adapter import NullSink
from chunkzip.engine import ContextError
from chunkzip.options import Mode, RunOptions, RunStatus
from chunkzip.orchestrator import (FatalError, Orchestrator, Outcome,
                                   SharedSink)

OPTIONS = RunOptions(threads=2, verbosity=0)
PAYLOAD = b"some text worth compressing\n" * 200

TERMINAL = mock.patch("chunkzip.naming.stdin_is_terminal", return_value=True)


class OrchestratorTestCase(unittest.TestCase):

    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def make_file(self, name: str, data: bytes = PAYLOAD) -> Path:
        path = self.dir / name
        path.write_bytes(data)
        return path

    def compressed(self, name: str, data: bytes = PAYLOAD) -> Path:
        """Return the path of a compressed copy of `data`."""
        path = self.make_file(name, data)
        outcome = Orchestrator(OPTIONS).treat(str(path))
        self.assertEqual(outcome, Outcome.OK)
        return Path(str(path) + ".zst")


class TestSuccess(OrchestratorTestCase):

    def test_compress_replaces_input(self) -> None:
        """Test that compressing writes NAME.zst and removes NAME."""
        source = self.make_file("notes.txt")
        orchestrator = Orchestrator(OPTIONS)
        self.assertEqual(orchestrator.treat(str(source)), Outcome.OK)
        self.assertFalse(source.exists())
        self.assertTrue((self.dir / "notes.txt.zst").exists())
        self.assertEqual(orchestrator.status, RunStatus.OK)

    def test_decompress_round_trip(self) -> None:
        packed = self.compressed("notes.txt")
        options = replace(OPTIONS, mode=Mode.DECOMPRESS)
        self.assertEqual(Orchestrator(options).treat(str(packed)), Outcome.OK)
        self.assertFalse(packed.exists())
        self.assertEqual((self.dir / "notes.txt").read_bytes(), PAYLOAD)

    def test_keep_input(self) -> None:
        source = self.make_file("kept")
        options = replace(OPTIONS, keep=True)
        self.assertEqual(Orchestrator(options).treat(str(source)), Outcome.OK)
        self.assertTrue(source.exists())

    def test_shared_destination_keeps_input(self) -> None:
        """
        Test that output written to a shared stream leaves the input in
        place and the stream open.
        """
        source = self.make_file("shared")
        sink = io.BytesIO()
        destination = SharedSink(sink, "stdout")
        orchestrator = Orchestrator(OPTIONS, destination)
        self.assertEqual(orchestrator.treat(str(source)), Outcome.OK)
        self.assertTrue(source.exists())
        self.assertFalse(sink.closed)
        self.assertGreater(len(sink.getvalue()), 0)

    def test_test_mode(self) -> None:
        """Test that test mode keeps the compressed file and writes nothing."""
        packed = self.compressed("tested")
        options = replace(OPTIONS, mode=Mode.TEST)
        orchestrator = Orchestrator(options, SharedSink(NullSink(), "discard"))
        self.assertEqual(orchestrator.treat(str(packed)), Outcome.OK)
        self.assertTrue(packed.exists())
        self.assertEqual(sorted(os.listdir(self.dir)), ["tested.zst"])


class TestSkips(OrchestratorTestCase):

    def test_already_suffixed(self) -> None:
        """Test that compressing a .zst file is skipped, not failed."""
        source = self.make_file("done.zst")
        orchestrator = Orchestrator(OPTIONS)
        self.assertEqual(orchestrator.treat(str(source)), Outcome.SKIPPED)
        self.assertEqual(orchestrator.status, RunStatus.WARNING)
        self.assertFalse((self.dir / "done.zst.zst").exists())
        self.assertEqual(source.read_bytes(), PAYLOAD)

    def test_already_suffixed_forced(self) -> None:
        source = self.make_file("done.zst")
        options = replace(OPTIONS, force=True)
        self.assertEqual(Orchestrator(options).treat(str(source)), Outcome.OK)
        self.assertTrue((self.dir / "done.zst.zst").exists())

    def test_overwrite_declined(self) -> None:
        """
        Test that declining to overwrite skips the job and leaves both
        files untouched.
        """
        source = self.make_file("data")
        existing = self.make_file("data.zst", b"precious")
        orchestrator = Orchestrator(OPTIONS)
        with TERMINAL, \
                mock.patch("click.confirm", return_value=False) as confirm:
            self.assertEqual(orchestrator.treat(str(source)), Outcome.SKIPPED)
        confirm.assert_called_once()
        self.assertEqual(existing.read_bytes(), b"precious")
        self.assertTrue(source.exists())
        self.assertEqual(orchestrator.status, RunStatus.WARNING)

    def test_overwrite_accepted(self) -> None:
        source = self.make_file("data")
        existing = self.make_file("data.zst", b"stale")
        with TERMINAL, mock.patch("click.confirm", return_value=True):
            outcome = Orchestrator(OPTIONS).treat(str(source))
        self.assertEqual(outcome, Outcome.OK)
        self.assertNotEqual(existing.read_bytes(), b"stale")

    def test_overwrite_without_terminal(self) -> None:
        """Test that an existing output is kept when no one can be asked."""
        source = self.make_file("data")
        existing = self.make_file("data.zst", b"precious")
        with mock.patch("chunkzip.naming.stdin_is_terminal",
                        return_value=False), \
                mock.patch("click.confirm") as confirm:
            outcome = Orchestrator(OPTIONS).treat(str(source))
        self.assertEqual(outcome, Outcome.SKIPPED)
        confirm.assert_not_called()
        self.assertEqual(existing.read_bytes(), b"precious")


class TestErrors(OrchestratorTestCase):

    def test_missing_input(self) -> None:
        orchestrator = Orchestrator(OPTIONS)
        missing = self.dir / "missing"
        self.assertEqual(orchestrator.treat(str(missing)), Outcome.ERROR)
        self.assertEqual(orchestrator.status, RunStatus.ERROR)
        self.assertEqual(os.listdir(self.dir), [])

    def test_directory_input(self) -> None:
        (self.dir / "folder").mkdir()
        outcome = Orchestrator(OPTIONS).treat(str(self.dir / "folder"))
        self.assertEqual(outcome, Outcome.ERROR)
        self.assertFalse((self.dir / "folder.zst").exists())

    def test_codec_failure_removes_output(self) -> None:
        """
        Test that a stream failing to decompress leaves no partial output
        and keeps the input.
        """
        bogus = self.make_file("bogus.zst", b"definitely not compressed")
        options = replace(OPTIONS, mode=Mode.DECOMPRESS)
        orchestrator = Orchestrator(options)
        self.assertEqual(orchestrator.treat(str(bogus)), Outcome.ERROR)
        self.assertFalse((self.dir / "bogus").exists())
        self.assertTrue(bogus.exists())

    def test_failure_after_partial_output(self) -> None:
        """Test cleanup when a valid frame is followed by garbage."""
        packed = self.compressed("partial")
        with packed.open("ab") as packed_file:
            packed_file.write(b"trailing garbage")
        options = replace(OPTIONS, mode=Mode.DECOMPRESS, threads=1)
        self.assertEqual(Orchestrator(options).treat(str(packed)),
                         Outcome.ERROR)
        self.assertFalse((self.dir / "partial").exists())

    def test_shared_destination_survives_failure(self) -> None:
        bogus = self.make_file("bogus.zst", b"definitely not compressed")
        options = replace(OPTIONS, mode=Mode.DECOMPRESS)
        target = self.dir / "all.out"
        with target.open("wb") as stream:
            destination = SharedSink(stream, str(target), target)
            outcome = Orchestrator(options, destination).treat(str(bogus))
        self.assertEqual(outcome, Outcome.ERROR)
        self.assertTrue(target.exists())

    def test_context_failure_is_fatal(self) -> None:
        """
        Test that failing to create a context aborts with FatalError and
        still removes the output file opened for the job.
        """
        source = self.make_file("fatal")
        failing = mock.patch("chunkzip.orchestrator.create_compressor",
                             side_effect=ContextError("no memory"))
        with failing, self.assertRaises(FatalError):
            Orchestrator(OPTIONS).treat(str(source))
        self.assertFalse((self.dir / "fatal.zst").exists())
        self.assertTrue(source.exists())

    def test_result_code_message(self) -> None:
        bogus = self.make_file("bogus.zst", b"x" * 40)
        options = replace(OPTIONS, mode=Mode.DECOMPRESS)
        orchestrator = Orchestrator(options)
        with mock.patch("chunkzip.orchestrator.echo_error") as echo_error:
            orchestrator.treat(str(bogus))
        message = echo_error.call_args[0][0]
        self.assertIn("not in chunkzip format", message)


class TestAggregation(OrchestratorTestCase):
    """Run status across several jobs."""

    def test_skip_then_success(self) -> None:
        orchestrator = Orchestrator(OPTIONS)
        orchestrator.treat(str(self.make_file("a.zst")))
        orchestrator.treat(str(self.make_file("b")))
        self.assertEqual(orchestrator.status, RunStatus.WARNING)
        self.assertEqual(int(orchestrator.status), 2)

    def test_error_wins(self) -> None:
        """Test that one failure decides the status whatever follows."""
        orchestrator = Orchestrator(OPTIONS)
        orchestrator.treat(str(self.make_file("a")))
        orchestrator.treat(str(self.dir / "missing"))
        orchestrator.treat(str(self.make_file("c.zst")))
        orchestrator.treat(str(self.make_file("d")))
        self.assertEqual(orchestrator.status, RunStatus.ERROR)
        self.assertEqual(int(orchestrator.status), 1)

    def test_all_ok(self) -> None:
        orchestrator = Orchestrator(OPTIONS)
        for name in ("a", "b", "c"):
            orchestrator.treat(str(self.make_file(name)))
        self.assertEqual(orchestrator.status, RunStatus.OK)


if __name__ == "__main__":
    unittest.main()
