"""Tests for the script sandbox and the script executor."""

from __future__ import annotations

import tempfile
import unittest

from app.errors import ExecutionFailure, InvalidArgument, ScriptTimeout
from app.execution.sandbox import run_sandboxed, validate_source
from app.execution.script_executor import ScriptExecutor
from app.execution.types import SandboxResult
from app.services.connection_registry import ConnectionDescriptor
from app.services.credentials import CredentialCodec
from app.services.result_offload import ResultOffloader
from app.services.script_store import ScriptStore


class _RecordingStorage:
    def __init__(self) -> None:
        self.uploads: list[str] = []

    def upload(self, content: str, artifact_name: str) -> str:
        self.uploads.append(artifact_name)
        return f"https://bucket.example.com/{artifact_name}"

    def exists(self, locator: str) -> bool:
        return True


class SandboxTests(unittest.TestCase):
    def test_top_level_result_and_console_output(self) -> None:
        source = (
            "import json\n"
            "print('starting', DB_CONFIG['dbname'])\n"
            "console.error('careful')\n"
            "result = {'db': DB_CONFIG['dbname'], 'items': json.loads('[1, 2]')}\n"
        )

        outcome = run_sandboxed(source, {"DB_CONFIG": {"dbname": "analytics"}}, timeout_seconds=30)

        self.assertEqual(outcome.value, {"db": "analytics", "items": [1, 2]})
        self.assertEqual(outcome.logs, ["starting analytics"])
        self.assertEqual(outcome.errors, ["careful"])

    def test_async_main_is_awaited(self) -> None:
        source = (
            "import asyncio\n"
            "async def main():\n"
            "    await asyncio.sleep(0)\n"
            "    console.log('done')\n"
            "    return [{'uri': MONGO_URI}]\n"
        )

        outcome = run_sandboxed(source, {"MONGO_URI": "mongodb://h:27017/app"}, timeout_seconds=30)

        self.assertEqual(outcome.value, [{"uri": "mongodb://h:27017/app"}])
        self.assertEqual(outcome.logs, ["done"])

    def test_uncaught_exception_becomes_failure(self) -> None:
        with self.assertRaises(ExecutionFailure) as ctx:
            run_sandboxed("raise ValueError('bad input')\n", {}, timeout_seconds=30)

        self.assertEqual(str(ctx.exception), "bad input")

    def test_blocked_import_fails(self) -> None:
        with self.assertRaises(ExecutionFailure) as ctx:
            run_sandboxed("import os\nresult = os.getcwd()\n", {}, timeout_seconds=30)

        self.assertIn("Import of 'os' is not allowed", str(ctx.exception))

    def test_runaway_script_is_terminated(self) -> None:
        with self.assertRaises(ScriptTimeout) as ctx:
            run_sandboxed("while True:\n    pass\n", {}, timeout_seconds=2)

        self.assertIn("timed out", str(ctx.exception))

    def test_validation_blocks_escape_hatches(self) -> None:
        for source in (
            "x = ().__class__.__bases__",
            "eval('1')",
            "open('/etc/passwd')",
            "from subprocess import run",
            "from . import sibling",
            "import uuid\nresult = uuid.os.popen('id -un').read()\n",
            (
                "import asyncio\n"
                "async def main():\n"
                "    proc = await asyncio.create_subprocess_exec('cat', '/etc/hostname')\n"
                "    return await proc.communicate()\n"
            ),
            "import asyncio\nloop = asyncio.get_running_loop()\n",
            "import psycopg.pq\n",
            "from json import *\n",
            "def gen():\n    yield 1\nframe = gen().gi_frame\n",
            "logs = console._logs\n",
            "b = __builtins__\n",
        ):
            with self.subTest(source=source):
                with self.assertRaises(ValueError):
                    validate_source(source)

    def test_module_attributes_outside_curated_names_are_hidden(self) -> None:
        for source in (
            "import json\nresult = str(json.codecs)\n",
            "import asyncio\nresult = str(asyncio.events)\n",
            "import string\nresult = str(string.Formatter)\n",
            "from psycopg import pq\n",
        ):
            with self.subTest(source=source):
                with self.assertRaises(ExecutionFailure):
                    run_sandboxed(source, {}, timeout_seconds=30)

    def test_module_views_are_read_only(self) -> None:
        with self.assertRaises(ExecutionFailure) as ctx:
            run_sandboxed("import json\njson.loads = print\n", {}, timeout_seconds=30)

        self.assertIn("read-only", str(ctx.exception))

    def test_curated_names_and_allowed_submodules_still_work(self) -> None:
        source = (
            "import datetime\n"
            "import uuid\n"
            "from psycopg.rows import dict_row\n"
            "result = {\n"
            "    'days': datetime.timedelta(days=2).days,\n"
            "    'uuid_length': len(str(uuid.uuid4())),\n"
            "    'row_factory': callable(dict_row),\n"
            "}\n"
        )

        outcome = run_sandboxed(source, {}, timeout_seconds=30)

        self.assertEqual(outcome.value, {"days": 2, "uuid_length": 36, "row_factory": True})


class ScriptExecutorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = ScriptStore(self._tmp.name)
        self.storage = _RecordingStorage()
        self.calls: list[tuple[str, dict, float]] = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _executor(self, value) -> ScriptExecutor:
        def _runner(source, context, timeout_seconds, *, filename):
            self.calls.append((source, context, timeout_seconds))
            return SandboxResult(value=value, logs=["ran"], errors=[])

        return ScriptExecutor(CredentialCodec(), ResultOffloader(self.storage), self.store, runner=_runner)

    def test_relational_context_and_plain_output(self) -> None:
        path = self.store.save("report.py", b"result = 1\n")
        descriptor = ConnectionDescriptor(
            name="pg",
            kind="POSTGRESQL",
            host="pg.internal",
            port=5433,
            credential_ref='{"username": "svc", "password": "secret"}',
        )

        payload = self._executor({"ok": True}).execute(descriptor, "analytics", path)

        source, context, timeout_seconds = self.calls[0]
        self.assertEqual(source, "result = 1\n")
        self.assertEqual(timeout_seconds, 60)
        self.assertEqual(
            context["DB_CONFIG"],
            {
                "host": "pg.internal",
                "port": 5433,
                "dbname": "analytics",
                "user": "svc",
                "password": "secret",
                "sslmode": "prefer",
            },
        )
        self.assertEqual(payload, {"output": {"ok": True}, "logs": ["ran"], "errors": []})

    def test_document_context_is_a_uri(self) -> None:
        path = self.store.save("cleanup.py", b"result = None\n")
        descriptor = ConnectionDescriptor(name="m", kind="MONGODB", host="mongo.internal", port=27017)

        self._executor(None).execute(descriptor, "events", path)

        self.assertEqual(self.calls[0][1], {"MONGO_URI": "mongodb://mongo.internal:27017/events"})

    def test_record_list_output_is_truncated(self) -> None:
        path = self.store.save("export.py", b"result = []\n")
        descriptor = ConnectionDescriptor(name="m", kind="MONGODB", host="h", port=27017)
        records = [{"n": idx} for idx in range(120)]

        payload = self._executor(records).execute(descriptor, "events", path)

        self.assertTrue(payload["is_truncated"])
        self.assertEqual(payload["total_rows"], 120)
        self.assertEqual(len(payload["output"]), 100)
        self.assertEqual(payload["output"], payload["rows"])
        self.assertTrue(self.storage.uploads[0].startswith("script_"))

    def test_missing_script_fails(self) -> None:
        descriptor = ConnectionDescriptor(name="m", kind="MONGODB", host="h", port=27017)

        with self.assertRaises(ExecutionFailure) as ctx:
            self._executor(None).execute(descriptor, "events", f"{self._tmp.name}/gone.py")

        self.assertEqual(str(ctx.exception), "Script file not found")
        self.assertEqual(self.calls, [])


class ScriptStoreTests(unittest.TestCase):
    def test_rejects_bad_uploads(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = ScriptStore(tmp, max_bytes=10)
            cases = (("run.sh", b"echo"), ("run.py", b""), ("run.py", b"x" * 11), ("run.py", b"\xff\xfe"))
            for filename, content in cases:
                with self.subTest(filename=filename, size=len(content)):
                    with self.assertRaises(InvalidArgument):
                        store.save(filename, content)


if __name__ == "__main__":
    unittest.main()
