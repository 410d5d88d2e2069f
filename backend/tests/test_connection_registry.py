"""Unit tests for the instance registry and credential codec."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from cryptography.fernet import Fernet

from app.errors import ExecutionFailure, InstanceNotFound
from app.services.connection_registry import ConnectionDescriptor, ConnectionRegistry, load_registry
from app.services.credentials import CredentialCodec, Credentials


class ConnectionRegistryTests(unittest.TestCase):
    def test_load_from_json_with_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "databases.json"
            path.write_text(
                json.dumps(
                    {
                        "databases": [
                            {"name": "pg-main", "type": "postgresql", "host": "pg", "databases": ["app"]},
                            {"name": "mongo-main", "kind": "MONGODB", "host": "mongo", "port": 27018},
                        ]
                    }
                ),
                encoding="utf-8",
            )

            registry = load_registry(path)

        postgres = registry.resolve("pg-main", "POSTGRESQL")
        self.assertEqual(postgres.port, 5432)
        self.assertEqual(postgres.ssl_mode, "prefer")
        self.assertEqual(postgres.databases, ("app",))
        self.assertEqual(registry.resolve("mongo-main", "MONGODB").port, 27018)
        self.assertEqual([entry.name for entry in registry.entries()], ["mongo-main", "pg-main"])

    def test_missing_file_yields_empty_registry(self) -> None:
        registry = load_registry("/nonexistent/databases.json")

        self.assertEqual(registry.entries(), [])

    def test_resolve_miss_message(self) -> None:
        registry = ConnectionRegistry([])

        with self.assertRaises(InstanceNotFound) as ctx:
            registry.resolve("ghost", "MONGODB")

        self.assertEqual(str(ctx.exception), "Database instance ghost (MONGODB) not found in configuration")

    def test_duplicates_are_rejected(self) -> None:
        entry = ConnectionDescriptor(name="a", kind="POSTGRESQL", host="h", port=1)

        with self.assertRaises(ValueError):
            ConnectionRegistry([entry, entry])

    def test_public_view_hides_credentials(self) -> None:
        entry = ConnectionDescriptor(name="a", kind="POSTGRESQL", host="h", port=1, credential_ref="secret")

        self.assertNotIn("credential_ref", entry.public_view())


class CredentialCodecTests(unittest.TestCase):
    def test_fernet_round_trip(self) -> None:
        codec = CredentialCodec(Fernet.generate_key().decode("utf-8"))

        token = codec.encrypt(Credentials(username="svc", password="s3cret"))

        self.assertNotIn("s3cret", token)
        self.assertEqual(codec.decrypt(token), Credentials(username="svc", password="s3cret"))

    def test_wrong_key_fails_as_execution_failure(self) -> None:
        token = CredentialCodec(Fernet.generate_key().decode("utf-8")).encrypt(Credentials("svc", "pw"))

        with self.assertRaises(ExecutionFailure):
            CredentialCodec(Fernet.generate_key().decode("utf-8")).decrypt(token)

    def test_plaintext_mode_and_empty_reference(self) -> None:
        codec = CredentialCodec()

        self.assertEqual(codec.decrypt('{"username": "u", "password": "p"}'), Credentials("u", "p"))
        self.assertEqual(codec.decrypt(None), Credentials())
        with self.assertRaises(ExecutionFailure):
            codec.decrypt("not-json")


if __name__ == "__main__":
    unittest.main()
