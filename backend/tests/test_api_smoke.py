"""HTTP smoke tests for the request, execution and catalog routes."""

from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, delete, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.dependencies import get_db
from app.dependencies import (
    get_dispatcher,
    get_notifier,
    get_object_storage,
    get_pods,
    get_registry,
    get_script_store,
)
from app.execution.types import DispatchOutcome
from app.main import app
from app.models.base import Base
from app.models.query_execution import QueryExecution
from app.models.query_request import QueryRequest
from app.schemas.catalog import PodRead
from app.services.connection_registry import ConnectionDescriptor, ConnectionRegistry
from app.services.object_storage import LocalObjectStorage
from app.services.script_store import ScriptStore

DEVELOPER_HEADERS = {"X-User-Id": "dev-1", "X-User-Name": "Dev One", "X-User-Role": "DEVELOPER", "X-User-Pod": "pod-1"}
MANAGER_HEADERS = {"X-User-Id": "mgr-1", "X-User-Name": "Manager One", "X-User-Role": "MANAGER", "X-User-Pod": "pod-1"}
OTHER_MANAGER_HEADERS = {"X-User-Id": "mgr-2", "X-User-Role": "MANAGER", "X-User-Pod": "pod-2"}


class _RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[str] = []

    def notify_submission(self, request, manager_email=None) -> None:
        self.events.append(f"submitted:{request.id}:{manager_email}")

    def notify_approval_result(self, request, execution) -> None:
        self.events.append(f"approved:{request.id}:{execution.status}")

    def notify_rejection(self, request) -> None:
        self.events.append(f"rejected:{request.id}")


class _StubDispatcher:
    def __init__(self) -> None:
        self.outcome = DispatchOutcome(success=True, result={"rows": [{"id": 1}], "is_truncated": False, "total_rows": 1})

    def dispatch(self, request) -> DispatchOutcome:
        return self.outcome


class ApiSmokeTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        with self.SessionLocal() as db:
            db.execute(delete(QueryExecution))
            db.execute(delete(QueryRequest))
            db.commit()

        self._tmp = tempfile.TemporaryDirectory()
        self.storage = LocalObjectStorage(root_dir=self._tmp.name)
        self.notifier = _RecordingNotifier()
        self.dispatcher = _StubDispatcher()
        registry = ConnectionRegistry(
            [
                ConnectionDescriptor(
                    name="test-postgres",
                    kind="POSTGRESQL",
                    host="pg",
                    port=5432,
                    credential_ref='{"username": "svc", "password": "secret"}',
                    databases=("analytics",),
                )
            ]
        )

        def _get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db
        app.dependency_overrides[get_dispatcher] = lambda: self.dispatcher
        app.dependency_overrides[get_notifier] = lambda: self.notifier
        app.dependency_overrides[get_object_storage] = lambda: self.storage
        app.dependency_overrides[get_registry] = lambda: registry
        app.dependency_overrides[get_script_store] = lambda: ScriptStore(str(Path(self._tmp.name) / "scripts"))
        app.dependency_overrides[get_pods] = lambda: [PodRead(name="pod-1", manager_email="pod1@example.com")]
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self._tmp.cleanup()

    def _submit(self, **fields) -> dict:
        form = {
            "db_type": "POSTGRESQL",
            "instance_name": "test-postgres",
            "database_name": "analytics",
            "submission_type": "QUERY",
            "query_content": "SELECT 1",
            "pod_name": "pod-1",
        }
        form.update(fields)
        response = self.client.post("/requests", data=form, headers=DEVELOPER_HEADERS)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def test_health(self) -> None:
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_missing_identity_is_unauthorized(self) -> None:
        response = self.client.get("/requests/my-submissions")

        self.assertEqual(response.status_code, 401)

    def test_submit_approve_and_read_execution(self) -> None:
        created = self._submit(query_content="DROP TABLE audit")
        self.assertEqual(created["status"], "PENDING")
        self.assertEqual(created["destructive_warnings"], ["Query contains: DROP TABLE"])

        approved = self.client.post(f"/requests/{created['id']}/approve", headers=MANAGER_HEADERS)
        self.assertEqual(approved.status_code, 200, approved.text)
        self.assertEqual(approved.json()["data"]["request"]["status"], "EXECUTED")
        self.assertEqual(approved.json()["data"]["execution_status"], "SUCCESS")

        again = self.client.post(f"/requests/{created['id']}/approve", headers=MANAGER_HEADERS)
        self.assertEqual(again.status_code, 400)

        details = self.client.get(f"/requests/{created['id']}/execution", headers=DEVELOPER_HEADERS)
        self.assertEqual(details.status_code, 200, details.text)
        self.assertEqual(details.json()["data"]["result_data"]["rows"], [{"id": 1}])
        self.assertFalse(details.json()["data"]["csv_available"])

        csv_response = self.client.get(f"/requests/{created['id']}/csv", headers=DEVELOPER_HEADERS)
        self.assertEqual(csv_response.status_code, 400)

        self.assertEqual(
            self.notifier.events,
            [f"submitted:{created['id']}:pod1@example.com", f"approved:{created['id']}:SUCCESS"],
        )

    def test_failed_execution_still_returns_ok(self) -> None:
        created = self._submit()
        self.dispatcher.outcome = DispatchOutcome(success=False, error="connection refused")

        approved = self.client.post(f"/requests/{created['id']}/approve", headers=MANAGER_HEADERS)

        self.assertEqual(approved.status_code, 200)
        self.assertEqual(approved.json()["data"]["request"]["status"], "FAILED")
        self.assertEqual(approved.json()["data"]["error"], "connection refused")

    def test_other_pod_manager_is_forbidden(self) -> None:
        created = self._submit()

        response = self.client.post(
            f"/requests/{created['id']}/reject",
            json={"reason": "nope"},
            headers=OTHER_MANAGER_HEADERS,
        )

        self.assertEqual(response.status_code, 403)
        current = self.client.get(f"/requests/{created['id']}", headers=DEVELOPER_HEADERS)
        self.assertEqual(current.json()["data"]["status"], "PENDING")

    def test_reject_through_status_update(self) -> None:
        created = self._submit()

        bad = self.client.put(f"/requests/{created['id']}", json={"status": "EXECUTED"}, headers=MANAGER_HEADERS)
        ok = self.client.put(
            f"/requests/{created['id']}",
            json={"status": "REJECTED", "rejected_reason": "duplicate"},
            headers=MANAGER_HEADERS,
        )

        self.assertEqual(bad.status_code, 400)
        self.assertEqual(ok.status_code, 200, ok.text)
        self.assertEqual(ok.json()["data"]["request"]["rejected_reason"], "duplicate")
        self.assertEqual(self.notifier.events[-1], f"rejected:{created['id']}")

    def test_script_upload(self) -> None:
        response = self.client.post(
            "/requests",
            data={
                "db_type": "POSTGRESQL",
                "instance_name": "test-postgres",
                "database_name": "analytics",
                "submission_type": "SCRIPT",
                "pod_name": "pod-1",
            },
            files={"script_file": ("report.py", b"result = 1\n", "text/x-python")},
            headers=DEVELOPER_HEADERS,
        )

        self.assertEqual(response.status_code, 201, response.text)
        data = response.json()["data"]
        self.assertIsNone(data["query_content"])
        self.assertTrue(data["script_path"].endswith("-report.py"))

        rejected = self.client.post(
            "/requests",
            data={
                "db_type": "POSTGRESQL",
                "instance_name": "test-postgres",
                "database_name": "analytics",
                "submission_type": "SCRIPT",
                "pod_name": "pod-1",
            },
            files={"script_file": ("report.sh", b"echo hi\n", "text/plain")},
            headers=DEVELOPER_HEADERS,
        )
        self.assertEqual(rejected.status_code, 400)

    def test_truncated_result_download_and_expiry(self) -> None:
        created = self._submit()
        locator = self.storage.upload("id\n1\n2\n", "query_test.csv")
        self.dispatcher.outcome = DispatchOutcome(
            success=True,
            result={"rows": [{"id": 1}], "is_truncated": True, "total_rows": 2, "result_file_path": locator},
        )
        self.client.post(f"/requests/{created['id']}/approve", headers=MANAGER_HEADERS)

        download = self.client.get(f"/requests/{created['id']}/csv", headers=DEVELOPER_HEADERS)
        self.assertEqual(download.status_code, 200)
        self.assertEqual(download.text, "id\n1\n2\n")
        self.assertTrue(download.headers["content-type"].startswith("text/csv"))

        with self.SessionLocal() as db:
            db.execute(
                update(QueryExecution)
                .where(QueryExecution.request_id == created["id"])
                .values(created_at=datetime.now(timezone.utc) - timedelta(days=31))
            )
            db.commit()

        expired = self.client.get(f"/requests/{created['id']}/csv", headers=DEVELOPER_HEADERS)
        self.assertEqual(expired.status_code, 410)
        details = self.client.get(f"/requests/{created['id']}/execution", headers=DEVELOPER_HEADERS)
        self.assertTrue(details.json()["data"]["csv_expired"])

    def test_screen_and_catalog(self) -> None:
        screen = self.client.post(
            "/requests/screen",
            json={"content": "db.users.drop()", "db_type": "MONGODB"},
            headers=DEVELOPER_HEADERS,
        )
        instances = self.client.get("/instances", headers=DEVELOPER_HEADERS)
        databases = self.client.get("/instances/test-postgres/databases", headers=DEVELOPER_HEADERS)
        missing = self.client.get("/instances/nowhere/databases", headers=DEVELOPER_HEADERS)
        pods = self.client.get("/pods", headers=DEVELOPER_HEADERS)

        self.assertEqual(screen.json()["data"], {"is_destructive": True, "warnings": ["Query contains: .drop("]})
        self.assertEqual(instances.json()["data"][0]["name"], "test-postgres")
        self.assertNotIn("credential_ref", instances.json()["data"][0])
        self.assertEqual(databases.json()["data"], ["analytics"])
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(pods.json()["data"][0]["name"], "pod-1")

    def test_listing_requires_reviewer_role(self) -> None:
        self._submit()

        as_developer = self.client.get("/requests", headers=DEVELOPER_HEADERS)
        as_manager = self.client.get("/requests", headers=MANAGER_HEADERS)
        mine = self.client.get("/requests/my-submissions", headers=DEVELOPER_HEADERS)

        self.assertEqual(as_developer.status_code, 403)
        self.assertEqual(as_manager.json()["data"]["total"], 1)
        self.assertEqual(mine.json()["data"]["items"][0]["requester_id"], "dev-1")


if __name__ == "__main__":
    unittest.main()
