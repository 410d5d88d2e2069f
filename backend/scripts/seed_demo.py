"""Seed demo query requests for the approval dashboard.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import delete, select

# Make `app` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.db.session import SessionLocal
from app.models.query_execution import QueryExecution
from app.models.query_request import DbType, QueryRequest
from app.schemas.actor import Actor, Role
from app.schemas.request import QueryRequestCreate
from app.services.requests import reject_request, submit_request


DEMO_REQUESTER = Actor(id="demo-dev", name="Demo Developer", email="dev@example.com", pod_name="pod-1")
DEMO_MANAGER = Actor(
    id="demo-manager",
    name="Demo Manager",
    email="pod1-manager@example.com",
    role=Role.MANAGER,
    pod_name="pod-1",
)


def build_demo_requests() -> list[QueryRequestCreate]:
    """Return a deterministic mix of relational and document-store requests."""

    return [
        QueryRequestCreate(
            db_type=DbType.POSTGRESQL,
            instance_name="test-postgres",
            database_name="postgres",
            query_content="SELECT id, email FROM users ORDER BY id LIMIT 10",
            comments="Checking recent signups",
            pod_name="pod-1",
        ),
        QueryRequestCreate(
            db_type=DbType.POSTGRESQL,
            instance_name="test-postgres",
            database_name="analytics",
            query_content="DELETE FROM events WHERE created_at < now() - interval '90 days'",
            comments="Cleanup of expired events",
            pod_name="pod-1",
        ),
        QueryRequestCreate(
            db_type=DbType.MONGODB,
            instance_name="test-mongo",
            database_name="app",
            query_content='db.orders.find({status: "open"}, {_id: 0, total: 1})',
            comments="Open order totals",
            pod_name="pod-1",
        ),
        QueryRequestCreate(
            db_type=DbType.MONGODB,
            instance_name="test-mongo",
            database_name="events",
            query_content="db.sessions.deleteMany({})",
            comments="Wipe sessions",
            pod_name="pod-1",
        ),
    ]


def reset_requests(db, requester_id: str) -> None:
    """Remove existing demo requests and their executions."""

    request_ids = list(db.scalars(select(QueryRequest.id).where(QueryRequest.requester_id == requester_id)))
    if request_ids:
        db.execute(delete(QueryExecution).where(QueryExecution.request_id.in_(request_ids)))
        db.execute(delete(QueryRequest).where(QueryRequest.id.in_(request_ids)))
    db.commit()


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo query requests for the approval dashboard.")
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete existing demo requests before seeding.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()
    payloads = build_demo_requests()

    with SessionLocal() as db:
        if not args.no_reset:
            reset_requests(db, DEMO_REQUESTER.id)

        created = [submit_request(db, DEMO_REQUESTER, payload) for payload in payloads]
        rejected = reject_request(db, created[-1].id, DEMO_MANAGER, "Too broad; scope the filter first")
        summary = [(request.id, request.db_type, request.destructive_warnings_json) for request in created]

    print("Seed complete")
    print(f"requests_created={len(summary)}")
    print(f"rejected_request_id={rejected.id}")
    for request_id, db_type, warnings in summary:
        print(f"  #{request_id} {db_type} warnings={warnings}")
    print()
    print("Inspect:")
    print("  GET /requests            (X-User-Role: MANAGER, X-User-Pod: pod-1)")
    print("  GET /requests/my-submissions  (X-User-Id: demo-dev)")


if __name__ == "__main__":
    main()
