"""Fire-and-forget chat notifications for request lifecycle events."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib import error as urllib_error
from urllib import request as urllib_request

from app.models.query_execution import ExecutionStatus, QueryExecution
from app.models.query_request import QueryRequest, SubmissionType

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 200
_RESULT_PREVIEW_CHARS = 500


class WebhookNotifier:
    """Posts Slack-compatible messages to an incoming webhook.

    Delivery failures are logged and swallowed so a notification outage never
    affects the request lifecycle.
    """

    def __init__(self, webhook_url: str | None, *, frontend_url: str, timeout_seconds: int = 10) -> None:
        self.webhook_url = webhook_url
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def notify_submission(self, request: QueryRequest, manager_email: str | None = None) -> None:
        if request.submission_type == SubmissionType.SCRIPT:
            preview = "[Script Upload]"
        else:
            preview = (request.query_content or "N/A")[:_PREVIEW_CHARS]
        text = (
            ":bell: *New Query Request for Review*\n"
            f"*Requester:* {request.requester_name or request.requester_id}"
            f"{f' ({request.requester_email})' if request.requester_email else ''}\n"
            f"*Database:* {request.instance_name} ({request.db_type})\n"
            f"*POD:* {request.pod_name}\n"
            f"*Type:* {request.submission_type}\n"
            f"*Reviewer:* {manager_email or 'any POD manager'}\n"
            f"*Query:*\n```{preview}```"
        )
        if request.destructive_warnings_json:
            text += "\n:warning: " + "; ".join(request.destructive_warnings_json)
        self._post(text, link_text="Open Approval Dashboard", link_url=f"{self.frontend_url}/approvals")

    def notify_approval_result(self, request: QueryRequest, execution: QueryExecution) -> None:
        succeeded = execution.status == ExecutionStatus.SUCCESS
        emoji = ":white_check_mark:" if succeeded else ":x:"
        status = "Executed Successfully" if succeeded else "Execution Failed"
        if succeeded:
            preview = json.dumps(execution.result_data, default=str)
        else:
            preview = execution.error_message or ""
        if len(preview) > _RESULT_PREVIEW_CHARS:
            preview = preview[:_RESULT_PREVIEW_CHARS] + "..."
        text = (
            f"{emoji} *Query {status}*\n"
            f"*Request:* #{request.id}\n"
            f"*Database:* {request.instance_name} ({request.db_type})\n"
            f"*Approved by:* {request.approver_name or request.approver_id}\n\n"
            f"*Result:*\n```{preview}```"
        )
        self._post(text, link_text="View My Submissions", link_url=f"{self.frontend_url}/history")

    def notify_rejection(self, request: QueryRequest) -> None:
        text = (
            ":no_entry: *Query Request Rejected*\n"
            f"*Request:* #{request.id}\n"
            f"*Database:* {request.instance_name} ({request.db_type})\n"
            f"*Rejected by:* {request.approver_name or request.approver_id}\n"
            f"*Reason:* {request.rejected_reason or 'No reason provided'}"
        )
        self._post(text, link_text="View My Submissions", link_url=f"{self.frontend_url}/history")

    def _post(self, text: str, *, link_text: str, link_url: str) -> None:
        if not self.webhook_url:
            logger.info("notifications.skipped reason=no_webhook_configured")
            return

        payload: dict[str, Any] = {
            "text": text.split("\n", 1)[0],
            "blocks": [
                {"type": "section", "text": {"type": "mrkdwn", "text": text}},
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": link_text},
                            "url": link_url,
                        }
                    ],
                },
            ],
        }
        try:
            req = urllib_request.Request(
                url=self.webhook_url,
                data=json.dumps(payload).encode("utf-8"),
                method="POST",
                headers={"Content-Type": "application/json"},
            )
            with urllib_request.urlopen(req, timeout=self.timeout_seconds) as resp:
                resp.read()
        except urllib_error.HTTPError as exc:
            logger.warning("notifications.delivery_failed status=%d", exc.code)
        except (urllib_error.URLError, TimeoutError) as exc:
            logger.warning("notifications.delivery_failed reason=%s", exc)
        except Exception:
            logger.exception("notifications.delivery_failed reason=unexpected_error")
