"""Tests for publish status checks and manual posting."""

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from typer.testing import CliRunner

from content_autopilot.adapters.publisher.base import PublishStatusResult
from content_autopilot.adapters.publisher.errors import UploadError
from content_autopilot.cli import app as cli_app
from content_autopilot.db.models import PostPlanModel
from content_autopilot.domain.enums import PlanStatus, PublishStatus, RunType
from content_autopilot.services.publish_status import (
    PlanNotFoundError,
    PlanStateError,
    PublishStatusChecker,
    mark_posted,
)
from content_autopilot.services.run_log import recent_logs


def _status(session_factory, plan_id) -> tuple[str, str | None]:
    with session_factory() as session:
        plan = session.get(PostPlanModel, plan_id)
        return plan.status, plan.error_message


class TestMarkPosted:
    def test_draft_becomes_posted(self, session_factory, make_plan) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")

        with session_factory() as session:
            mark_posted(session, plan_id)

        assert _status(session_factory, plan_id)[0] == PlanStatus.POSTED
        with session_factory() as session:
            assert [e.run_type for e in recent_logs(session)] == [RunType.MARK_POSTED]

    def test_unknown_plan(self, session_factory) -> None:
        with pytest.raises(PlanNotFoundError):
            with session_factory() as session:
                mark_posted(session, uuid4())

    def test_failed_plan_is_rejected(self, session_factory, make_plan) -> None:
        plan_id = make_plan(PlanStatus.FAILED)

        with pytest.raises(PlanStateError):
            with session_factory() as session:
                mark_posted(session, plan_id)

        assert _status(session_factory, plan_id)[0] == PlanStatus.FAILED


class TestPublishStatusChecker:
    @pytest.fixture
    def checker(self, stub_publisher, session_factory) -> PublishStatusChecker:
        return PublishStatusChecker(stub_publisher, session_factory)

    @pytest.mark.asyncio
    async def test_publish_complete_posts_plan(
        self, checker, stub_publisher, session_factory, make_plan
    ) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")
        stub_publisher.get_publish_status = AsyncMock(
            return_value=PublishStatusResult(status=PublishStatus.PUBLISH_COMPLETE)
        )

        check = await checker.check(plan_id)

        stub_publisher.get_publish_status.assert_awaited_once_with("p_1")
        assert check.plan_status == PlanStatus.POSTED
        assert _status(session_factory, plan_id) == (PlanStatus.POSTED, None)

    @pytest.mark.asyncio
    async def test_failed_publish_fails_plan(
        self, checker, stub_publisher, session_factory, make_plan
    ) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")
        stub_publisher.get_publish_status = AsyncMock(
            return_value=PublishStatusResult(
                status=PublishStatus.FAILED, fail_reason="file_format_check_failed"
            )
        )

        check = await checker.check(plan_id)

        assert check.fail_reason == "file_format_check_failed"
        assert _status(session_factory, plan_id) == (
            PlanStatus.FAILED,
            "file_format_check_failed",
        )

    @pytest.mark.asyncio
    async def test_processing_leaves_plan_alone(
        self, checker, stub_publisher, session_factory, make_plan
    ) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")
        stub_publisher.get_publish_status = AsyncMock(
            return_value=PublishStatusResult(status=PublishStatus.PROCESSING_UPLOAD)
        )

        check = await checker.check(plan_id)

        assert check.publish_status == PublishStatus.PROCESSING_UPLOAD
        assert _status(session_factory, plan_id)[0] == PlanStatus.UPLOADED_DRAFT

    @pytest.mark.asyncio
    async def test_plan_without_publish_id(self, checker, make_plan) -> None:
        plan_id = make_plan(PlanStatus.RENDERED)

        with pytest.raises(PlanStateError):
            await checker.check(plan_id)

    @pytest.mark.asyncio
    async def test_sync_continues_past_failed_request(
        self, checker, stub_publisher, session_factory, make_plan
    ) -> None:
        broken = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_broken")
        healthy = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_ok")
        make_plan(PlanStatus.RENDERED)

        async def get_status(publish_id: str) -> PublishStatusResult:
            if publish_id == "p_broken":
                raise UploadError("TikTok API error (500): boom", status_code=500)
            return PublishStatusResult(status=PublishStatus.PUBLISH_COMPLETE)

        stub_publisher.get_publish_status = get_status

        checks = await checker.sync_drafts()

        by_plan = {check.plan_id: check for check in checks}
        assert set(by_plan) == {str(broken), str(healthy)}
        assert by_plan[str(broken)].error == "TikTok API error (500): boom"
        assert _status(session_factory, broken)[0] == PlanStatus.UPLOADED_DRAFT
        assert _status(session_factory, healthy)[0] == PlanStatus.POSTED


class TestPlanEndpoints:
    def test_mark_posted(self, test_client: TestClient, session_factory, make_plan) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")

        response = test_client.post(f"/api/v1/plans/{plan_id}/posted")

        assert response.status_code == 200
        assert response.json() == {"id": str(plan_id), "status": "POSTED"}
        assert _status(session_factory, plan_id)[0] == PlanStatus.POSTED

    def test_mark_posted_unknown_plan(self, test_client: TestClient) -> None:
        response = test_client.post(f"/api/v1/plans/{uuid4()}/posted")
        assert response.status_code == 404

    def test_mark_posted_failed_plan(self, test_client: TestClient, make_plan) -> None:
        plan_id = make_plan(PlanStatus.FAILED)
        response = test_client.post(f"/api/v1/plans/{plan_id}/posted")
        assert response.status_code == 409

    def test_publish_status_check(
        self, test_client: TestClient, session_factory, make_plan
    ) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")

        response = test_client.get(f"/api/v1/plans/{plan_id}/publish-status")

        assert response.status_code == 200
        data = response.json()
        assert data["publish_status"] == "PUBLISH_COMPLETE"
        assert data["plan_status"] == "POSTED"
        assert _status(session_factory, plan_id)[0] == PlanStatus.POSTED

    def test_publish_status_without_publish_id(self, test_client: TestClient, make_plan) -> None:
        plan_id = make_plan(PlanStatus.PLANNED)
        response = test_client.get(f"/api/v1/plans/{plan_id}/publish-status")
        assert response.status_code == 409

    def test_publish_status_sync(self, test_client: TestClient, make_plan) -> None:
        make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")
        make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_2")

        response = test_client.post("/api/v1/plans/publish-status/sync")

        assert response.status_code == 200
        assert [check["plan_status"] for check in response.json()] == ["POSTED", "POSTED"]


class TestPlanCommands:
    def test_mark_posted_command(self, session_factory, make_plan) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")

        result = CliRunner().invoke(cli_app, ["mark-posted", str(plan_id)])

        assert result.exit_code == 0
        assert "marked POSTED" in result.output
        assert _status(session_factory, plan_id)[0] == PlanStatus.POSTED

    def test_mark_posted_command_rejects_bad_id(self) -> None:
        result = CliRunner().invoke(cli_app, ["mark-posted", "not-a-uuid"])

        assert result.exit_code == 1
        assert "Invalid plan ID" in result.output

    def test_publish_status_command_syncs_drafts(self, session_factory, make_plan) -> None:
        plan_id = make_plan(PlanStatus.UPLOADED_DRAFT, publish_id="p_1")

        result = CliRunner().invoke(cli_app, ["publish-status"])

        assert result.exit_code == 0
        assert _status(session_factory, plan_id)[0] == PlanStatus.POSTED

    def test_publish_status_command_without_drafts(self) -> None:
        result = CliRunner().invoke(cli_app, ["publish-status"])

        assert result.exit_code == 0
        assert "No uploaded drafts" in result.output
