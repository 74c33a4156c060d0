"""
Tests for the Campaigns Application Service.

Checks that each use case delegates to the repositories, the evaluator
and the orchestrator, and raises domain exceptions (never HTTPException).
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.contexts.campaigns.application import CampaignsApplicationService
from app.core.exceptions import DeliveryInProgressError, NotFoundError, ValidationError
from app.services.campaigns.types import (
    CampaignData,
    CampaignStatus,
    CommunicationLogData,
    DeliveryStats,
    LogStatus,
)
from app.services.segments.compiler import MatchAll, NumericCondition
from app.services.segments.evaluator import SegmentResult
from app.services.segments.suggestions import SOURCE_PATTERNS


@pytest.fixture
def mock_repository():
    """Mocked campaign repository."""
    return AsyncMock()


@pytest.fixture
def mock_logs():
    return AsyncMock()


@pytest.fixture
def mock_evaluator():
    """Segment evaluator counting 25 customers."""
    evaluator = AsyncMock()
    evaluator.count = AsyncMock(return_value=25)
    evaluator.evaluate = AsyncMock(return_value=SegmentResult(count=25))
    return evaluator


@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.start = MagicMock()
    orchestrator.in_flight = AsyncMock(return_value=False)
    return orchestrator


@pytest.fixture
def mock_aggregator():
    aggregator = AsyncMock()
    aggregator.recompute = AsyncMock(return_value=DeliveryStats(sent=7, failed=3))
    return aggregator


@pytest.fixture
def mock_suggester():
    suggester = AsyncMock()
    suggester.suggest = AsyncMock(return_value=([{"id": 1, "field": "visits"}], SOURCE_PATTERNS))
    return suggester


@pytest.fixture
def service(mock_repository, mock_logs, mock_evaluator, mock_orchestrator, mock_aggregator, mock_suggester):
    """Application Service with injected dependencies."""
    return CampaignsApplicationService(
        repository=mock_repository,
        log_repository=mock_logs,
        evaluator=mock_evaluator,
        orchestrator=mock_orchestrator,
        aggregator=mock_aggregator,
        suggester=mock_suggester,
    )


@pytest.fixture
def campaign():
    """Test campaign."""
    return CampaignData(
        id="camp-1",
        user_id="user-1",
        name="Spring sale",
        message="Hi {name}",
        rules=[{"id": 1, "field": "visits", "operator": ">", "value": "2", "logicalOperator": None}],
        audience_size=25,
        status=CampaignStatus.ACTIVE,
    )


RULES = [{"id": 1, "field": "visits", "operator": ">", "value": "2"}]


# --- preview_audience ---


class TestPreviewAudience:

    @pytest.mark.asyncio
    async def test_returns_count_and_preview(self, service, mock_evaluator):
        result = await service.preview_audience(RULES)

        assert result == {"count": 25, "preview": []}
        predicate = mock_evaluator.evaluate.await_args.args[0]
        assert isinstance(predicate, NumericCondition)

    @pytest.mark.asyncio
    async def test_missing_rules_match_everyone(self, service, mock_evaluator):
        await service.preview_audience(None)

        assert isinstance(mock_evaluator.evaluate.await_args.args[0], MatchAll)

    @pytest.mark.asyncio
    async def test_rules_must_be_a_list(self, service):
        with pytest.raises(ValidationError):
            await service.preview_audience({"field": "visits"})


# --- create_campaign ---


class TestCreateCampaign:

    @pytest.mark.asyncio
    async def test_creates_and_starts_delivery(self, service, mock_repository, mock_orchestrator, campaign):
        mock_repository.create.return_value = campaign

        result = await service.create_campaign("user-1", "Spring sale", RULES, "Hi {name}")

        assert result.id == "camp-1"
        kwargs = mock_repository.create.await_args.kwargs
        assert kwargs["user_id"] == "user-1"
        assert kwargs["audience_size"] == 25
        assert kwargs["status"] == CampaignStatus.ACTIVE
        assert kwargs["rules"] == [
            {"id": 1, "field": "visits", "operator": ">", "value": "2", "logicalOperator": None}
        ]
        mock_orchestrator.start.assert_called_once_with("camp-1")

    @pytest.mark.asyncio
    async def test_client_audience_size_is_not_trusted(self, service, mock_repository, campaign):
        mock_repository.create.return_value = campaign

        await service.create_campaign("user-1", "Spring sale", RULES, "Hi", audience_size=999)

        assert mock_repository.create.await_args.kwargs["audience_size"] == 25

    @pytest.mark.asyncio
    async def test_empty_rules_are_allowed(self, service, mock_repository, campaign):
        mock_repository.create.return_value = campaign

        await service.create_campaign("user-1", "Everyone", [], "Hi")

        mock_repository.create.assert_awaited_once()

    @pytest.mark.parametrize("name,rules,message", [
        (None, RULES, "Hi"),
        ("", RULES, "Hi"),
        ("Name", None, "Hi"),
        ("Name", RULES, None),
        ("Name", RULES, ""),
    ])
    @pytest.mark.asyncio
    async def test_required_fields(self, service, mock_repository, name, rules, message):
        with pytest.raises(ValidationError, match="Name, rules, and message are required"):
            await service.create_campaign("user-1", name, rules, message)

        mock_repository.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rules_must_be_a_list(self, service):
        with pytest.raises(ValidationError, match="must be a list"):
            await service.create_campaign("user-1", "Name", "visits > 2", "Hi")


# --- get / list ---


class TestGetCampaign:

    @pytest.mark.asyncio
    async def test_found(self, service, mock_repository, campaign):
        mock_repository.get_for_user.return_value = campaign

        assert (await service.get_campaign("user-1", "camp-1")).id == "camp-1"
        mock_repository.get_for_user.assert_awaited_once_with("camp-1", "user-1")

    @pytest.mark.asyncio
    async def test_not_found(self, service, mock_repository):
        mock_repository.get_for_user.return_value = None

        with pytest.raises(NotFoundError) as exc_info:
            await service.get_campaign("user-1", "camp-9")

        assert exc_info.value.details == {"id": "camp-9"}


class TestListCampaigns:

    @pytest.mark.asyncio
    async def test_returns_wire_dicts(self, service, mock_repository, campaign):
        mock_repository.list_for_user.return_value = [campaign]

        result = await service.list_campaigns("user-1", limit=5, page=2)

        assert result[0]["_id"] == "camp-1"
        mock_repository.list_for_user.assert_awaited_once_with("user-1", limit=5, page=2)

    @pytest.mark.asyncio
    async def test_rejects_invalid_paging(self, service):
        with pytest.raises(ValidationError):
            await service.list_campaigns("user-1", limit=0)


# --- trigger_delivery ---


class TestTriggerDelivery:

    @pytest.mark.asyncio
    async def test_starts_run(self, service, mock_repository, mock_orchestrator, campaign):
        mock_repository.get_for_user.return_value = campaign

        result = await service.trigger_delivery("user-1", "camp-1")

        assert result == {"message": "Delivery simulation triggered", "campaignId": "camp-1"}
        mock_orchestrator.start.assert_called_once_with("camp-1")

    @pytest.mark.asyncio
    async def test_refused_while_in_flight(self, service, mock_repository, mock_orchestrator, campaign):
        mock_repository.get_for_user.return_value = campaign
        mock_orchestrator.in_flight.return_value = True

        with pytest.raises(DeliveryInProgressError):
            await service.trigger_delivery("user-1", "camp-1")

        mock_orchestrator.start.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_campaign(self, service, mock_repository, mock_orchestrator):
        mock_repository.get_for_user.return_value = None

        with pytest.raises(NotFoundError):
            await service.trigger_delivery("user-1", "camp-9")

        mock_orchestrator.in_flight.assert_not_awaited()


# --- reconcile / logs ---


class TestReconcileStats:

    @pytest.mark.asyncio
    async def test_returns_recomputed_stats(self, service, mock_repository, mock_aggregator, campaign):
        mock_repository.get_for_user.return_value = campaign

        result = await service.reconcile_stats("user-1", "camp-1")

        assert result == {
            "campaignId": "camp-1",
            "deliveryStats": {"sent": 7, "failed": 3, "pending": 0},
        }
        mock_aggregator.recompute.assert_awaited_once_with("camp-1")


class TestAnalyzeCampaign:

    @pytest.mark.asyncio
    async def test_analyzes_log_counts(self, service, mock_repository, mock_aggregator, campaign):
        mock_repository.get_for_user.return_value = campaign
        mock_aggregator.collect = AsyncMock(return_value=DeliveryStats(sent=18, failed=2, pending=5))

        result = await service.analyze_campaign("user-1", "camp-1")

        assert result["metrics"]["deliveryRate"] == 90.0
        assert result["metrics"]["pending"] == 5
        assert result["insights"][0] == "Reached 18 of 25 customers (90.0% delivery rate)"
        mock_aggregator.collect.assert_awaited_once_with("camp-1")
        mock_aggregator.recompute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_campaign_counters(self, service, mock_repository, mock_aggregator, campaign):
        campaign.sent_count = 20
        campaign.failed_count = 5
        mock_repository.get_for_user.return_value = campaign
        mock_aggregator.collect = AsyncMock(return_value=DeliveryStats())

        result = await service.analyze_campaign("user-1", "camp-1")

        assert result["metrics"]["sent"] == 20
        assert result["metrics"]["deliveryRate"] == 80.0

    @pytest.mark.asyncio
    async def test_requires_campaign_id(self, service):
        with pytest.raises(ValidationError, match="Campaign ID is required"):
            await service.analyze_campaign("user-1", None)

    @pytest.mark.asyncio
    async def test_other_users_campaign(self, service, mock_repository):
        mock_repository.get_for_user.return_value = None

        with pytest.raises(NotFoundError):
            await service.analyze_campaign("user-2", "camp-1")


class TestListLogs:

    @pytest.mark.asyncio
    async def test_filters_by_status(self, service, mock_repository, mock_logs, campaign):
        mock_repository.get_for_user.return_value = campaign
        mock_logs.list_for_campaign.return_value = [
            CommunicationLogData(
                id="log-1",
                campaign_id="camp-1",
                customer_id="c1",
                customer_email="ana@gmail.com",
                customer_name="Ana",
                message="Hi {name}",
                personalized_message="Hi Ana",
                status=LogStatus.SENT,
            )
        ]

        result = await service.list_logs("user-1", "camp-1", status="sent", limit=10)

        assert result[0]["status"] == "SENT"
        assert result[0]["personalizedMessage"] == "Hi Ana"
        mock_logs.list_for_campaign.assert_awaited_once_with("camp-1", status=LogStatus.SENT, limit=10)

    @pytest.mark.asyncio
    async def test_invalid_status(self, service):
        with pytest.raises(ValidationError, match="Invalid status"):
            await service.list_logs("user-1", "camp-1", status="bounced")


# --- suggestions ---


class TestSuggestions:

    @pytest.mark.asyncio
    async def test_suggest_rules(self, service, mock_suggester):
        result = await service.suggest_rules("frequent shoppers")

        assert result["success"] is True
        assert result["originalPrompt"] == "frequent shoppers"
        assert result["source"] == SOURCE_PATTERNS
        assert result["confidence"] == 0.9
        mock_suggester.suggest.assert_awaited_once_with("frequent shoppers")

    @pytest.mark.asyncio
    async def test_suggest_rules_requires_text(self, service):
        with pytest.raises(ValidationError, match="Prompt is required"):
            await service.suggest_rules("")

    @pytest.mark.asyncio
    async def test_suggest_messages(self, service):
        result = await service.suggest_messages(
            [{"field": "lastVisit", "operator": ">", "value": "60"}], "winback"
        )

        assert result["objective"] == "winback"
        assert result["rulesAnalyzed"] == 1
        assert result["messages"][0]["variant"] == "Win-back"

    @pytest.mark.asyncio
    async def test_suggest_messages_requires_rules(self, service):
        with pytest.raises(ValidationError, match="Rules array is required"):
            await service.suggest_messages(None)
