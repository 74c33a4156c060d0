"""
Application Service of the Bounded Context: Audience Campaigns

Entry point for every campaign use case. Orchestrates repositories, the
segment evaluator and the delivery orchestrator, but holds no business
rules of its own.

Pattern: API Route -> Application Service -> Repository/Domain Service

IMPORTANT: this module raises domain exceptions (app.core.exceptions),
NEVER HTTP exceptions. Converting them is the API layer's job.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

from app.core.exceptions import DeliveryInProgressError, NotFoundError, ValidationError
from app.repositories.deps import get_campaign_repo, get_log_repo
from app.services.campaigns import insights
from app.services.campaigns.orchestrator import DeliveryOrchestrator
from app.services.campaigns.repository import CampaignRepository, CommunicationLogRepository
from app.services.campaigns.stats import StatsAggregator
from app.services.campaigns.types import CampaignData, CampaignStatus, DeliveryStats, LogStatus
from app.services.segments.compiler import compile_rules
from app.services.segments.evaluator import SegmentEvaluator
from app.services.segments.rules import parse_rules
from app.services.segments.suggestions import RuleSuggester, suggest_messages
from app.services.supabase import get_supabase_client

logger = logging.getLogger(__name__)


class CampaignsApplicationService:
    """
    Application Service for the Audience Campaigns context.

    Every public method is one use case. Campaign use cases are scoped to
    the calling user: another user's campaign is reported as not found.

    Raised exceptions:
        - NotFoundError: resource not found
        - ValidationError: invalid input
        - DeliveryInProgressError: a delivery run is already in flight
        - DatabaseError: persistence failure
    """

    def __init__(
        self,
        repository: CampaignRepository,
        log_repository: CommunicationLogRepository,
        evaluator: SegmentEvaluator,
        orchestrator: DeliveryOrchestrator,
        aggregator: Optional[StatsAggregator] = None,
        suggester: Optional[RuleSuggester] = None,
    ):
        """
        Dependencies are injected so tests can pass fakes.

        Args:
            repository: Campaign repository
            log_repository: Communication log repository
            evaluator: Segment evaluator
            orchestrator: Delivery orchestrator (owns the background runs)
            aggregator: Stats aggregator (default: built from the repositories)
            suggester: Rule suggester (default: RuleSuggester())
        """
        self._repository = repository
        self._logs = log_repository
        self._evaluator = evaluator
        self._orchestrator = orchestrator
        self._aggregator = aggregator or StatsAggregator(repository, log_repository)
        self._suggester = suggester or RuleSuggester()

    async def preview_audience(self, rules: Optional[List[Any]]) -> Dict[str, Any]:
        """
        Use Case: count the audience of a rule set and show a sample.

        Missing rules match every customer.

        Raises:
            ValidationError: If rules is not a list.
        """
        if rules is not None and not isinstance(rules, list):
            raise ValidationError("rules must be a list")

        predicate = compile_rules(rules or [])
        result = await self._evaluator.evaluate(predicate)
        logger.info(f"[CampaignsApplicationService] Preview: {result.count} matching customers")
        return result.to_dict()

    async def create_campaign(
        self,
        user_id: str,
        name: Optional[str],
        rules: Optional[List[Any]],
        message: Optional[str],
        audience_size: Optional[int] = None,
    ) -> CampaignData:
        """
        Use Case: create a campaign and start its delivery.

        The audience size is counted here from the rules and fixed for the
        campaign's lifetime; a client-provided size is only compared.

        Returns:
            The created campaign (ACTIVE, delivery already scheduled).

        Raises:
            ValidationError: If name, rules or message is missing.
            DatabaseError: If persistence fails.
        """
        if not name or rules is None or not message:
            raise ValidationError("Name, rules, and message are required")
        if not isinstance(rules, list):
            raise ValidationError("rules must be a list")

        parsed = parse_rules(rules)
        audience = await self._evaluator.count(compile_rules(parsed))
        if audience_size is not None and audience_size != audience:
            logger.warning(
                f"[CampaignsApplicationService] Client audience size {audience_size} "
                f"differs from counted {audience}; using {audience}"
            )

        campaign = await self._repository.create(
            user_id=user_id,
            name=name,
            rules=[rule.to_dict() for rule in parsed],
            message=message,
            audience_size=audience,
            status=CampaignStatus.ACTIVE,
        )

        self._orchestrator.start(campaign.id)
        logger.info(
            f"[CampaignsApplicationService] Campaign created: id={campaign.id}, "
            f"audience={audience}"
        )
        return campaign

    async def get_campaign(self, user_id: str, campaign_id: str) -> CampaignData:
        """
        Use Case: fetch one of the user's campaigns.

        Raises:
            NotFoundError: If the campaign does not exist for this user.
        """
        campaign = await self._repository.get_for_user(campaign_id, user_id)
        if not campaign:
            raise NotFoundError("Campaign", str(campaign_id))
        return campaign

    async def list_campaigns(self, user_id: str, limit: int = 10, page: int = 1) -> List[Dict[str, Any]]:
        """Use Case: the user's campaigns, newest first."""
        if limit < 1 or page < 1:
            raise ValidationError("limit and page must be positive")
        campaigns = await self._repository.list_for_user(user_id, limit=limit, page=page)
        return [campaign.to_dict() for campaign in campaigns]

    async def trigger_delivery(self, user_id: str, campaign_id: str) -> Dict[str, Any]:
        """
        Use Case: re-run delivery for an existing campaign.

        Raises:
            NotFoundError: If the campaign does not exist for this user.
            DeliveryInProgressError: If a run is already in flight.
        """
        campaign = await self.get_campaign(user_id, campaign_id)
        if await self._orchestrator.in_flight(campaign.id):
            raise DeliveryInProgressError(campaign.id)

        self._orchestrator.start(campaign.id)
        logger.info(f"[CampaignsApplicationService] Delivery triggered for {campaign.id}")
        return {"message": "Delivery simulation triggered", "campaignId": campaign.id}

    async def reconcile_stats(self, user_id: str, campaign_id: str) -> Dict[str, Any]:
        """
        Use Case: recompute the campaign's counters from its communication logs.

        Raises:
            NotFoundError: If the campaign does not exist for this user.
        """
        campaign = await self.get_campaign(user_id, campaign_id)
        stats = await self._aggregator.recompute(campaign.id)
        return {"campaignId": campaign.id, "deliveryStats": stats.to_dict()}

    async def analyze_campaign(self, user_id: str, campaign_id: Optional[str]) -> Dict[str, Any]:
        """
        Use Case: insights and recommendations from the campaign's delivery.

        Counts come from the communication logs; a campaign delivered
        without logs is analyzed from its own counters.

        Raises:
            ValidationError: If the campaign id is missing.
            NotFoundError: If the campaign does not exist for this user.
        """
        if not campaign_id:
            raise ValidationError("Campaign ID is required")

        campaign = await self.get_campaign(user_id, campaign_id)
        stats = await self._aggregator.collect(campaign.id)
        if stats.total == 0:
            stats = DeliveryStats(
                sent=campaign.sent_count,
                failed=campaign.failed_count,
                pending=campaign.delivery_stats.pending,
            )

        analysis = insights.analyze_campaign(campaign, stats)
        logger.info(
            f"[CampaignsApplicationService] Analyzed {campaign.id}: "
            f"delivery rate {analysis.delivery_rate}"
        )
        return analysis.to_dict()

    async def list_logs(
        self,
        user_id: str,
        campaign_id: str,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Use Case: the campaign's communication logs, optionally by status.

        Raises:
            NotFoundError: If the campaign does not exist for this user.
            ValidationError: If the status is unknown.
        """
        log_status = None
        if status:
            try:
                log_status = LogStatus(status.upper())
            except ValueError:
                raise ValidationError(
                    f"Invalid status: '{status}'. "
                    f"Accepted values: {[s.value for s in LogStatus]}",
                )

        campaign = await self.get_campaign(user_id, campaign_id)
        logs = await self._logs.list_for_campaign(campaign.id, status=log_status, limit=limit)
        return [log.to_dict() for log in logs]

    async def suggest_rules(self, text: Optional[str]) -> Dict[str, Any]:
        """
        Use Case: turn a free-text audience description into rules.

        Raises:
            ValidationError: If the text is missing.
        """
        if not text or not isinstance(text, str):
            raise ValidationError("Prompt is required")

        rules, source = await self._suggester.suggest(text)
        return {
            "success": True,
            "rules": rules,
            "originalPrompt": text,
            "confidence": 0.9 if rules else 0.5,
            "source": source,
        }

    async def suggest_messages(
        self, rules: Optional[List[Any]], objective: str = "engagement"
    ) -> Dict[str, Any]:
        """
        Use Case: message templates for a rule set.

        Raises:
            ValidationError: If rules is not a list.
        """
        if not isinstance(rules, list):
            raise ValidationError("Rules array is required")

        return {
            "success": True,
            "messages": suggest_messages(rules, objective),
            "objective": objective,
            "rulesAnalyzed": len(rules),
            "source": "Template-based",
        }


@lru_cache()
def get_delivery_orchestrator() -> DeliveryOrchestrator:
    """Process-wide orchestrator; it owns every delivery task of this process."""
    db = get_supabase_client()
    return DeliveryOrchestrator(
        campaign_repository=get_campaign_repo(),
        log_repository=get_log_repo(),
        evaluator=SegmentEvaluator(db),
    )


@lru_cache()
def get_campaigns_service() -> CampaignsApplicationService:
    """
    Returns the CampaignsApplicationService.

    For tests, build it with fakes:
        service = CampaignsApplicationService(
            repository=fake_repo,
            log_repository=fake_logs,
            evaluator=fake_evaluator,
            orchestrator=fake_orchestrator,
        )
    """
    return CampaignsApplicationService(
        repository=get_campaign_repo(),
        log_repository=get_log_repo(),
        evaluator=SegmentEvaluator(get_supabase_client()),
        orchestrator=get_delivery_orchestrator(),
    )
