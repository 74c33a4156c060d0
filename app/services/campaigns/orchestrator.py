"""
Delivery orchestrator.

Simulates asynchronous, partially failing bulk delivery of a campaign:
the run walks a fixed number of steps, sleeping between them, and after
each step persists the sent/failed/pending counters and the status
(ACTIVE until the last step, then COMPLETED).

Responsibilities:
- Owning one background task per campaign (start/cancel/shutdown)
- Holding the persisted in-flight marker while a run steps
- Creating one communication log per recipient and moving each to
  SENT or FAILED as the steps progress
- Marking the campaign FAILED when a run breaks
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, List, Optional

from app.core.config import settings
from app.core.distributed_lock import DistributedLock
from app.core.exceptions import DeliveryInProgressError
from app.core.logging import get_logger
from app.core.tasks import TaskRegistry
from app.services.campaigns.repository import CampaignRepository, CommunicationLogRepository
from app.services.campaigns.types import (
    CampaignData,
    CampaignStatus,
    CommunicationLogData,
    personalize,
)
from app.services.segments.compiler import compile_rules
from app.services.segments.evaluator import SegmentEvaluator

logger = logging.getLogger(__name__)

SIMULATED_FAILURE = "Simulated delivery failure"


@dataclass(frozen=True)
class DeliverySnapshot:
    """Counters after one step."""

    step: int
    sent: int
    failed: int
    pending: int
    status: CampaignStatus


@dataclass(frozen=True)
class DeliveryPlan:
    """
    Target counters of a run, fixed for the whole run.

    sent + failed + pending == audience_size holds at every step, and
    sent/failed never decrease. Failures only land on the last step.
    """

    audience_size: int
    steps: int
    total_sent: int
    total_failed: int

    @classmethod
    def for_audience(cls, audience_size: int, success_rate: float, steps: int) -> "DeliveryPlan":
        steps = max(int(steps), 1)
        total_sent = math.floor(audience_size * success_rate)
        total_sent = min(max(total_sent, 0), audience_size)
        return cls(
            audience_size=audience_size,
            steps=steps,
            total_sent=total_sent,
            total_failed=audience_size - total_sent,
        )

    @property
    def sent_per_step(self) -> int:
        return math.ceil(self.total_sent / self.steps)

    def snapshot(self, step: int) -> DeliverySnapshot:
        """Counters after `step` (1-based)."""
        final = step >= self.steps
        sent = min(self.total_sent, step * self.sent_per_step)
        failed = self.total_failed if final else 0
        return DeliverySnapshot(
            step=step,
            sent=sent,
            failed=failed,
            pending=self.audience_size - sent - failed,
            status=CampaignStatus.COMPLETED if final else CampaignStatus.ACTIVE,
        )

    def snapshots(self) -> Iterator[DeliverySnapshot]:
        for step in range(1, self.steps + 1):
            yield self.snapshot(step)


def _default_lock_factory(key: str) -> DistributedLock:
    return DistributedLock(key, timeout=settings.DELIVERY_LOCK_TIMEOUT_SECONDS)


class DeliveryOrchestrator:
    """Runs staged delivery for campaigns."""

    def __init__(
        self,
        campaign_repository: CampaignRepository,
        log_repository: Optional[CommunicationLogRepository] = None,
        evaluator: Optional[SegmentEvaluator] = None,
        lock_factory: Optional[Callable[[str], DistributedLock]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        steps: Optional[int] = None,
        step_interval: Optional[float] = None,
        success_rate: Optional[float] = None,
        write_logs: Optional[bool] = None,
    ):
        """
        Args:
            campaign_repository: Campaign persistence
            log_repository: Communication logs (None disables per-recipient logs)
            evaluator: Resolves recipients (None disables per-recipient logs)
            lock_factory: Builds the in-flight marker for a key
            sleep: Awaitable used between steps (default asyncio.sleep)
            steps: Number of steps (default DELIVERY_STEPS)
            step_interval: Seconds between steps (default DELIVERY_STEP_INTERVAL_SECONDS)
            success_rate: Share of the audience delivered (default DELIVERY_SUCCESS_RATE)
            write_logs: Create/advance communication logs (default DELIVERY_WRITE_LOGS)
        """
        self.campaigns = campaign_repository
        self.logs = log_repository
        self.evaluator = evaluator
        self._lock_factory = lock_factory or _default_lock_factory
        self._sleep = sleep or asyncio.sleep
        self.steps = steps if steps is not None else settings.DELIVERY_STEPS
        self.step_interval = (
            step_interval if step_interval is not None else settings.DELIVERY_STEP_INTERVAL_SECONDS
        )
        self.success_rate = (
            success_rate if success_rate is not None else settings.DELIVERY_SUCCESS_RATE
        )
        if write_logs is None:
            write_logs = settings.DELIVERY_WRITE_LOGS
        self.write_logs = write_logs and log_repository is not None and evaluator is not None
        self._tasks = TaskRegistry("delivery")

    # Task ownership

    def start(self, campaign_id: str) -> asyncio.Task:
        """
        Starts a delivery run in the background.

        Returns:
            The owned task (its result is True when the run completed)

        Raises:
            DeliveryInProgressError: If this process already runs the campaign
        """
        campaign_id = str(campaign_id)
        if self._tasks.is_running(campaign_id):
            raise DeliveryInProgressError(campaign_id)
        logger.info(f"Starting delivery for campaign {campaign_id}")
        return self._tasks.spawn(campaign_id, self.run(campaign_id))

    def is_running(self, campaign_id: str) -> bool:
        return self._tasks.is_running(str(campaign_id))

    async def in_flight(self, campaign_id: str) -> bool:
        """Running here, or the in-flight marker is held by another process."""
        if self.is_running(campaign_id):
            return True
        return await self._lock_factory(f"delivery:{campaign_id}").is_locked()

    def cancel(self, campaign_id: str) -> bool:
        """Cancels the campaign's run. Counters keep the last persisted step."""
        return self._tasks.cancel(str(campaign_id))

    async def shutdown(self) -> None:
        """Cancels every run owned by this orchestrator."""
        active = self._tasks.active_keys()
        if active:
            logger.info(f"Cancelling {len(active)} delivery run(s): {active}")
        await self._tasks.shutdown()

    # Run

    async def run(self, campaign_id: str) -> bool:
        """
        Executes one delivery run.

        Takes the in-flight marker first; a run that cannot take it leaves
        the campaign untouched.

        Returns:
            True if the run reached the final step
        """
        marker = self._lock_factory(f"delivery:{campaign_id}")
        if not await marker.acquire():
            logger.warning(f"Campaign {campaign_id}: delivery already in flight, skipping run")
            return False
        try:
            return await self._deliver(campaign_id, marker)
        finally:
            await marker.release()

    async def _deliver(self, campaign_id: str, marker: DistributedLock) -> bool:
        log = get_logger(__name__, campaign_id=campaign_id)
        campaign: Optional[CampaignData] = None
        step = 0
        try:
            campaign = await self.campaigns.get_by_id(campaign_id)
            if not campaign:
                log.error(f"Campaign {campaign_id} not found for delivery")
                return False

            if campaign.audience_size == 0:
                # Campaign keeps its counters and ACTIVE status
                log.warning(f"Campaign {campaign_id} has no audience to deliver to")
                return False

            plan = DeliveryPlan.for_audience(campaign.audience_size, self.success_rate, self.steps)
            log.info(
                f"Campaign {campaign_id}: planned {plan.total_sent} sent, "
                f"{plan.total_failed} failed over {plan.steps} steps"
            )

            logs = await self._dispatch(campaign) if self.write_logs else []

            previous_sent = 0
            for snapshot in plan.snapshots():
                step = snapshot.step
                await self._sleep(self.step_interval)

                # Another process may own the campaign now; it writes the counters from here on
                if not await marker.refresh():
                    log.warning(
                        f"Campaign {campaign_id}: lost the in-flight marker before step {step}, stopping",
                        extra={"step": step},
                    )
                    return False

                await self.campaigns.update_delivery_progress(
                    campaign_id,
                    sent=snapshot.sent,
                    failed=snapshot.failed,
                    pending=snapshot.pending,
                    status=snapshot.status,
                )
                if logs:
                    await self._advance_logs(logs, plan, previous_sent, snapshot)
                previous_sent = snapshot.sent

                log.info(
                    f"Step {snapshot.step}/{plan.steps}: "
                    f"sent={snapshot.sent}, failed={snapshot.failed}, pending={snapshot.pending}",
                    extra={"step": snapshot.step},
                )

            log.info(
                f"Campaign {campaign_id} delivery completed: "
                f"{plan.total_sent} sent, {plan.total_failed} failed"
            )
            return True

        except asyncio.CancelledError:
            log.warning(f"Campaign {campaign_id}: delivery cancelled after step {step}")
            raise
        except Exception as e:
            log.error(f"Delivery error for campaign {campaign_id}: {e}", exc_info=True)
            await self._mark_failed(campaign_id, campaign.audience_size if campaign else 0)
            return False

    async def _mark_failed(self, campaign_id: str, audience_size: int) -> None:
        try:
            await self.campaigns.mark_failed(campaign_id, failed_count=audience_size)
            logger.info(f"Campaign {campaign_id} marked as FAILED")
        except Exception as update_error:
            # Campaign may stay ACTIVE with partial counters
            logger.error(f"Failed to mark campaign {campaign_id} as FAILED: {update_error}")

    # Communication logs

    async def _dispatch(self, campaign: CampaignData) -> List[CommunicationLogData]:
        """
        Creates one PENDING log per recipient.

        A re-run reuses the logs of earlier runs; only their PENDING entries
        can still move.
        """
        existing = await self.logs.list_for_campaign(campaign.id, limit=campaign.audience_size)
        if existing:
            logger.info(f"Campaign {campaign.id}: reusing {len(existing)} communication logs")
            return existing

        predicate = compile_rules(campaign.rules)
        recipients = await self.evaluator.fetch_recipients(predicate, campaign.audience_size)
        if len(recipients) != campaign.audience_size:
            logger.warning(
                f"Campaign {campaign.id}: {len(recipients)} recipients match now, "
                f"audience was fixed at {campaign.audience_size}"
            )

        rows = [
            {
                "campaign_id": campaign.id,
                "customer_id": customer.id,
                "customer_email": customer.email,
                "customer_name": customer.name,
                "message": campaign.message,
                "personalized_message": personalize(campaign.message, customer.name),
            }
            for customer in recipients
        ]
        return await self.logs.create_many(rows)

    async def _advance_logs(
        self,
        logs: List[CommunicationLogData],
        plan: DeliveryPlan,
        previous_sent: int,
        snapshot: DeliverySnapshot,
    ) -> None:
        """Moves the logs covered by this step to their terminal status."""
        newly_sent = [log.id for log in logs[previous_sent:snapshot.sent]]
        if newly_sent:
            await self.logs.mark_sent(newly_sent)

        if snapshot.status == CampaignStatus.COMPLETED:
            failed = [log.id for log in logs[plan.total_sent:]]
            if failed:
                await self.logs.mark_failed(failed, SIMULATED_FAILURE)
