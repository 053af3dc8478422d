"""
Escalation Application Services
================================

Application services orchestrate business logic and coordinate between
domain policies and the ticket store.

Following SOLID principles:
- Single Responsibility: the service owns transitions, the domain owns rules
- Dependency Inversion: depend on store/notifier abstractions, not adapters

Every transition runs as one unit under a per-ticket lock:
read -> decide -> save ticket and record together (version checked) -> notify.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from grievance_sla.config import TicketStatus, FINAL_STATUSES, MAX_ESCALATION_LEVEL, SYSTEM_ACTOR
from grievance_sla.core import (
    ApplicationException,
    ValidationException,
    InvalidStateException,
    ResourceNotFoundException,
    VersionConflictException,
)
from grievance_sla.escalation.domain import (
    Ticket,
    EscalationRecord,
    EscalationRule,
    WorkingCalendar,
    WorkingHoursCalculator,
    PriorityClassifier,
    SLAEvaluator,
    WallClockPolicy,
    ReopenWindowPolicy,
    NotificationPolicy,
)
from grievance_sla.escalation.application.concurrency import TicketLockRegistry
from grievance_sla.escalation.application.dto import (
    EngineError,
    EscalationRecordResponse,
    EscalationResult,
    SLAStatusResponse,
    TickFailure,
    TickReport,
)
from grievance_sla.shared.infrastructure.logging import LoggerLike, get_logger, log_latency


Clock = Callable[[], datetime]

# Records of one ticket are strictly ordered; ties are broken by this step
RECORD_ORDERING_STEP = timedelta(microseconds=1)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketStore(ABC):
    """Interface for ticket and escalation record persistence."""

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket snapshot by ID."""

    @abstractmethod
    async def save_transition(
        self,
        ticket: Ticket,
        expected_version: int,
        record: Optional[EscalationRecord] = None
    ) -> Ticket:
        """
        Replace the stored ticket and append its audit record as one unit.

        Either both writes happen or neither does. Returns the stored
        snapshot with its new version.

        Raises:
            VersionConflictException: the stored version moved since it was read
        """

    async def save_ticket(self, ticket: Ticket, expected_version: int) -> Ticket:
        """Version-checked save of a change that produces no audit record."""
        return await self.save_transition(ticket, expected_version)

    @abstractmethod
    async def append_escalation_record(self, record: EscalationRecord) -> None:
        """Append an audit record."""

    @abstractmethod
    async def list_open_tickets(self) -> List[Ticket]:
        """Tickets in open or in_progress status."""

    @abstractmethod
    async def list_escalation_records(self, ticket_id: str) -> List[EscalationRecord]:
        """Audit records of one ticket, oldest first."""


class IEscalationRuleProvider(ABC):
    """Interface for manual escalation rule lookup."""

    @abstractmethod
    def get_rule(self, rule_id: str) -> Optional[EscalationRule]:
        """Get rule by ID, or None."""


class INotifier(ABC):
    """Interface for escalation notifications (delivery is the adapter's concern)."""

    @abstractmethod
    async def notify(
        self,
        recipients: List[str],
        ticket_id: str,
        escalation_level: int,
        reason: Optional[str]
    ) -> None:
        """Send one notification to every recipient."""


# ========== Application Services ==========

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Transition:
    """Decision produced for one ticket, applied as a unit."""
    ticket: Ticket
    record: Optional[EscalationRecord] = None
    recipients: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    priority_changed: bool = False


Decision = Callable[[Ticket], Optional[_Transition]]


class EscalationService:
    """
    Service for ticket priority, escalation transitions and SLA views.

    Pure rules live in the domain layer; this service adds the ticket store,
    locking, audit records and notifications.
    """

    def __init__(
        self,
        store: ITicketStore,
        rule_provider: IEscalationRuleProvider,
        notifier: INotifier,
        calendar: WorkingCalendar,
        clock: Optional[Clock] = None,
        logger: Optional[LoggerLike] = None,
        tick_concurrency: int = 10
    ):
        if tick_concurrency < 1:
            raise ValueError("tick_concurrency must be at least 1")

        self._store = store
        self._rule_provider = rule_provider
        self._notifier = notifier
        self._calendar = calendar
        self._clock = clock or utcnow
        self._logger = logger or get_logger(__name__)
        self._tick_concurrency = tick_concurrency
        self._locks = TicketLockRegistry()
        self._pending_notifications: set[asyncio.Task] = set()

    # ========== Configuration ==========

    @property
    def calendar(self) -> WorkingCalendar:
        return self._calendar

    @property
    def locks(self) -> TicketLockRegistry:
        return self._locks

    def reconfigure(self, calendar: WorkingCalendar) -> None:
        """Swap the working calendar; later computations use the new one."""
        self._calendar = calendar
        self._logger.info(
            "Working calendar reconfigured",
            extra={
                "daily_start": calendar.daily_start.isoformat(),
                "daily_end": calendar.daily_end.isoformat(),
                "off_days": sorted(calendar.off_days),
                "holidays": len(calendar.holidays),
            }
        )

    # ========== Queries ==========

    async def classify_priority(self, ticket_id: str, now: Optional[datetime] = None) -> str:
        """
        Current priority of a ticket, recomputed from scratch.

        Raises:
            ResourceNotFoundException: unknown ticket
        """
        ticket = await self._load(ticket_id)
        return self._classify(ticket, self._now(now))

    async def is_reopenable(self, ticket_id: str, now: Optional[datetime] = None) -> bool:
        """
        True when a closed ticket is still inside its reopen window.

        Tickets that are not closed are never reopenable.
        """
        ticket = await self._load(ticket_id)
        if ticket.status != TicketStatus.CLOSED:
            return False
        return ReopenWindowPolicy.is_reopenable(ticket.closed_at, self._now(now), self._calendar.timezone)

    async def escalation_history(self, ticket_id: str) -> List[EscalationRecordResponse]:
        """Audit trail of a ticket ordered by escalated_at."""
        await self._load(ticket_id)
        records = await self._store.list_escalation_records(ticket_id)
        records = sorted(records, key=lambda r: r.escalated_at)
        return [EscalationRecordResponse.from_record(r) for r in records]

    async def time_until_auto_escalation(
        self,
        ticket_id: str,
        now: Optional[datetime] = None
    ) -> Optional[timedelta]:
        """
        Wall-clock time left before the ticket is due for automatic escalation.

        Returns:
            Zero when overdue, None when the ticket can no longer auto-escalate
        """
        ticket = await self._load(ticket_id)
        if not ticket.can_auto_escalate:
            return None
        now = self._now(now)
        priority = self._classify(ticket, now)
        return WallClockPolicy.time_until_due(
            priority, ticket.escalation_clock_start, now, self._calendar.timezone
        )

    async def sla_status(self, ticket_id: str, now: Optional[datetime] = None) -> SLAStatusResponse:
        """Working-hours SLA target, deadline and status for a ticket."""
        ticket = await self._load(ticket_id)
        now = self._now(now)

        end = ticket.closed_at if ticket.status == TicketStatus.CLOSED and ticket.closed_at else now
        return SLAStatusResponse(
            ticket_id=ticket.id,
            priority=ticket.priority,
            target_hours=SLAEvaluator.target_hours(ticket.priority),
            deadline=SLAEvaluator.deadline(ticket.created_at, ticket.priority, self._calendar),
            elapsed_working_hours=WorkingHoursCalculator.compute_working_hours(
                ticket.created_at, end, self._calendar
            ),
            status=SLAEvaluator.status(
                ticket.created_at, ticket.closed_at, ticket.priority,
                ticket.status, now, self._calendar
            ),
        )

    # ========== Transitions ==========

    async def auto_escalate(self, ticket_id: str, now: Optional[datetime] = None) -> EscalationResult:
        """
        Evaluate one ticket for automatic escalation.

        A success without a record means nothing was due.
        """
        now = self._now(now)
        return await self._guarded(
            "auto_escalate", ticket_id,
            lambda: self._transition(ticket_id, lambda ticket: self._decide_auto(ticket, now))
        )

    async def manual_escalate(
        self,
        ticket_id: str,
        rule_id: str,
        reason: str,
        actor: str,
        now: Optional[datetime] = None
    ) -> EscalationResult:
        """
        Escalate a ticket to the level named by an escalation rule.

        The rule's level is absolute (capped at the maximum) and must be
        above the current level.

        Error codes:
            validation_error: blank reason/actor/rule id, resolved or closed ticket
            not_found: unknown ticket or rule
            invalid_state: the rule would not raise the level
            version_conflict: lost the optimistic lock twice
        """
        now = self._now(now)

        async def run() -> Optional[_Transition]:
            self._require_text(reason, "reason")
            self._require_text(actor, "actor")
            self._require_text(rule_id, "rule_id")

            rule = self._rule_provider.get_rule(rule_id.strip())
            if rule is None:
                raise ResourceNotFoundException("EscalationRule", rule_id)

            return await self._transition(
                ticket_id,
                lambda ticket: self._decide_manual(ticket, rule, reason.strip(), actor, now)
            )

        return await self._guarded("manual_escalate", ticket_id, run)

    async def de_escalate(
        self,
        ticket_id: str,
        reason: str,
        actor: str,
        now: Optional[datetime] = None
    ) -> EscalationResult:
        """
        Lower the escalation level by exactly one.

        Restarts the automatic escalation clock. Nobody is notified.

        Error codes:
            validation_error: blank reason/actor, resolved or closed ticket
            invalid_state: ticket already at level 0
        """
        now = self._now(now)

        async def run() -> Optional[_Transition]:
            self._require_text(reason, "reason")
            self._require_text(actor, "actor")
            return await self._transition(
                ticket_id,
                lambda ticket: self._decide_de_escalation(ticket, reason.strip(), actor, now)
            )

        return await self._guarded("de_escalate", ticket_id, run)

    async def resolve_or_close(
        self,
        ticket_id: str,
        status: str,
        now: Optional[datetime] = None
    ) -> EscalationResult:
        """
        Move a ticket to resolved or closed, freezing its escalation state.

        A resolved ticket may still be closed; a closed one accepts nothing.
        """
        now = self._now(now)

        def decide(ticket: Ticket) -> _Transition:
            if status not in FINAL_STATUSES:
                raise ValidationException(
                    f"Status must be one of {FINAL_STATUSES}",
                    {"status": status}
                )
            if ticket.status == TicketStatus.CLOSED or ticket.status == status:
                raise ValidationException(
                    f"Ticket is already {ticket.status}",
                    {"ticket_id": ticket.id, "status": ticket.status}
                )
            return _Transition(ticket=ticket.with_final_status(status, now))

        return await self._guarded(
            "resolve_or_close", ticket_id,
            lambda: self._transition(ticket_id, decide)
        )

    async def run_auto_escalation_tick(self, now: Optional[datetime] = None) -> TickReport:
        """
        Evaluate every open ticket once.

        Tickets run concurrently up to the configured bound. A failure on
        one ticket is recorded in the report and never stops the others.
        """
        now = self._now(now)
        tickets = await self._store.list_open_tickets()
        semaphore = asyncio.Semaphore(self._tick_concurrency)
        report = TickReport(started_at=now, evaluated=len(tickets))

        async def evaluate(ticket_id: str):
            async with semaphore:
                try:
                    transition = await self._transition(
                        ticket_id, lambda ticket: self._decide_auto(ticket, now)
                    )
                except ApplicationException as e:
                    self._logger.warning(
                        "Automatic escalation failed",
                        extra={"ticket_id": ticket_id, "error_code": e.code, "error": e.message}
                    )
                    return ticket_id, None, EngineError.from_exception(e)
                except Exception as e:
                    self._logger.exception(
                        "Unexpected error during automatic escalation",
                        extra={"ticket_id": ticket_id}
                    )
                    return ticket_id, None, EngineError.from_exception(e)
                return ticket_id, transition, None

        with log_latency(self._logger, "auto_escalation_tick", tickets=len(tickets)):
            outcomes = await asyncio.gather(*(evaluate(t.id) for t in tickets))

        for ticket_id, transition, error in outcomes:
            if error is not None:
                report.failures.append(TickFailure(ticket_id=ticket_id, error=error))
                continue
            if transition is None:
                continue
            if transition.priority_changed:
                report.priority_changes += 1
            if transition.record is not None:
                report.records.append(EscalationRecordResponse.from_record(transition.record))

        self._logger.info(
            "Automatic escalation tick finished",
            extra={
                "evaluated": report.evaluated,
                "escalated": report.escalated,
                "priority_changes": report.priority_changes,
                "failures": len(report.failures),
            }
        )
        return report

    async def drain_notifications(self) -> None:
        """Wait for notifications still being delivered."""
        while self._pending_notifications:
            await asyncio.gather(*list(self._pending_notifications))

    # ========== Decisions ==========

    def _decide_auto(self, ticket: Ticket, now: datetime) -> Optional[_Transition]:
        if not ticket.is_open:
            return None

        priority = self._classify(ticket, now)
        priority_changed = priority != ticket.priority
        refreshed = ticket.with_priority(priority) if priority_changed else ticket

        due = (
            ticket.escalation_level < MAX_ESCALATION_LEVEL
            and WallClockPolicy.is_due(priority, ticket.escalation_clock_start, now, self._calendar.timezone)
        )

        if not due:
            if not priority_changed:
                return None
            recipients = []
            reason = f"Priority changed from {ticket.priority} to {priority}"
            if NotificationPolicy.should_notify_priority_change(ticket.priority, priority):
                recipients = NotificationPolicy.recipients_for(priority, ticket.assigned_to)
            return _Transition(
                ticket=refreshed, recipients=recipients, reason=reason, priority_changed=True
            )

        hours = int(WallClockPolicy.threshold(priority).total_seconds() // 3600)
        reason = f"No resolution within {hours}h at {priority} priority"
        at = self._stamp(ticket, now)
        level = ticket.escalation_level + 1

        return _Transition(
            ticket=refreshed.with_escalation(level, at),
            record=EscalationRecord.create(ticket, level, at, escalated_by=SYSTEM_ACTOR, reason=reason),
            recipients=NotificationPolicy.recipients_for(priority, ticket.assigned_to),
            reason=reason,
            priority_changed=priority_changed,
        )

    def _decide_manual(
        self,
        ticket: Ticket,
        rule: EscalationRule,
        reason: str,
        actor: str,
        now: datetime
    ) -> _Transition:
        self._ensure_mutable(ticket)

        target = rule.target_level
        if target <= ticket.escalation_level:
            raise InvalidStateException(
                f"Rule '{rule.id}' escalates to level {target}, "
                f"ticket is already at level {ticket.escalation_level}",
                {"ticket_id": ticket.id, "rule_id": rule.id,
                 "current_level": ticket.escalation_level, "target_level": target}
            )

        at = self._stamp(ticket, now)
        recipients = NotificationPolicy.recipients_for(ticket.priority, ticket.assigned_to)
        if rule.notify_to_role not in recipients:
            recipients.append(rule.notify_to_role)

        return _Transition(
            ticket=ticket.with_escalation(target, at),
            record=EscalationRecord.create(
                ticket, target, at,
                escalated_by=actor, reason=reason, escalated_to=rule.notify_to_role
            ),
            recipients=recipients,
            reason=reason,
        )

    def _decide_de_escalation(self, ticket: Ticket, reason: str, actor: str, now: datetime) -> _Transition:
        self._ensure_mutable(ticket)

        if ticket.escalation_level == 0:
            raise InvalidStateException(
                "Ticket is not escalated",
                {"ticket_id": ticket.id, "current_level": 0}
            )

        at = self._stamp(ticket, now)
        level = ticket.escalation_level - 1
        return _Transition(
            ticket=ticket.with_escalation(level, at),
            record=EscalationRecord.create(ticket, level, at, escalated_by=actor, reason=reason),
            reason=reason,
        )

    # ========== Transition machinery ==========

    async def _transition(self, ticket_id: str, decide: Decision) -> Optional[_Transition]:
        """
        Apply a decision under the ticket lock.

        A lost version race re-reads the ticket and decides again once;
        the second conflict propagates.
        """
        async with self._locks.hold(ticket_id):
            for attempt in (1, 2):
                ticket = await self._load(ticket_id)
                transition = decide(ticket)
                if transition is None:
                    return None

                try:
                    transition.ticket = await self._store.save_transition(
                        transition.ticket, ticket.version, transition.record
                    )
                except VersionConflictException as e:
                    if attempt == 2:
                        raise
                    self._logger.warning(
                        "Version conflict, deciding again from a fresh read",
                        extra={"ticket_id": ticket_id, **e.details}
                    )
                    continue

                if transition.record is not None:
                    self._logger.info(
                        "Escalation level changed",
                        extra=transition.record.to_dict()
                    )

                self._dispatch(transition)
                return transition

        return None

    async def _guarded(
        self,
        operation: str,
        ticket_id: str,
        run: Callable[[], Awaitable[Optional[_Transition]]]
    ) -> EscalationResult:
        """Convert every failure into a typed result; only expected ones skip the traceback."""
        try:
            transition = await run()
        except ApplicationException as e:
            self._logger.warning(
                f"{operation} rejected",
                extra={"ticket_id": ticket_id, "error_code": e.code, "error": e.message}
            )
            return EscalationResult.failure(e)
        except Exception as e:
            self._logger.exception(
                f"{operation} failed unexpectedly",
                extra={"ticket_id": ticket_id}
            )
            return EscalationResult.failure(e)

        if transition is None:
            return EscalationResult.success()
        return EscalationResult.success(transition.record, transition.ticket)

    def _dispatch(self, transition: _Transition) -> None:
        """Fire-and-forget notification; delivery errors are only logged."""
        if not transition.recipients:
            return
        task = asyncio.create_task(self._notify(transition))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _notify(self, transition: _Transition) -> None:
        ticket = transition.ticket
        try:
            await self._notifier.notify(
                list(transition.recipients), ticket.id, ticket.escalation_level, transition.reason
            )
        except Exception:
            self._logger.exception(
                "Escalation notification failed",
                extra={"ticket_id": ticket.id, "recipients": transition.recipients}
            )

    # ========== Helpers ==========

    async def _load(self, ticket_id: str) -> Ticket:
        ticket = await self._store.get_ticket(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket.in_zone(self._calendar.timezone)

    def _classify(self, ticket: Ticket, now: datetime) -> str:
        return PriorityClassifier.classify(
            ticket.created_at, ticket.updated_at, ticket.status,
            ticket.type_id, ticket.assigned_to, now, self._calendar
        )

    def _now(self, now: Optional[datetime]) -> datetime:
        """Caller or clock time; a naive value is organization-local."""
        now = now if now is not None else self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=self._calendar.timezone)
        return now

    def _stamp(self, ticket: Ticket, now: datetime) -> datetime:
        """Transition time, nudged past the previous escalation if needed."""
        last = ticket.escalated_at
        if last is not None and WallClockPolicy.elapsed(last, now, self._calendar.timezone) <= timedelta(0):
            return last + RECORD_ORDERING_STEP
        return now

    @staticmethod
    def _ensure_mutable(ticket: Ticket) -> None:
        if ticket.is_frozen:
            raise ValidationException(
                f"Ticket is {ticket.status}; escalation state is frozen",
                {"ticket_id": ticket.id, "status": ticket.status}
            )

    @staticmethod
    def _require_text(value: Optional[str], name: str) -> None:
        if value is None or not str(value).strip():
            raise ValidationException(f"{name} must not be blank", {"field": name})
