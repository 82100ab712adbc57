# pilates_studio/services/ticket_account_service.py
"""
Ticket account: prepaid lesson credits per member and ticket group.

``consume_for_lesson`` and ``refund`` run inside the caller's transaction
(reservation create, cancellation, waitlist promotion) and never commit.
``grant`` and ``adjust`` are admin operations with their own transaction.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from ..core import timezone_utils
from ..core.config import settings
from ..core.exceptions import (
    ConflictException,
    InsufficientTicketBalanceException,
    NotFoundException,
    ValidationException,
)
from ..models.ticket import Ticket
from ..models.ticket_group import TicketGroup
from ..models.user import User
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.ticket_repository import TicketGroupRepository, TicketRepository
from ..repositories.user_repository import UserRepository
from .base import BaseService, ensure_admin

DEFAULT_TICKET_NAME = "Lesson ticket"


class TicketAccountService(BaseService):
    def __init__(
        self,
        db: Session,
        ticket_repository: Optional[TicketRepository] = None,
        ticket_group_repository: Optional[TicketGroupRepository] = None,
        user_repository: Optional[UserRepository] = None,
    ):
        super().__init__(db)
        self.ticket_repository = ticket_repository or TicketRepository(db)
        self.ticket_group_repository = ticket_group_repository or TicketGroupRepository(db)
        self.user_repository = user_repository or UserRepository(db)

    def select_tickets_for_lesson(self, user_id: str, ticket_group_id: Optional[str]) -> List[Ticket]:
        """Usable tickets for a lesson category, soonest expiry first. Never empty."""
        tickets = self.ticket_repository.get_usable_tickets(
            user_id=user_id, ticket_group_id=ticket_group_id, now=timezone_utils.utc_now()
        )
        if not tickets:
            raise InsufficientTicketBalanceException(user_id, ticket_group_id)
        return tickets

    def has_usable_ticket(self, user_id: str, ticket_group_id: Optional[str]) -> bool:
        return bool(
            self.ticket_repository.get_usable_tickets(
                user_id=user_id, ticket_group_id=ticket_group_id, now=timezone_utils.utc_now()
            )
        )

    def consume(self, ticket_id: str) -> None:
        """
        Take one credit from a specific ticket.

        The decrement is a single conditional UPDATE; if it matched no row
        the ticket had nothing left (or expired) and the caller's
        transaction must abort.
        """
        if not self.ticket_repository.consume_one(ticket_id=ticket_id, now=timezone_utils.utc_now()):
            ticket = self.ticket_repository.get_by_id(ticket_id)
            raise InsufficientTicketBalanceException(
                ticket.user_id if ticket else None, ticket.ticket_group_id if ticket else None
            )
        prometheus_metrics.record_ticket_movement("consume")

    def consume_for_lesson(self, user_id: str, ticket_group_id: Optional[str]) -> Ticket:
        """Take one credit from the first usable ticket that still has one."""
        for ticket in self.select_tickets_for_lesson(user_id, ticket_group_id):
            if self.ticket_repository.consume_one(ticket_id=ticket.id, now=timezone_utils.utc_now()):
                prometheus_metrics.record_ticket_movement("consume")
                self.logger.info(
                    "Consumed ticket credit",
                    extra={"ticket_id": ticket.id, "user_id": user_id},
                )
                return ticket
            # Lost a race for this ticket's last credit, try the next one
        raise InsufficientTicketBalanceException(user_id, ticket_group_id)

    def refund(self, user_id: str, ticket_group_id: Optional[str]) -> Optional[Ticket]:
        """
        Return one credit to the matching ticket that expires last.

        Returns None when the member has no ticket in the group any more;
        the credit is then lost and a warning is logged.
        """
        target = self.ticket_repository.find_refund_target(
            user_id=user_id, ticket_group_id=ticket_group_id
        )
        if target is None:
            self.logger.warning(
                "No ticket to refund into",
                extra={"user_id": user_id, "ticket_group_id": ticket_group_id},
            )
            return None
        self.ticket_repository.increment(ticket_id=target.id, amount=1)
        prometheus_metrics.record_ticket_movement("refund")
        self.logger.info("Refunded ticket credit", extra={"ticket_id": target.id, "user_id": user_id})
        return target

    @BaseService.measure_operation("grant_tickets")
    def grant(
        self,
        *,
        actor: User,
        user_id: str,
        ticket_group_id: Optional[str],
        count: int,
        name: Optional[str] = None,
    ) -> Ticket:
        """Create one ticket worth ``count`` credits, valid for the configured months."""
        ensure_admin(actor)
        if count <= 0:
            raise ValidationException("Ticket count must be positive", details={"count": count})
        if self.user_repository.get_by_id(user_id) is None:
            raise NotFoundException(f"User {user_id} not found", details={"user_id": user_id})
        group_name = None
        if ticket_group_id is not None:
            group = self.ticket_group_repository.get_by_id(ticket_group_id)
            if group is None:
                raise NotFoundException(
                    f"Ticket group {ticket_group_id} not found",
                    details={"ticket_group_id": ticket_group_id},
                )
            group_name = group.name

        now = timezone_utils.utc_now()
        with self.transaction():
            ticket = self.ticket_repository.create(
                user_id=user_id,
                ticket_group_id=ticket_group_id,
                name=name or group_name or DEFAULT_TICKET_NAME,
                remaining_count=count,
                expires_at=timezone_utils.add_months(now, settings.ticket_validity_months),
                created_at=now,
            )
        prometheus_metrics.record_ticket_movement("grant", count)
        self.log_operation("grant_tickets", user_id=user_id, ticket_id=ticket.id, count=count)
        return ticket

    @BaseService.measure_operation("adjust_ticket")
    def adjust(self, *, actor: User, ticket_id: str, delta: int) -> Ticket:
        """Admin correction of a balance; never goes below zero."""
        ensure_admin(actor)
        with self.transaction():
            if not self.ticket_repository.adjust_clamped(ticket_id=ticket_id, delta=delta):
                raise NotFoundException(
                    f"Ticket {ticket_id} not found", details={"ticket_id": ticket_id}
                )
            ticket = self.ticket_repository.get_by_id(ticket_id)
        prometheus_metrics.record_ticket_movement("adjust", abs(delta))
        self.log_operation("adjust_ticket", ticket_id=ticket_id, delta=delta)
        return ticket

    def list_for_user(self, user_id: str) -> List[Ticket]:
        """All of a member's tickets, soonest expiry first."""
        return self.ticket_repository.list_for_user(user_id)

    def list_for_member(self, *, actor: User, user_id: str) -> List[Ticket]:
        if actor.id != user_id:
            ensure_admin(actor)
        return self.list_for_user(user_id)

    @BaseService.measure_operation("create_ticket_group")
    def create_ticket_group(
        self, *, actor: User, name: str, description: Optional[str] = None
    ) -> TicketGroup:
        ensure_admin(actor)
        cleaned = name.strip()
        if not cleaned:
            raise ValidationException("Ticket group name is required")
        if self.ticket_group_repository.get_by_name(cleaned) is not None:
            raise ConflictException(
                f"Ticket group '{cleaned}' already exists",
                code="TICKET_GROUP_EXISTS",
                details={"name": cleaned},
            )
        with self.transaction():
            group = self.ticket_group_repository.create(name=cleaned, description=description)
        self.log_operation("create_ticket_group", ticket_group_id=group.id)
        return group

    def list_ticket_groups(self) -> List[TicketGroup]:
        return self.ticket_group_repository.list_groups()
