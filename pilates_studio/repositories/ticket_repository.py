# pilates_studio/repositories/ticket_repository.py
"""
Ticket balance queries.

Balance changes are single UPDATE statements guarded in their WHERE clause,
so two requests racing for the last credit cannot both win.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.ticket import Ticket
from ..models.ticket_group import TicketGroup
from .base_repository import BaseRepository


def _group_clause(ticket_group_id: Optional[str]):
    if ticket_group_id is None:
        return Ticket.ticket_group_id.is_(None)
    return Ticket.ticket_group_id == ticket_group_id


class TicketRepository(BaseRepository[Ticket]):
    def __init__(self, db: Session):
        super().__init__(db, Ticket)

    def get_usable_tickets(
        self, *, user_id: str, ticket_group_id: Optional[str], now: datetime
    ) -> List[Ticket]:
        """Tickets with credit left and not yet expired, soonest expiry first."""
        query = (
            self.db.query(Ticket)
            .filter(
                Ticket.user_id == user_id,
                _group_clause(ticket_group_id),
                Ticket.remaining_count > 0,
                Ticket.expires_at > now,
            )
            .order_by(Ticket.expires_at.asc(), Ticket.created_at.asc(), Ticket.id.asc())
        )
        return self._execute_query(query)

    def consume_one(self, *, ticket_id: str, now: datetime) -> bool:
        """Take one credit if the ticket still has one and is unexpired."""
        try:
            updated = (
                self.db.query(Ticket)
                .filter(
                    Ticket.id == ticket_id,
                    Ticket.remaining_count > 0,
                    Ticket.expires_at > now,
                )
                .update(
                    {Ticket.remaining_count: Ticket.remaining_count - 1},
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to consume ticket %s: %s", ticket_id, exc)
            raise RepositoryException(f"Failed to consume ticket: {exc}") from exc
        return updated == 1

    def find_refund_target(self, *, user_id: str, ticket_group_id: Optional[str]) -> Optional[Ticket]:
        """The matching ticket that expires last; ties go to the larger balance."""
        try:
            return (
                self.db.query(Ticket)
                .filter(Ticket.user_id == user_id, _group_clause(ticket_group_id))
                .order_by(
                    Ticket.expires_at.desc(),
                    Ticket.remaining_count.desc(),
                    Ticket.id.desc(),
                )
                .first()
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to find refund ticket for user %s: %s", user_id, exc)
            raise RepositoryException(f"Failed to find refund ticket: {exc}") from exc

    def increment(self, *, ticket_id: str, amount: int = 1) -> bool:
        try:
            updated = (
                self.db.query(Ticket)
                .filter(Ticket.id == ticket_id)
                .update(
                    {Ticket.remaining_count: Ticket.remaining_count + amount},
                    synchronize_session="fetch",
                )
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to increment ticket %s: %s", ticket_id, exc)
            raise RepositoryException(f"Failed to increment ticket: {exc}") from exc
        return updated == 1

    def adjust_clamped(self, *, ticket_id: str, delta: int) -> bool:
        """Add ``delta`` (may be negative); the balance stops at zero."""
        new_value = case(
            (Ticket.remaining_count + delta < 0, 0),
            else_=Ticket.remaining_count + delta,
        )
        try:
            updated = (
                self.db.query(Ticket)
                .filter(Ticket.id == ticket_id)
                .update({Ticket.remaining_count: new_value}, synchronize_session="fetch")
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to adjust ticket %s: %s", ticket_id, exc)
            raise RepositoryException(f"Failed to adjust ticket: {exc}") from exc
        return updated == 1

    def list_for_user(self, user_id: str) -> List[Ticket]:
        query = (
            self.db.query(Ticket)
            .filter(Ticket.user_id == user_id)
            .order_by(Ticket.expires_at.asc(), Ticket.id.asc())
        )
        return self._execute_query(query)


class TicketGroupRepository(BaseRepository[TicketGroup]):
    def __init__(self, db: Session):
        super().__init__(db, TicketGroup)

    def get_by_name(self, name: str) -> Optional[TicketGroup]:
        return self.db.query(TicketGroup).filter(TicketGroup.name == name).first()

    def list_groups(self) -> List[TicketGroup]:
        return self._execute_query(self.db.query(TicketGroup).order_by(TicketGroup.name.asc()))


__all__ = ["TicketRepository", "TicketGroupRepository"]
