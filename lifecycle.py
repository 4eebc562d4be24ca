"""Donation status transitions.

pending -> approved | rejected, approved -> claimed. Rejected and claimed
are terminal. Every transition is one conditional UPDATE keyed on the
current status, so a donation can only leave a state once.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import update
from sqlmodel import Session

from errors import Forbidden, InvalidTransition, NotFound, ServiceError, Unauthorized
from matching import MatchSummary, run_matching
from models import Donation, User, utcnow

logger = logging.getLogger(__name__)

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
CLAIMED = "claimed"

TRANSITIONS = {
    PENDING: {APPROVED, REJECTED},
    APPROVED: {CLAIMED},
    REJECTED: set(),
    CLAIMED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def transition(session: Session, donation_id: int, source: str, target: str) -> Donation:
    """Move a donation from ``source`` to ``target`` if it is still in ``source``."""
    if not can_transition(source, target):
        raise InvalidTransition(f"Cannot move a donation from {source} to {target}")

    result = session.execute(
        update(Donation)
        .where(Donation.id == donation_id, Donation.status == source)
        .values(status=target, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        session.rollback()
        donation = session.get(Donation, donation_id)
        if donation is None:
            raise NotFound("Donation not found")
        raise InvalidTransition(f"Donation is {donation.status}, cannot mark it {target}")

    session.commit()
    donation = session.get(Donation, donation_id)
    session.refresh(donation)
    logger.info("Donation %s moved %s -> %s", donation_id, source, target)
    return donation


def _require_admin(caller: Optional[User]) -> None:
    if caller is None:
        raise Unauthorized()
    if not caller.is_admin:
        raise Forbidden()


@dataclass
class ApprovalOutcome:
    donation: Donation
    matching: Union[MatchSummary, ServiceError]

    @property
    def matched(self) -> bool:
        return isinstance(self.matching, MatchSummary)


def approve(session: Session, donation_id: int, caller: Optional[User]) -> ApprovalOutcome:
    """
    Approve a pending donation, then run matching for it.

    The approval is committed before matching starts; a matching failure is
    reported in the outcome and leaves the donation approved.
    """
    _require_admin(caller)
    donation = transition(session, donation_id, PENDING, APPROVED)

    try:
        summary = run_matching(session, donation_id, caller)
    except ServiceError as exc:
        logger.warning("Donation %s approved but matching failed: %s", donation_id, exc.detail)
        session.refresh(donation)
        return ApprovalOutcome(donation=donation, matching=exc)
    except Exception as exc:
        session.rollback()
        logger.exception("Donation %s approved but matching crashed", donation_id)
        session.refresh(donation)
        return ApprovalOutcome(donation=donation, matching=ServiceError())

    session.refresh(donation)
    return ApprovalOutcome(donation=donation, matching=summary)


def reject(session: Session, donation_id: int, caller: Optional[User]) -> Donation:
    _require_admin(caller)
    return transition(session, donation_id, PENDING, REJECTED)
