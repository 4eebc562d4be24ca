"""Exclusive claiming of approved donations."""
import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from errors import AlreadyClaimed, NotApproved, NotFound, StorageUnavailable, Unauthorized
from lifecycle import APPROVED, CLAIMED
from models import Claim, Donation, RecipientProfile, User, utcnow

logger = logging.getLogger(__name__)


def _claim_failure(session: Session, donation_id: int) -> Exception:
    donation = session.get(Donation, donation_id)
    if donation is None:
        return NotFound("Donation not found")
    if donation.status == CLAIMED:
        return AlreadyClaimed()
    return NotApproved(f"Donation is {donation.status}, it cannot be claimed")


def claim(
    session: Session,
    donation_id: int,
    recipient: RecipientProfile,
    caller: Optional[User],
) -> Claim:
    """
    Claim an approved donation for ``recipient``.

    The status flip and the claim row are written in one transaction and the
    flip only happens while the donation is still approved, so among
    concurrent callers exactly one wins. Losers get AlreadyClaimed (or
    NotApproved / NotFound) and leave nothing behind.
    """
    if caller is None or caller.id is None:
        raise Unauthorized()

    try:
        result = session.execute(
            update(Donation)
            .where(Donation.id == donation_id, Donation.status == APPROVED)
            .values(status=CLAIMED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise _claim_failure(session, donation_id)

        record = Claim(
            donation_id=donation_id,
            recipient_id=recipient.id,
            claimed_by=caller.id,
        )
        session.add(record)
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning("Duplicate claim rejected for donation %s", donation_id)
        raise AlreadyClaimed()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Claim of donation %s failed", donation_id)
        raise StorageUnavailable("Could not record the claim, please retry")

    session.refresh(record)
    logger.info(
        "Donation %s claimed by recipient %s (user %s)", donation_id, recipient.id, caller.id
    )
    return record


def claims_for_recipient(session: Session, recipient: RecipientProfile) -> List[Claim]:
    return session.exec(
        select(Claim)
        .where(Claim.recipient_id == recipient.id)
        .order_by(Claim.claimed_at.desc())
    ).all()
