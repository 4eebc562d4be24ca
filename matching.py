"""Lexical matching of approved donations against recipient requirements."""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from config import get_settings
from errors import Forbidden, NotFound, RateLimited, StorageUnavailable, Unauthorized
from models import USER_BLOCKED, Donation, Mapping, RecipientProfile, User
from rate_limit import check_and_consume
from recipients import matching_text

logger = logging.getLogger(__name__)

MAP_DONATION_OPERATION = "map-donation"
MIN_TOKEN_LENGTH = 4
DEFAULT_TOP_K = 3
MATCH_THRESHOLD = 30.0


def tokenize(text: Optional[str]) -> List[str]:
    """Lower-case, split on whitespace and drop tokens of three characters or fewer."""
    if not text:
        return []
    return [token for token in text.lower().split() if len(token) >= MIN_TOKEN_LENGTH]


def score(source_text: Optional[str], target_text: Optional[str]) -> float:
    """
    Percentage of source tokens that overlap some target token.

    Two tokens overlap when either one contains the other, so "tablet"
    matches "tablets". The result is relative to the source side only:
    score(a, b) and score(b, a) generally differ.
    """
    source_tokens = tokenize(source_text)
    target_tokens = tokenize(target_text)
    if not source_tokens or not target_tokens:
        return 0.0

    matched = sum(
        1
        for token in source_tokens
        if any(token in other or other in token for other in target_tokens)
    )
    value = min(100.0, matched / len(source_tokens) * 100)
    return round(value, 2)


def rank(
    donation_text: str,
    recipients: Sequence[Tuple[int, str]],
    top_k: int = DEFAULT_TOP_K,
) -> List[Tuple[int, float]]:
    """Top ``top_k`` recipients by score, best first; ties keep input order."""
    scored = [
        (recipient_id, score(donation_text, requirements_text))
        for recipient_id, requirements_text in recipients
    ]
    positive = [entry for entry in scored if entry[1] > 0]
    # sorted() is stable, so equal scores stay in first-seen order
    positive = sorted(positive, key=lambda entry: entry[1], reverse=True)
    return positive[:top_k]


@dataclass
class MatchSummary:
    match_count: int
    top_match: Optional[Tuple[int, float]] = None


def donation_text(donation: Donation) -> str:
    return f"{donation.item_name} {donation.description or ''}".strip()


def match_score(donation: Donation, profile: RecipientProfile) -> float:
    """Score of one donation against one recipient, computed on the fly."""
    return score(donation_text(donation), matching_text(profile))


def is_match(value: float) -> bool:
    return value >= MATCH_THRESHOLD


def replace_mappings(
    session: Session, donation_id: int, matches: Sequence[Tuple[int, float]]
) -> None:
    """Swap the donation's mappings for ``matches`` in one transaction."""
    session.execute(delete(Mapping).where(Mapping.donation_id == donation_id))
    for recipient_id, similarity in matches:
        session.add(
            Mapping(
                donation_id=donation_id,
                recipient_id=recipient_id,
                similarity_score=similarity,
            )
        )
    session.commit()


def run_matching(session: Session, donation_id: int, caller: Optional[User]) -> MatchSummary:
    """
    Score every recipient against an approved donation and store the best matches.

    Raises Unauthorized, Forbidden, RateLimited, NotFound or StorageUnavailable.
    Never changes the donation itself.
    """
    settings = get_settings()

    if caller is None or caller.id is None:
        raise Unauthorized()
    if not caller.is_admin:
        raise Forbidden()
    if caller.status == USER_BLOCKED:
        raise Forbidden("This account has been blocked")

    allowed = check_and_consume(
        session,
        actor_id=str(caller.id),
        operation=MAP_DONATION_OPERATION,
        max_requests=settings.match_rate_limit_max,
        window=timedelta(minutes=settings.match_rate_limit_window_minutes),
    )
    if not allowed:
        raise RateLimited()
    logger.info("Rate limit check passed for user %s", caller.id)

    donation = session.get(Donation, donation_id)
    if donation is None:
        raise NotFound("Donation not found")

    profiles = session.exec(select(RecipientProfile).order_by(RecipientProfile.id)).all()
    if not profiles:
        logger.info("No recipients to match donation %s against", donation_id)

    matches = rank(
        donation_text(donation),
        [(profile.id, matching_text(profile)) for profile in profiles],
        top_k=settings.match_top_k,
    )

    try:
        replace_mappings(session, donation_id, matches)
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Error inserting mappings for donation %s", donation_id)
        raise StorageUnavailable(
            "Matches were computed but could not be saved", matches=len(matches)
        )

    logger.info("Donation %s matched %d recipient(s)", donation_id, len(matches))
    return MatchSummary(
        match_count=len(matches),
        top_match=matches[0] if matches else None,
    )
