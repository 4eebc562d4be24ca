from fastapi import APIRouter

from db import SessionDep
from errors import ServiceError
from matching import MatchSummary, run_matching
from schemas import MapDonationRequest, MatchingFailure, MatchingResult, TopMatch
from .auth import OptionalUserDep

router = APIRouter(tags=["matching"])


def summary_to_result(summary: MatchSummary) -> MatchingResult:
    top_match = None
    if summary.top_match is not None:
        recipient_id, score = summary.top_match
        top_match = TopMatch(recipient_id=recipient_id, score=score)
    return MatchingResult(matches=summary.match_count, top_match=top_match)


def error_to_failure(exc: ServiceError) -> MatchingFailure:
    return MatchingFailure(status_code=exc.status_code, error=exc.code, detail=exc.detail)


@router.post("/map-donation", response_model=MatchingResult)
def map_donation(payload: MapDonationRequest, session: SessionDep, current: OptionalUserDep):
    """
    Score every recipient against a donation and store the top matches.
    Admin only, and limited per admin to a few calls every few minutes.
    """
    summary = run_matching(session, payload.donation_id, current)
    return summary_to_result(summary)
