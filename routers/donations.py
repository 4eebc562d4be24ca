import logging
from typing import List

from fastapi import APIRouter
from sqlalchemy import and_
from sqlmodel import select

import lifecycle
from claims import claim
from db import SessionDep
from errors import NotFound
from matching import is_match, match_score
from models import Donation, Mapping, User
from recipients import ensure_recipient_profile
from schemas import (
    ApprovalResult,
    AvailableDonationRead,
    ClaimRead,
    DonationCreate,
    DonationRead,
    InventoryDonationRead,
    MappingRead,
)
from .auth import AdminDep, CurrentUserDep, DonorDep, RecipientDep
from .matching import error_to_failure, summary_to_result

router = APIRouter(tags=["donations"])

logger = logging.getLogger(__name__)


@router.post("/", response_model=DonationRead, status_code=201)
def create_donation(donation_in: DonationCreate, session: SessionDep, donor: DonorDep):
    """
    Submit a donation. It waits in 'pending' until an admin reviews it.
    """
    donation = Donation(
        donor_id=donor.id,
        item_name=donation_in.item_name,
        quantity=donation_in.quantity,
        expiry_date=donation_in.expiry_date,
        description=donation_in.description,
        image_url=donation_in.image_url,
        status=lifecycle.PENDING,
    )
    session.add(donation)
    session.commit()
    session.refresh(donation)
    logger.info("Donation %s submitted by donor %s", donation.id, donor.id)
    return donation


@router.get("/mine", response_model=List[DonationRead])
def my_donations(session: SessionDep, donor: DonorDep):
    return session.exec(
        select(Donation)
        .where(Donation.donor_id == donor.id)
        .order_by(Donation.created_at.desc(), Donation.id.desc())
    ).all()


@router.get("/pending", response_model=List[DonationRead])
def pending_donations(session: SessionDep, admin: AdminDep):
    return session.exec(
        select(Donation)
        .where(Donation.status == lifecycle.PENDING)
        .order_by(Donation.created_at.desc(), Donation.id.desc())
    ).all()


@router.get("/inventory", response_model=List[InventoryDonationRead])
def inventory(session: SessionDep, admin: AdminDep):
    """
    Approved and claimed donations with their donor's name, newest first.
    """
    rows = session.exec(
        select(Donation, User.name)
        .join(User, User.id == Donation.donor_id)
        .where(Donation.status.in_([lifecycle.APPROVED, lifecycle.CLAIMED]))
        .order_by(Donation.created_at.desc(), Donation.id.desc())
    ).all()
    return [
        InventoryDonationRead(
            **DonationRead.model_validate(donation).model_dump(),
            donor_name=donor_name,
        )
        for donation, donor_name in rows
    ]


@router.get("/available", response_model=List[AvailableDonationRead])
def available_donations(session: SessionDep, user: RecipientDep, matched_only: bool = False):
    """
    Approved donations the caller can claim. Donations matched to the
    caller's organization come first, best match first. Every row also
    carries a live match_score against the caller's current requirements,
    whether or not matching has stored a mapping for it.
    """
    profile = ensure_recipient_profile(session, user)

    stmt = (
        select(Donation, Mapping.similarity_score)
        .join(
            Mapping,
            and_(Mapping.donation_id == Donation.id, Mapping.recipient_id == profile.id),
            isouter=not matched_only,
        )
        .where(Donation.status == lifecycle.APPROVED)
        .order_by(
            Mapping.similarity_score.is_(None),
            Mapping.similarity_score.desc(),
            Donation.created_at.desc(),
        )
    )
    rows = session.exec(stmt).all()
    results = []
    for donation, similarity in rows:
        live = match_score(donation, profile)
        results.append(
            AvailableDonationRead(
                **DonationRead.model_validate(donation).model_dump(),
                similarity_score=similarity,
                match_score=live,
                is_match=is_match(live),
            )
        )
    return results


@router.get("/{donation_id}", response_model=DonationRead)
def get_donation(donation_id: int, session: SessionDep, current: CurrentUserDep):
    donation = session.get(Donation, donation_id)
    if donation is None:
        raise NotFound("Donation not found")
    return donation


@router.get("/{donation_id}/mappings", response_model=List[MappingRead])
def donation_mappings(donation_id: int, session: SessionDep, current: CurrentUserDep):
    """
    Current match suggestions for a donation, best first.
    """
    if session.get(Donation, donation_id) is None:
        raise NotFound("Donation not found")
    return session.exec(
        select(Mapping)
        .where(Mapping.donation_id == donation_id)
        .order_by(Mapping.similarity_score.desc(), Mapping.id)
    ).all()


@router.post("/{donation_id}/approve", response_model=ApprovalResult)
def approve_donation(donation_id: int, session: SessionDep, admin: AdminDep):
    """
    Approve a pending donation and match it to recipients.

    The approval stands even when matching fails; 'matching.success' tells
    the two outcomes apart.
    """
    outcome = lifecycle.approve(session, donation_id, admin)
    if outcome.matched:
        matching = summary_to_result(outcome.matching)
    else:
        matching = error_to_failure(outcome.matching)
    return ApprovalResult(
        donation=DonationRead.model_validate(outcome.donation),
        matching=matching,
    )


@router.post("/{donation_id}/reject", response_model=DonationRead)
def reject_donation(donation_id: int, session: SessionDep, admin: AdminDep):
    return lifecycle.reject(session, donation_id, admin)


@router.post("/{donation_id}/claim", response_model=ClaimRead, status_code=201)
def claim_donation(donation_id: int, session: SessionDep, user: RecipientDep):
    """
    Claim an approved donation for the caller's organization.
    Only the first claim on a donation succeeds.
    """
    profile = ensure_recipient_profile(session, user)
    return claim(session, donation_id, profile, user)
