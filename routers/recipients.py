from typing import List

from fastapi import APIRouter, Response

import recipients
from claims import claims_for_recipient
from db import SessionDep
from models import RecipientProfile
from schemas import (
    ClaimRead,
    RecipientProfileRead,
    RecipientProfileUpdate,
    RequirementEntryRead,
    RequirementText,
)
from .auth import RecipientDep

router = APIRouter(tags=["recipients"])


def _profile_read(profile: RecipientProfile, entries) -> RecipientProfileRead:
    return RecipientProfileRead(
        id=profile.id,
        user_id=profile.user_id,
        organization_name=profile.organization_name,
        description=profile.description,
        contact_email=profile.contact_email,
        contact_phone=profile.contact_phone,
        address=profile.address,
        requirements=[RequirementEntryRead(id=e.id, text=e.text) for e in entries],
    )


@router.get("/me", response_model=RecipientProfileRead)
def my_profile(session: SessionDep, user: RecipientDep):
    """
    The caller's organization profile, created on first use.
    """
    profile = recipients.ensure_recipient_profile(session, user)
    entries = recipients.load_requirements(session, profile)
    return _profile_read(profile, entries)


@router.patch("/me", response_model=RecipientProfileRead)
def update_my_profile(update: RecipientProfileUpdate, session: SessionDep, user: RecipientDep):
    profile = recipients.ensure_recipient_profile(session, user)
    for field, value in update.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    entries = recipients.load_requirements(session, profile)
    return _profile_read(profile, entries)


@router.get("/me/requirements", response_model=List[RequirementEntryRead])
def list_requirements(session: SessionDep, user: RecipientDep):
    profile = recipients.ensure_recipient_profile(session, user)
    entries = recipients.load_requirements(session, profile)
    return [RequirementEntryRead(id=e.id, text=e.text) for e in entries]


@router.post("/me/requirements", response_model=RequirementEntryRead, status_code=201)
def add_requirement(body: RequirementText, session: SessionDep, user: RecipientDep):
    profile = recipients.ensure_recipient_profile(session, user)
    entry = recipients.add_requirement(session, profile, body.text)
    return RequirementEntryRead(id=entry.id, text=entry.text)


@router.patch("/me/requirements/{entry_id}", response_model=RequirementEntryRead)
def edit_requirement(entry_id: str, body: RequirementText, session: SessionDep, user: RecipientDep):
    profile = recipients.ensure_recipient_profile(session, user)
    entry = recipients.update_requirement(session, profile, entry_id, body.text)
    return RequirementEntryRead(id=entry.id, text=entry.text)


@router.delete("/me/requirements/{entry_id}", status_code=204)
def remove_requirement(entry_id: str, session: SessionDep, user: RecipientDep):
    profile = recipients.ensure_recipient_profile(session, user)
    recipients.delete_requirement(session, profile, entry_id)
    return Response(status_code=204)


@router.get("/me/claims", response_model=List[ClaimRead])
def my_claims(session: SessionDep, user: RecipientDep):
    """
    Donations this organization has claimed, newest first.
    """
    profile = recipients.ensure_recipient_profile(session, user)
    return claims_for_recipient(session, profile)
