"""Recipient profiles and their requirement entries.

Requirements are stored in a single text column. Current rows hold a JSON
list of ``{"id": ..., "text": ...}`` objects; older rows hold a plain text
blob. Everything outside this module works with the parsed
``RequirementEntry`` list only.
"""
import json
import logging
import uuid
from dataclasses import asdict, dataclass
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from errors import NotFound
from models import RecipientProfile, User

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZATION_NAME = "NGO Organization"


@dataclass(frozen=True)
class RequirementEntry:
    id: str
    text: str


def _new_entry_id() -> str:
    return str(uuid.uuid4())


def _is_canonical(item) -> bool:
    return (
        isinstance(item, dict)
        and isinstance(item.get("id"), str)
        and bool(item["id"])
        and isinstance(item.get("text"), str)
    )


def _entry_from_item(item) -> Optional[RequirementEntry]:
    if isinstance(item, str):
        return RequirementEntry(id=_new_entry_id(), text=item) if item.strip() else None
    if not isinstance(item, dict) or not isinstance(item.get("text"), str):
        return None
    entry_id = item.get("id")
    if entry_id is None or entry_id == "":
        entry_id = _new_entry_id()
    return RequirementEntry(id=str(entry_id), text=item["text"])


def parse_requirements(raw: Optional[str]) -> List[RequirementEntry]:
    """Parse a stored requirements value into an ordered list of entries.

    A legacy plain-text value becomes a single entry holding the text verbatim.
    Plain strings inside a JSON list become entries too. Entries without an
    id get a fresh one, which only sticks once the list is written back (see
    ``needs_migration``).
    """
    if raw is None or not raw.strip():
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        data = None

    if not isinstance(data, list):
        return [RequirementEntry(id=_new_entry_id(), text=raw)]

    entries = []
    for item in data:
        entry = _entry_from_item(item)
        if entry is not None:
            entries.append(entry)
    return entries


def dump_requirements(entries: List[RequirementEntry]) -> str:
    return json.dumps([asdict(entry) for entry in entries])


def needs_migration(raw: Optional[str]) -> bool:
    """True unless ``raw`` is empty or already a list of ``{"id", "text"}`` strings."""
    if raw is None or not raw.strip():
        return False
    try:
        data = json.loads(raw)
    except ValueError:
        return True
    if not isinstance(data, list):
        return True
    return not all(_is_canonical(item) for item in data)


def matching_text(profile: RecipientProfile) -> str:
    """Text a recipient is matched on: its description plus every requirement."""
    parts = [profile.description or ""]
    parts.extend(entry.text for entry in parse_requirements(profile.requirements))
    return " ".join(part for part in parts if part)


def get_recipient_profile(session: Session, user: User) -> Optional[RecipientProfile]:
    return session.exec(
        select(RecipientProfile).where(RecipientProfile.user_id == user.id)
    ).first()


def ensure_recipient_profile(session: Session, user: User) -> RecipientProfile:
    """
    Return the caller's recipient profile, creating a minimal one if missing.

    Safe to call repeatedly and concurrently: a lost insert race falls back
    to the row the other caller created.
    """
    profile = get_recipient_profile(session, user)
    if profile is not None:
        return profile

    profile = RecipientProfile(
        user_id=user.id,
        organization_name=user.organization_name or user.name or DEFAULT_ORGANIZATION_NAME,
        contact_email=user.email,
    )
    session.add(profile)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        profile = get_recipient_profile(session, user)
        if profile is None:
            raise
        return profile

    session.refresh(profile)
    logger.info("Provisioned recipient profile %s for user %s", profile.id, user.id)
    return profile


def load_requirements(session: Session, profile: RecipientProfile) -> List[RequirementEntry]:
    """Parse the profile's requirements, writing back anything not yet in canonical form."""
    entries = parse_requirements(profile.requirements)
    if needs_migration(profile.requirements):
        profile.requirements = dump_requirements(entries)
        session.add(profile)
        session.commit()
        session.refresh(profile)
        logger.info("Migrated requirements for recipient %s", profile.id)
    return entries


def _save_requirements(
    session: Session, profile: RecipientProfile, entries: List[RequirementEntry]
) -> List[RequirementEntry]:
    profile.requirements = dump_requirements(entries)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return entries


def add_requirement(session: Session, profile: RecipientProfile, text: str) -> RequirementEntry:
    entries = load_requirements(session, profile)
    entry = RequirementEntry(id=_new_entry_id(), text=text.strip())
    _save_requirements(session, profile, entries + [entry])
    return entry


def update_requirement(
    session: Session, profile: RecipientProfile, entry_id: str, text: str
) -> RequirementEntry:
    entries = load_requirements(session, profile)
    if not any(entry.id == entry_id for entry in entries):
        raise NotFound("Requirement not found")

    updated = RequirementEntry(id=entry_id, text=text.strip())
    _save_requirements(
        session,
        profile,
        [updated if entry.id == entry_id else entry for entry in entries],
    )
    return updated


def delete_requirement(session: Session, profile: RecipientProfile, entry_id: str) -> None:
    entries = load_requirements(session, profile)
    remaining = [entry for entry in entries if entry.id != entry_id]
    if len(remaining) == len(entries):
        raise NotFound("Requirement not found")
    _save_requirements(session, profile, remaining)
