from __future__ import annotations

import json

import pytest

import recipients
from errors import NotFound
from models import RecipientProfile
from recipients import (
    RequirementEntry,
    ensure_recipient_profile,
    matching_text,
    parse_requirements,
)


def test_parse_structured_requirements_keeps_order_and_ids() -> None:
    raw = json.dumps([{"id": "a", "text": "Antibiotics"}, {"id": "b", "text": "Insulin pens"}])

    assert parse_requirements(raw) == [
        RequirementEntry(id="a", text="Antibiotics"),
        RequirementEntry(id="b", text="Insulin pens"),
    ]


def test_parse_legacy_text_becomes_single_entry() -> None:
    entries = parse_requirements("need pain relief medication")

    assert len(entries) == 1
    assert entries[0].text == "need pain relief medication"
    assert entries[0].id


@pytest.mark.parametrize("raw", [None, "", "   ", "[]"])
def test_parse_empty_requirements(raw) -> None:
    assert parse_requirements(raw) == []


def test_matching_text_joins_description_and_entries() -> None:
    profile = RecipientProfile(
        organization_name="Clinic",
        description="Rural clinic",
        requirements=json.dumps([{"id": "a", "text": "antibiotics"}, {"id": "b", "text": "bandages"}]),
    )

    assert matching_text(profile) == "Rural clinic antibiotics bandages"


def test_ensure_recipient_profile_is_idempotent(session, make_user) -> None:
    user = make_user("recipient", name="Asha", organization_name="Hope Trust")

    first = ensure_recipient_profile(session, user)
    second = ensure_recipient_profile(session, user)

    assert first.id == second.id
    assert first.organization_name == "Hope Trust"
    assert first.contact_email == user.email


def test_ensure_recipient_profile_falls_back_to_display_name(session, make_user) -> None:
    user = make_user("recipient", name="Asha")

    assert ensure_recipient_profile(session, user).organization_name == "Asha"


def test_legacy_requirements_are_migrated_on_load(session, make_user) -> None:
    user = make_user("recipient")
    profile = ensure_recipient_profile(session, user)
    profile.requirements = "surgical gloves"
    session.add(profile)
    session.commit()

    entries = recipients.load_requirements(session, profile)

    assert [entry.text for entry in entries] == ["surgical gloves"]
    stored = json.loads(profile.requirements)
    assert stored == [{"id": entries[0].id, "text": "surgical gloves"}]


def test_add_edit_delete_requirements(session, make_user) -> None:
    profile = ensure_recipient_profile(session, make_user("recipient"))

    first = recipients.add_requirement(session, profile, "  Antibiotics ")
    second = recipients.add_requirement(session, profile, "Insulin")
    recipients.update_requirement(session, profile, first.id, "Antibiotics for children")
    recipients.delete_requirement(session, profile, second.id)

    entries = recipients.load_requirements(session, profile)
    assert entries == [RequirementEntry(id=first.id, text="Antibiotics for children")]


def test_editing_unknown_requirement_fails(session, make_user) -> None:
    profile = ensure_recipient_profile(session, make_user("recipient"))

    with pytest.raises(NotFound):
        recipients.update_requirement(session, profile, "missing", "text")
    with pytest.raises(NotFound):
        recipients.delete_requirement(session, profile, "missing")


def _profile_with(session, make_user, raw: str) -> RecipientProfile:
    profile = ensure_recipient_profile(session, make_user("recipient"))
    profile.requirements = raw
    session.add(profile)
    session.commit()
    return profile


def test_entries_without_ids_keep_the_id_they_are_listed_with(session, make_user) -> None:
    profile = _profile_with(session, make_user, json.dumps([{"text": "surgical gloves"}]))

    listed = recipients.load_requirements(session, profile)
    assert recipients.load_requirements(session, profile) == listed

    updated = recipients.update_requirement(session, profile, listed[0].id, "nitrile gloves")
    assert updated.id == listed[0].id
    recipients.delete_requirement(session, profile, listed[0].id)
    assert recipients.load_requirements(session, profile) == []


def test_plain_string_items_are_kept_and_matched(session, make_user) -> None:
    profile = _profile_with(session, make_user, json.dumps(["need pain relief medication"]))

    assert [entry.text for entry in parse_requirements(profile.requirements)] == [
        "need pain relief medication"
    ]
    assert "pain relief" in matching_text(profile)

    entries = recipients.load_requirements(session, profile)
    assert json.loads(profile.requirements) == [
        {"id": entries[0].id, "text": "need pain relief medication"}
    ]


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, False),
        ("", False),
        ("[]", False),
        (json.dumps([{"id": "a", "text": "Insulin"}]), False),
        ("surgical gloves", True),
        ('{"text": "Insulin"}', True),
        (json.dumps([{"text": "Insulin"}]), True),
        (json.dumps([{"id": 7, "text": "Insulin"}]), True),
        (json.dumps(["Insulin"]), True),
    ],
)
def test_needs_migration(raw, expected) -> None:
    assert recipients.needs_migration(raw) is expected
