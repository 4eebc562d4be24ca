from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

import matching
import rate_limit
from errors import Forbidden, NotFound, StorageUnavailable, Unauthorized
from matching import run_matching
from models import Mapping


def _mappings(session, donation_id):
    return session.exec(
        select(Mapping)
        .where(Mapping.donation_id == donation_id)
        .order_by(Mapping.similarity_score.desc())
    ).all()


def test_paracetamol_maps_to_pain_relief_recipient_only(
    session, admin, make_donation, make_recipient
) -> None:
    pain = make_recipient("need pain relief medication")
    make_recipient("need surgical gloves")
    donation = make_donation(status="approved")

    summary = run_matching(session, donation.id, admin)

    assert summary.match_count == 1
    assert summary.top_match == (pain.id, 50.0)
    mappings = _mappings(session, donation.id)
    assert [(m.recipient_id, m.similarity_score) for m in mappings] == [(pain.id, 50.0)]


def test_recipient_description_counts_towards_matching(
    session, admin, make_donation, make_recipient
) -> None:
    clinic = make_recipient(description="Clinic stocking paracetamol")
    donation = make_donation(status="approved")

    summary = run_matching(session, donation.id, admin)

    assert summary.top_match == (clinic.id, 25.0)


def test_rerun_replaces_previous_mappings(session, admin, make_donation, make_recipient) -> None:
    for _ in range(5):
        make_recipient("pain relief")
    donation = make_donation(status="approved")

    run_matching(session, donation.id, admin)
    summary = run_matching(session, donation.id, admin)

    assert summary.match_count == 3
    assert len(_mappings(session, donation.id)) == 3


def test_no_recipients_is_an_empty_success(session, admin, make_donation) -> None:
    donation = make_donation(status="approved")

    summary = run_matching(session, donation.id, admin)

    assert summary.match_count == 0
    assert summary.top_match is None


def test_no_positive_scores_reports_no_matches(session, admin, make_donation, make_recipient) -> None:
    make_recipient("need surgical gloves")
    donation = make_donation(status="approved")

    summary = run_matching(session, donation.id, admin)

    assert summary.match_count == 0
    assert _mappings(session, donation.id) == []


def test_caller_must_be_an_authenticated_admin(session, make_user, make_donation) -> None:
    donation = make_donation(status="approved")

    with pytest.raises(Unauthorized):
        run_matching(session, donation.id, None)
    with pytest.raises(Forbidden):
        run_matching(session, donation.id, make_user("recipient"))


def test_unknown_donation(session, admin) -> None:
    with pytest.raises(NotFound):
        run_matching(session, 12345, admin)


def test_persistence_failure_leaves_donation_untouched(
    session, admin, make_donation, make_recipient, monkeypatch
) -> None:
    make_recipient("need pain relief medication")
    donation = make_donation(status="approved")

    def broken(*args, **kwargs):
        raise OperationalError("INSERT INTO mapping", {}, Exception("connection lost"))

    monkeypatch.setattr(matching, "replace_mappings", broken)

    with pytest.raises(StorageUnavailable) as excinfo:
        run_matching(session, donation.id, admin)

    assert excinfo.value.extra == {"matches": 1}
    session.refresh(donation)
    assert donation.status == "approved"


def test_rerun_with_no_recipients_clears_previous_mappings(
    session, admin, make_donation, make_recipient
) -> None:
    recipient = make_recipient("need pain relief medication")
    donation = make_donation(status="approved")
    run_matching(session, donation.id, admin)
    assert len(_mappings(session, donation.id)) == 1

    session.delete(recipient)
    session.commit()
    summary = run_matching(session, donation.id, admin)

    assert summary.match_count == 0
    assert _mappings(session, donation.id) == []


def test_rate_limiter_outage_is_storage_unavailable(
    session, admin, make_donation, make_recipient, monkeypatch
) -> None:
    make_recipient("need pain relief medication")
    donation = make_donation(status="approved")

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE ratelimitwindow", {}, Exception("database is locked"))

    monkeypatch.setattr(rate_limit, "_consume", broken)

    with pytest.raises(StorageUnavailable):
        run_matching(session, donation.id, admin)

    assert _mappings(session, donation.id) == []
