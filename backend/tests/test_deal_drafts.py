import pytest

from prism import models
from prism.services import deal_drafts
from prism.services.deal_drafts import (
    AgentRef,
    AttachmentRef,
    DraftAlreadySubmitted,
    DraftItemNotFound,
    ReadOnlyFieldError,
)


def _draft_with_product(unit_price="100", quantity="2"):
    draft = deal_drafts.new_draft(name="Spring Campaign", division="Talent")
    product = deal_drafts.add_product(
        draft, product_name="Instagram posts", unit_price=unit_price, quantity=quantity
    )
    return draft, product


# =============================================================================
# Deal fields
# =============================================================================


def test_new_draft_defaults():
    draft = deal_drafts.new_draft()
    assert draft.stage == "Initial Outreach"
    assert draft.products == [] and draft.schedules == []
    assert not deal_drafts.amount_locked(draft)
    assert not deal_drafts.split_percent_locked(draft)


def test_update_deal_fields_validates():
    draft = deal_drafts.new_draft()
    with pytest.raises(ValueError):
        deal_drafts.update_deal_fields(draft, {"colour": "red"})
    with pytest.raises(ValueError):
        deal_drafts.update_deal_fields(draft, {"stage": "Lost"})

    deal_drafts.update_deal_fields(draft, {"stage": "Negotiation", "amount": 1500.0})
    assert draft.stage == "Negotiation"
    assert draft.amount == "1500"


# =============================================================================
# Products and schedules cascade
# =============================================================================


def test_products_drive_deal_amount_and_lock_it():
    draft, product = _draft_with_product()

    assert product.total_price == "200.00"
    assert draft.amount == "200.00"
    assert deal_drafts.amount_locked(draft)
    with pytest.raises(ReadOnlyFieldError):
        deal_drafts.update_deal_fields(draft, {"amount": "999"})


def test_schedule_revenue_rolls_up_to_product_and_deal():
    draft, product = _draft_with_product()
    schedule = deal_drafts.add_schedule(
        draft, product.id, description="Q1", schedule_date="2025-01-15", revenue="150", split_percent="20"
    )

    assert schedule.commission_amount == "30.00"
    assert schedule.talent_amount == "120.00"
    assert deal_drafts.find_product(draft, product.id).total_price == "150.00"
    assert draft.amount == "150.00"
    assert draft.split_percent == "20.00"

    deal_drafts.add_schedule(draft, product.id, revenue="50", split_percent="10")
    assert deal_drafts.find_product(draft, product.id).total_price == "200.00"
    # (20 * 150 + 10 * 50) / 200
    assert draft.split_percent == "17.50"


def test_locked_fields_reject_manual_edits():
    draft, product = _draft_with_product()
    deal_drafts.add_schedule(draft, product.id, revenue="150", split_percent="20")

    with pytest.raises(ReadOnlyFieldError):
        deal_drafts.update_product_field(draft, product.id, "total_price", "1")
    with pytest.raises(ReadOnlyFieldError):
        deal_drafts.update_deal_fields(draft, {"split_percent": "5"})


def test_new_schedule_inherits_deal_split():
    draft = deal_drafts.new_draft(split_percent="15")
    schedule = deal_drafts.add_schedule(draft)

    assert schedule.split_percent == "15"
    assert schedule.product_id is None
    assert draft.split_percent == "15.00"


def test_add_schedule_to_missing_product():
    draft = deal_drafts.new_draft()
    with pytest.raises(DraftItemNotFound):
        deal_drafts.add_schedule(draft, "product-nope")


def test_removing_product_cascades_to_schedules():
    draft, product = _draft_with_product()
    deal_drafts.add_schedule(draft, product.id, revenue="150")
    unattached = deal_drafts.add_schedule(draft, revenue="10")

    deal_drafts.remove_product(draft, product.id)

    assert draft.products == []
    assert [s.id for s in draft.schedules] == [unattached.id]
    assert not deal_drafts.amount_locked(draft)


def test_update_schedule_field_recalculates():
    draft, product = _draft_with_product()
    schedule = deal_drafts.add_schedule(draft, product.id, revenue="100", split_percent="10")

    updated = deal_drafts.update_schedule_field(draft, schedule.id, "revenue", "400")
    assert updated.commission_amount == "40.00"
    assert draft.amount == "400.00"

    with pytest.raises(DraftItemNotFound):
        deal_drafts.update_schedule_field(draft, "schedule-nope", "revenue", "1")
    with pytest.raises(DraftItemNotFound):
        deal_drafts.update_schedule_field(draft, schedule.id, "product_id", "product-nope")


def test_remove_schedule_unlocks_product_total():
    draft, product = _draft_with_product()
    schedule = deal_drafts.add_schedule(draft, product.id, revenue="150")

    assert deal_drafts.find_product(draft, product.id).total_price == "150.00"

    deal_drafts.remove_schedule(draft, schedule.id)

    assert deal_drafts.find_product(draft, product.id).total_price == "200.00"
    assert draft.amount == "200.00"

    updated = deal_drafts.update_product_field(draft, product.id, "total_price", "75")
    assert updated.total_price == "75"
    assert draft.amount == "75.00"


def test_moving_last_schedule_resets_previous_product_total():
    draft, first = _draft_with_product(unit_price="10", quantity="2")
    second = deal_drafts.add_product(draft, product_name="Stories", unit_price="5", quantity="1")
    schedule = deal_drafts.add_schedule(draft, first.id, revenue="500")
    assert draft.amount == "505.00"

    deal_drafts.update_schedule_field(draft, schedule.id, "product_id", second.id)

    assert deal_drafts.find_product(draft, first.id).total_price == "20.00"
    assert deal_drafts.find_product(draft, second.id).total_price == "500.00"
    assert draft.amount == "520.00"


# =============================================================================
# Agents and splits
# =============================================================================


def test_set_agents_seeds_equal_deal_splits():
    draft = deal_drafts.new_draft()
    deal_drafts.set_agents(
        draft,
        AgentRef("owner", "Olivia"),
        [AgentRef("a1", "Avery"), AgentRef("owner", "Olivia"), AgentRef("a1", "Avery")],
    )

    assert [a.id for a in draft.additional_agents] == ["a1"]
    assert draft.agent_splits == {"a1": "50.00", "owner": "50.00"}


def test_deal_agent_percent_is_manual_and_soft():
    draft = deal_drafts.new_draft()
    deal_drafts.set_agents(draft, AgentRef("owner"), [AgentRef("a1")])

    deal_drafts.set_deal_agent_percent(draft, "a1", "70")
    assert draft.agent_splits == {"a1": "70", "owner": "50.00"}

    with pytest.raises(DraftItemNotFound):
        deal_drafts.set_deal_agent_percent(draft, "ghost", "1")


def test_split_mode_toggle():
    draft, product = _draft_with_product()
    deal_drafts.set_agents(draft, AgentRef("owner"), [AgentRef("a1")])
    schedule = deal_drafts.add_schedule(draft, product.id, revenue="100")
    assert schedule.agent_splits is None

    deal_drafts.set_split_mode(draft, True)
    assert deal_drafts.find_schedule(draft, schedule.id).agent_splits == {
        "a1": "50.00",
        "owner": "50.00",
    }
    assert deal_drafts.split_percent_locked(draft)
    with pytest.raises(ReadOnlyFieldError):
        deal_drafts.set_deal_agent_percent(draft, "a1", "10")

    new_schedule = deal_drafts.add_schedule(draft, product.id)
    assert new_schedule.agent_splits == {"a1": "50.00", "owner": "50.00"}

    deal_drafts.set_split_mode(draft, False)
    assert all(s.agent_splits is None for s in draft.schedules)


def test_membership_change_reseeds_schedule_splits():
    draft, product = _draft_with_product()
    deal_drafts.set_agents(draft, AgentRef("owner"), [AgentRef("a1")])
    deal_drafts.set_split_mode(draft, True)
    schedule = deal_drafts.add_schedule(draft, product.id, revenue="100")
    deal_drafts.set_schedule_payee_percent(draft, schedule.id, "a1", "80")

    deal_drafts.set_agents(draft, AgentRef("owner"), [AgentRef("a1"), AgentRef("a2")])

    assert draft.agent_splits == {"a1": "33.33", "a2": "33.33", "owner": "33.33"}
    assert deal_drafts.find_schedule(draft, schedule.id).agent_splits == {
        "a1": "80",
        "a2": "33.33",
        "owner": "50.00",
    }


def test_schedule_payees():
    draft, product = _draft_with_product()
    deal_drafts.set_agents(draft, AgentRef("owner"), [])
    schedule = deal_drafts.add_schedule(draft, product.id, revenue="100")

    with pytest.raises(ValueError):
        deal_drafts.add_schedule_payee(draft, schedule.id, custom_name="Jane")

    deal_drafts.set_split_mode(draft, True)
    updated = deal_drafts.add_schedule_payee(draft, schedule.id, custom_name="Jane")
    assert updated.agent_splits == {"owner": "50.00", "custom_Jane": "50.00"}

    with pytest.raises(ValueError):
        deal_drafts.add_schedule_payee(draft, schedule.id, custom_name="Jane")
    with pytest.raises(ValueError):
        deal_drafts.add_schedule_payee(draft, schedule.id)
    with pytest.raises(DraftItemNotFound):
        deal_drafts.add_schedule_payee(draft, schedule.id, agent_id="stranger")

    updated = deal_drafts.remove_schedule_payee(draft, schedule.id, "owner")
    assert updated.agent_splits == {"custom_Jane": "100.00"}

    with pytest.raises(DraftItemNotFound):
        deal_drafts.remove_schedule_payee(draft, schedule.id, "owner")


# =============================================================================
# Attachments, summary and storage
# =============================================================================


def test_attachments():
    draft = deal_drafts.new_draft()
    ref = AttachmentRef(
        id="att1", file_name="brief.pdf", file_type="application/pdf", file_size=10, storage_uri="file:///x"
    )
    deal_drafts.add_attachment(draft, ref)
    assert deal_drafts.describe_attachment(draft, "att1", "Signed brief").description == "Signed brief"

    removed = deal_drafts.remove_attachment(draft, "att1")
    assert removed.file_name == "brief.pdf"
    assert draft.attachments == []
    with pytest.raises(DraftItemNotFound):
        deal_drafts.remove_attachment(draft, "att1")


def test_summary_without_schedules_uses_deal_amount():
    draft = deal_drafts.new_draft(amount="1000", split_percent="20")
    deal_drafts.set_agents(draft, AgentRef("owner", "Olivia"), [AgentRef("a1", "Avery")])

    summary = deal_drafts.summarize(draft)

    assert summary["commission_amount"] == "200.00"
    assert summary["talent_amount"] == "800.00"
    assert summary["agent_splits_balanced"] is True
    assert summary["payees"] == [
        {"payee_id": "a1", "name": "Avery", "percent": "50.00", "amount": "100.00"},
        {"payee_id": "owner", "name": "Olivia", "percent": "50.00", "amount": "100.00"},
    ]


def test_summary_with_schedules_sums_schedule_amounts():
    draft, product = _draft_with_product()
    deal_drafts.add_schedule(draft, product.id, revenue="100", split_percent="10")
    deal_drafts.add_schedule(draft, product.id, revenue="300", split_percent="20")

    summary = deal_drafts.summarize(draft)

    assert summary["total_product_value"] == "400.00"
    assert summary["total_schedule_revenue"] == "400.00"
    assert summary["commission_amount"] == "70.00"
    assert summary["talent_amount"] == "330.00"
    assert summary["split_percent_locked"] is True


def test_document_roundtrip():
    draft, product = _draft_with_product()
    deal_drafts.set_agents(draft, AgentRef("owner", "Olivia"), [AgentRef("a1", "Avery")])
    deal_drafts.set_split_mode(draft, True)
    deal_drafts.add_schedule(draft, product.id, revenue="100", split_percent="10")

    assert deal_drafts.from_document(deal_drafts.to_document(draft)) == draft


def test_submitted_draft_is_read_only(db_session):
    record = deal_drafts.create_draft_record(db_session, deal_drafts.new_draft(name="Deal"), "user-1")
    assert record.status == models.DraftStatus.open
    assert deal_drafts.load_editable_draft(record).name == "Deal"

    record.status = models.DraftStatus.submitted
    db_session.commit()

    with pytest.raises(DraftAlreadySubmitted):
        deal_drafts.load_editable_draft(record)
    with pytest.raises(DraftItemNotFound):
        deal_drafts.get_draft_record(db_session, 9999)


def test_claim_for_submission_wins_once(db_session):
    record = deal_drafts.create_draft_record(db_session, deal_drafts.new_draft(name="Claimed"))

    deal_drafts.claim_for_submission(db_session, record)
    assert record.status == models.DraftStatus.submitting
    with pytest.raises(DraftAlreadySubmitted, match="being submitted"):
        deal_drafts.load_editable_draft(record)

    with pytest.raises(DraftAlreadySubmitted):
        deal_drafts.claim_for_submission(db_session, record)

    deal_drafts.release_submission_claim(db_session, record)
    assert deal_drafts.load_editable_draft(record).name == "Claimed"
