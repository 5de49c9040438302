"""Tests for the pure graph reduction helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from contact_identity.models import LinkPrecedence
from contact_identity.resolution.graph import (
    LinkUpdate,
    collect_primary_ids,
    elect_primary,
    needs_gap_contact,
    plan_normalization,
)

from conftest import BASE_TIME

if TYPE_CHECKING:
    from conftest import MakeRecord


class TestCollectPrimaryIds:
    def test_primary_contributes_itself(self, make_record: MakeRecord) -> None:
        assert collect_primary_ids([make_record(1)]) == {1}

    def test_secondary_contributes_its_primary(self, make_record: MakeRecord) -> None:
        assert collect_primary_ids([make_record(5, linked_id=2)]) == {2}

    def test_two_stars(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1), make_record(3, linked_id=1), make_record(7, linked_id=4)]
        assert collect_primary_ids(contacts) == {1, 4}

    def test_empty(self) -> None:
        assert collect_primary_ids([]) == set()


class TestElectPrimary:
    def test_oldest_wins(self, make_record: MakeRecord) -> None:
        young = make_record(1, created_at=BASE_TIME.replace(year=2025))
        old = make_record(2, created_at=BASE_TIME.replace(year=2020))
        assert elect_primary([young, old]).id == 2

    def test_secondary_can_be_elected(self, make_record: MakeRecord) -> None:
        """Seniority is decided by creation time, not by current precedence."""
        secondary = make_record(
            9, linked_id=10, created_at=BASE_TIME.replace(year=2019)
        )
        primary = make_record(10, created_at=BASE_TIME.replace(year=2022))
        assert elect_primary([primary, secondary]).id == 9

    def test_same_timestamp_breaks_on_id(self, make_record: MakeRecord) -> None:
        a = make_record(8, created_at=BASE_TIME)
        b = make_record(3, created_at=BASE_TIME)
        assert elect_primary([a, b]).id == 3

    def test_empty_graph_rejected(self) -> None:
        with pytest.raises(ValueError):
            elect_primary([])


class TestPlanNormalization:
    def test_normalized_star_needs_no_writes(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1), make_record(2, linked_id=1), make_record(3, linked_id=1)]
        assert plan_normalization(contacts, primary_id=1) == []

    def test_losing_primary_is_demoted(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1), make_record(2)]
        assert plan_normalization(contacts, primary_id=1) == [
            LinkUpdate(2, LinkPrecedence.SECONDARY, 1)
        ]

    def test_losing_secondaries_are_relinked(self, make_record: MakeRecord) -> None:
        contacts = [
            make_record(1),
            make_record(2),
            make_record(3, linked_id=2),
            make_record(4, linked_id=1),
        ]
        updates = plan_normalization(contacts, primary_id=1)
        assert updates == [
            LinkUpdate(2, LinkPrecedence.SECONDARY, 1),
            LinkUpdate(3, LinkPrecedence.SECONDARY, 1),
        ]

    def test_elected_secondary_is_promoted(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1, linked_id=2), make_record(2)]
        updates = plan_normalization(contacts, primary_id=1)
        assert updates == [
            LinkUpdate(1, LinkPrecedence.PRIMARY, None),
            LinkUpdate(2, LinkPrecedence.SECONDARY, 1),
        ]

    def test_duplicate_rows_planned_once(self, make_record: MakeRecord) -> None:
        row = make_record(2)
        assert plan_normalization([make_record(1), row, row], primary_id=1) == [
            LinkUpdate(2, LinkPrecedence.SECONDARY, 1)
        ]


class TestNeedsGapContact:
    def test_single_field_never_inserts(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1, email="a@x.com", phone_number="111")]
        assert needs_gap_contact(contacts, "a@x.com", None) is False
        assert needs_gap_contact(contacts, None, "111") is False
        assert needs_gap_contact(contacts, "new@x.com", None) is False

    def test_exact_pair_already_stored(self, make_record: MakeRecord) -> None:
        contacts = [
            make_record(1, email="a@x.com", phone_number="111"),
            make_record(2, email="a@x.com", phone_number="222", linked_id=1),
        ]
        assert needs_gap_contact(contacts, "a@x.com", "222") is False

    def test_new_phone_for_known_email(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1, email="a@x.com", phone_number="111")]
        assert needs_gap_contact(contacts, "a@x.com", "222") is True

    def test_new_email_for_known_phone(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1, email="a@x.com", phone_number="111")]
        assert needs_gap_contact(contacts, "b@x.com", "111") is True

    def test_both_known_but_never_together(self, make_record: MakeRecord) -> None:
        contacts = [
            make_record(1, email="a@x.com", phone_number="111"),
            make_record(2, email="b@y.com", phone_number="222"),
        ]
        assert needs_gap_contact(contacts, "a@x.com", "222") is True

    def test_pair_split_across_rows_with_nulls(self, make_record: MakeRecord) -> None:
        contacts = [
            make_record(1, email="a@x.com"),
            make_record(2, phone_number="111", linked_id=1),
        ]
        assert needs_gap_contact(contacts, "a@x.com", "111") is True

    def test_nothing_known(self, make_record: MakeRecord) -> None:
        contacts = [make_record(1, email="a@x.com", phone_number="111")]
        assert needs_gap_contact(contacts, "z@x.com", "999") is False
