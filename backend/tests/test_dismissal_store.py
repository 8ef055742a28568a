"""
統合候補の除外ペア管理のテスト
"""

import pytest

from backend.backoffice.models import CustomerMergeDismissal
from backend.backoffice.utils.dismissal_store import DismissalStore, DismissedPairs, canonical_pair


class TestDismissedPairs:
    """読み取り専用スナップショットのテスト"""

    def test_canonical_pair(self):
        assert canonical_pair(5, 2) == (2, 5)
        assert canonical_pair(2, 5) == (2, 5)

    def test_order_independent(self):
        pairs = DismissedPairs([(7, 3)])
        assert pairs.is_dismissed(3, 7)
        assert pairs.is_dismissed(7, 3)
        assert (3, 7) in pairs
        assert not pairs.is_dismissed(3, 8)
        assert len(pairs) == 1

    def test_unknown_id(self):
        """未登録（IDなし）の対象は除外されない"""
        assert not DismissedPairs([(1, 2)]).is_dismissed(None, 2)


class TestDismissalStore:
    """除外ペアの永続化のテスト"""

    def test_dismiss_stores_min_max(self, db_session, tenant, make_customer):
        a = make_customer(name="田中太郎", email="a@example.com")
        b = make_customer(name="田中太郎", email="b@example.com")
        store = DismissalStore.for_customers(db_session, tenant.id)

        row = store.dismiss(b.id, a.id, reason="別人")
        db_session.commit()

        assert (row.customer1_id, row.customer2_id) == (min(a.id, b.id), max(a.id, b.id))
        assert row.reason == "別人"

    def test_dismiss_is_idempotent(self, db_session, tenant, make_customer):
        a = make_customer(email="a@example.com")
        b = make_customer(email="b@example.com")
        store = DismissalStore.for_customers(db_session, tenant.id)

        first = store.dismiss(a.id, b.id)
        second = store.dismiss(b.id, a.id)
        db_session.commit()

        assert first.id == second.id
        assert db_session.query(CustomerMergeDismissal).count() == 1

    def test_same_id_rejected(self, db_session, tenant):
        store = DismissalStore.for_customers(db_session, tenant.id)
        with pytest.raises(ValueError):
            store.dismiss(1, 1)

    def test_snapshot_and_find(self, db_session, tenant, make_customer):
        a = make_customer(email="a@example.com")
        b = make_customer(email="b@example.com")
        store = DismissalStore.for_customers(db_session, tenant.id)
        store.dismiss(a.id, b.id)
        db_session.commit()

        snapshot = store.snapshot()

        assert snapshot.is_dismissed(b.id, a.id)
        assert store.find(b.id, a.id) is not None

    def test_tenant_scoped(self, db_session, tenant, other_tenant, make_customer):
        a = make_customer(email="a@example.com")
        b = make_customer(email="b@example.com")
        DismissalStore.for_customers(db_session, tenant.id).dismiss(a.id, b.id)
        db_session.commit()

        other = DismissalStore.for_customers(db_session, other_tenant.id)

        assert len(other.snapshot()) == 0
        assert other.list_all() == []
        assert len(DismissalStore.for_customers(db_session, tenant.id).list_all()) == 1

    def test_buildings(self, db_session, tenant, make_building):
        a = make_building("パークハウス")
        b = make_building("パークハウス")
        store = DismissalStore.for_buildings(db_session, tenant.id)

        row = store.dismiss(b.id, a.id, reason="別の建物")
        db_session.commit()

        assert (row.building1_id, row.building2_id) == (min(a.id, b.id), max(a.id, b.id))
        assert store.snapshot().is_dismissed(a.id, b.id)
