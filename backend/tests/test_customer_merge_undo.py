"""
顧客統合の取り消しのテスト
"""

import pytest

from backend.backoffice.exceptions import MergeError
from backend.backoffice.models import Customer, CustomerActivity, MergeRecord
from backend.backoffice.utils.customer_merge import merge_customers, undo_customer_merge
from backend.backoffice.utils.dependent_records import CUSTOMER_DEPENDENTS
from backend.backoffice.utils.field_resolution import customer_field_resolver
from backend.backoffice.utils.snapshot import serialize_entity


def load(db_session, model, entity_id):
    return db_session.query(model).filter(model.id == entity_id).first()


class TestCustomerMergeUndo:
    """統合取り消しのテスト"""

    def test_round_trip_restores_both_customers(self, db_session, staff, make_customer, add_dependents, dependents_of):
        """取り消し後は統合元が元のIDで復元され、関連レコードも統合前と同じになる"""
        a = make_customer(name="田中太郎", email="a@x.com", notes="メモA", preferred_areas=["渋谷区"])
        b = make_customer(name="田中 太郎", email="b@x.com", phone="090-1234-5678",
                          notes="メモB", preferred_areas=["港区"], budget_max=120000)
        add_dependents(a)
        add_dependents(b)
        a_id, b_id = a.id, b.id

        fields = customer_field_resolver().fields
        a_before = serialize_entity(a, fields)
        b_before = serialize_entity(b)
        deps_a_before = dependents_of(a_id)
        deps_b_before = dependents_of(b_id)

        record = merge_customers(db_session, a, b, field_resolutions={'email': 'secondary'})
        undone = undo_customer_merge(db_session, record, undone_by_id=staff.id)

        restored_a = load(db_session, Customer, a_id)
        restored_b = load(db_session, Customer, b_id)
        assert restored_b is not None
        assert serialize_entity(restored_a, fields) == a_before
        assert serialize_entity(restored_b) == b_before
        assert dependents_of(a_id) == deps_a_before
        assert dependents_of(b_id) == deps_b_before

        assert undone.status == 'undone'
        assert undone.undone_by_id == staff.id
        assert undone.undone_at is not None

    def test_changes_after_merge_are_overwritten(self, db_session, make_customer):
        """統合後に統合先へ加えた変更はスナップショットの値で上書きされる"""
        a = make_customer(name="田中太郎", email="a@x.com", requirements="駅近")
        b = make_customer(name="田中太郎", line_user_id="U-b")
        a_id = a.id

        record = merge_customers(db_session, a, b)

        merged = load(db_session, Customer, a_id)
        merged.requirements = "統合後に編集"
        db_session.commit()

        undo_customer_merge(db_session, record)

        restored = load(db_session, Customer, a_id)
        assert restored.requirements == "駅近"
        assert restored.line_user_id is None

    def test_second_undo_rejected(self, db_session, make_customer, dependents_of):
        """取り消しは1回のみ（2回目は何も書き込まずにエラー）"""
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        b_id = b.id

        record = merge_customers(db_session, a, b)
        undo_customer_merge(db_session, record)
        customer_count = db_session.query(Customer).count()
        deps_b = dependents_of(b_id)

        with pytest.raises(MergeError) as exc_info:
            undo_customer_merge(db_session, record)

        assert exc_info.value.reason == "この統合は既に取り消されています"
        assert db_session.query(Customer).count() == customer_count
        assert dependents_of(b_id) == deps_b

    def test_stale_record_rejected_after_lock(self, db_session, make_customer):
        """読み込み後に別の処理で取り消された統合履歴はロック後の再確認で検出する"""
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        record = merge_customers(db_session, a, b)
        record_id = record.id

        undo_customer_merge(db_session, record)
        stale = MergeRecord(id=record_id, entity_type='customer', status='completed', snapshot_version=1)

        with pytest.raises(MergeError) as exc_info:
            undo_customer_merge(db_session, stale)

        assert exc_info.value.reason == "この統合は既に取り消されています"

    def test_undo_activity_recorded(self, db_session, staff, make_customer, make_inquiry):
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中 太郎", line_user_id="U-b")
        make_inquiry(a, status="open")
        a_id = a.id

        record = merge_customers(db_session, a, b, performed_by_id=staff.id)
        undo_customer_merge(db_session, record, undone_by_id=staff.id)

        activities = db_session.query(CustomerActivity).filter(
            CustomerActivity.customer_id == a_id,
            CustomerActivity.activity_type == 'customer_merged'
        ).order_by(CustomerActivity.id).all()
        assert [x.subject for x in activities] == ["顧客統合", "顧客統合を取り消し"]
        assert activities[1].content == "田中 太郎 との統合を取り消しました"
        assert activities[1].user_id == staff.id

    def test_missing_primary_rejected(self, db_session, make_customer):
        """統合先が削除済みの場合は取り消せない"""
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        a_id, b_id = a.id, b.id
        record = merge_customers(db_session, a, b)
        record_id = record.id

        db_session.delete(load(db_session, Customer, a_id))
        db_session.commit()

        with pytest.raises(MergeError) as exc_info:
            undo_customer_merge(db_session, record)

        assert exc_info.value.reason == f"統合先の顧客が見つかりません（ID: {a_id}）"
        assert load(db_session, Customer, b_id) is None
        assert load(db_session, MergeRecord, record_id).status == 'completed'

    def test_secondary_id_in_use_rejected(self, db_session, tenant, make_customer):
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        b_id = b.id
        record = merge_customers(db_session, a, b)

        db_session.add(Customer(id=b_id, tenant_id=tenant.id, name="別の顧客", email="other@x.com"))
        db_session.commit()

        with pytest.raises(MergeError):
            undo_customer_merge(db_session, record)

        assert load(db_session, Customer, b_id).name == "別の顧客"
        assert record.status == 'completed'

    def test_unique_value_taken_by_other_customer_rejected(self, db_session, make_customer):
        """統合後に別の顧客が統合元のメールアドレスを使っていれば取り消せない"""
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        a_id, b_id = a.id, b.id
        record = merge_customers(db_session, a, b)
        record_id = record.id

        c = make_customer(name="佐藤花子", email="b@x.com")

        with pytest.raises(MergeError) as exc_info:
            undo_customer_merge(db_session, record)

        assert exc_info.value.reason == "メールアドレス「b@x.com」は既に別の顧客で使用されています"
        assert load(db_session, Customer, b_id) is None
        assert load(db_session, Customer, c.id).email == "b@x.com"
        assert load(db_session, Customer, a_id).email == "a@x.com"
        assert load(db_session, MergeRecord, record_id).status == 'completed'

    def test_unsupported_snapshot_version(self, db_session, make_customer):
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        record = merge_customers(db_session, a, b)
        record.snapshot_version = 99
        db_session.commit()

        with pytest.raises(MergeError):
            undo_customer_merge(db_session, record)

    def test_dependent_snapshot_keys(self, db_session, make_customer, add_dependents):
        """スナップショットには関連レコードの種類ごとのIDが保存される"""
        a = make_customer(name="田中太郎", email="a@x.com")
        b = make_customer(name="田中太郎", email="b@x.com")
        add_dependents(b)

        record = merge_customers(db_session, a, b)

        saved = record.secondary_snapshot['dependent_ids']
        assert set(saved) == {d.key for d in CUSTOMER_DEPENDENTS}
        assert all(len(ids) == 1 for ids in saved.values())
