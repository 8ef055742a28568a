"""
統合の取り消し

統合履歴のスナップショットから統合元を元のIDで復元し、統合先のフィールド値を
統合前に戻して、移動した関連レコードを統合元へ戻す。
統合後に統合先へ加えた変更はスナップショットの値で上書きされる。
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..exceptions import MergeError
from ..models import MergeRecord
from .logger import audit_operation
from .merge_engine import MergeTarget
from .snapshot import check_snapshot_version, deserialize_attributes

logger = logging.getLogger(__name__)

ALREADY_UNDONE_MESSAGE = "この統合は既に取り消されています"


class UndoEngine:
    """統合取り消し処理"""

    def __init__(self, db: Session, target: MergeTarget, activity_sink=None):
        self.db = db
        self.target = target
        if activity_sink is None and target.activity_sink_factory is not None:
            activity_sink = target.activity_sink_factory(db)
        self.activity_sink = activity_sink

    def _check_unique_values(self, record: MergeRecord, value_sets) -> None:
        """復元する一意フィールドの値が統合の当事者以外で使われていないか確認"""
        model = self.target.model
        resolver = self.target.resolver_factory()
        parties = [record.primary_entity_id, record.secondary_entity_id]
        for values in value_sets:
            for name in self.target.unique_fields:
                value = values.get(name)
                if value is None or not str(value).strip():
                    continue
                taken = self.db.query(model.id).filter(
                    model.tenant_id == record.tenant_id,
                    model.id.notin_(parties),
                    getattr(model, name) == value
                ).first()
                if taken:
                    raise MergeError(
                        f"{resolver.label(name)}「{value}」は既に別の{self.target.label}で使用されています"
                    )

    def undo(self, merge_record: MergeRecord, undone_by_id: Optional[int] = None) -> MergeRecord:
        """
        統合を取り消す（1つの統合履歴につき1回のみ）

        Args:
            merge_record: 取り消す統合履歴
            undone_by_id: 実行ユーザーID

        Returns:
            取り消し済みの統合履歴

        Raises:
            MergeError: 取り消し済み、統合先が存在しない、統合元のIDが使用中など
        """
        db = self.db
        target = self.target
        model = target.model

        with audit_operation(f"{target.entity_type}_merge_undo", tenant_id=merge_record.tenant_id,
                             merge_record_id=merge_record.id, undone_by_id=undone_by_id) as audit:
            if merge_record.is_undone:
                raise MergeError(ALREADY_UNDONE_MESSAGE)
            if merge_record.entity_type != target.entity_type:
                raise MergeError(f"{target.label}の統合履歴ではありません")
            check_snapshot_version(merge_record.snapshot_version)

            record_id = merge_record.id
            try:
                # 同時に取り消しが実行された場合は後の処理が取り消し済みを検出する
                record = db.query(MergeRecord).filter(
                    MergeRecord.id == record_id
                ).with_for_update().populate_existing().one()
                if record.is_undone:
                    raise MergeError(ALREADY_UNDONE_MESSAGE)

                primary = db.query(model).filter(
                    model.id == record.primary_entity_id
                ).with_for_update().populate_existing().first()
                if primary is None:
                    raise MergeError(f"統合先の{target.label}が見つかりません（ID: {record.primary_entity_id}）")

                secondary_id = record.secondary_entity_id
                if db.query(model.id).filter(model.id == secondary_id).first():
                    raise MergeError(f"統合元の{target.label}ID {secondary_id} は既に使用されています")

                primary_values = deserialize_attributes(model, record.primary_snapshot or {})
                snapshot = record.secondary_snapshot or {}
                attributes = deserialize_attributes(model, snapshot.get('attributes', {}))
                self._check_unique_values(record, [primary_values, attributes])

                # 統合先を先に戻して一意フィールドの値を空ける
                for name, value in primary_values.items():
                    setattr(primary, name, value)
                db.flush()

                attributes['id'] = secondary_id
                secondary = model(**attributes)
                db.add(secondary)
                db.flush()

                dependent_ids = snapshot.get('dependent_ids', {})
                for dependent in target.dependents:
                    dependent.move_ids(db, dependent_ids.get(dependent.key, []), secondary_id)

                record.status = 'undone'
                record.undone_by_id = undone_by_id
                record.undone_at = datetime.now()

                if self.activity_sink is not None:
                    secondary_display = getattr(secondary, target.display_attr, None)
                    self.activity_sink.record(
                        primary.id, undone_by_id, target.undo_subject,
                        f"{secondary_display} との統合を取り消しました"
                    )

                db.commit()
            except Exception:
                db.rollback()
                raise

            audit["restored_id"] = secondary_id
            logger.info(f"{target.label}の統合を取り消しました（統合履歴ID: {record_id}）")
            return record
