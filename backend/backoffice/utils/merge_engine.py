"""
エンティティ統合エンジン

検証 → ロック → スナップショット → フィールド適用・関連レコード付け替え →
統合履歴の記録 → 統合元の削除 を1トランザクションで実行する。
検証エラーは MergeError として書き込み前に送出する。
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from sqlalchemy.orm import Session

from ..config.dedupe_config import SNAPSHOT_VERSION
from ..exceptions import MergeError
from ..models import MergeRecord
from .dependent_records import DependentRecordType
from .field_resolution import FieldResolver, ResolutionResult, is_blank
from .logger import audit_operation
from .snapshot import build_secondary_snapshot, serialize_entity

logger = logging.getLogger(__name__)


@dataclass
class MergeTarget:
    """統合対象のエンティティ種別ごとの設定"""
    entity_type: str                                   # merge_records.entity_type
    label: str                                         # エラーメッセージ用の名称
    model: Any
    resolver_factory: Callable[[], FieldResolver]
    dependents: Sequence[DependentRecordType]
    unique_fields: Sequence[str]                       # テナント内で一意のフィールド
    contact_fields: Sequence[str]                      # 少なくとも1つは入力が必要な連絡先
    activity_sink_factory: Optional[Callable[[Session], Any]] = None
    merge_subject: str = "統合"
    undo_subject: str = "統合を取り消し"
    display_attr: str = 'name'


def locking_query(db: Session, model, ids: Sequence[int]):
    """ID昇順で SELECT ... FOR UPDATE するクエリ"""
    return db.query(model).filter(
        model.id.in_(sorted(set(ids)))
    ).order_by(model.id).with_for_update().populate_existing()


def lock_in_id_order(db: Session, model, ids: Sequence[int]) -> Dict[int, Any]:
    """
    行ロックをID昇順で取得（同じ組を逆の役割で統合する処理とのデッドロック防止）

    Returns:
        ID → 最新状態のエンティティ
    """
    return {entity.id: entity for entity in locking_query(db, model, ids).all()}


class MergeEngine:
    """統合処理（エンティティ種別は MergeTarget で指定）"""

    def __init__(self, db: Session, target: MergeTarget, activity_sink=None):
        self.db = db
        self.target = target
        self.resolver = target.resolver_factory()
        if activity_sink is None and target.activity_sink_factory is not None:
            activity_sink = target.activity_sink_factory(db)
        self.activity_sink = activity_sink

    def validate(self, primary, secondary, field_resolutions: Optional[Dict[str, str]] = None) -> ResolutionResult:
        """
        統合可能か検証し、統合後の値を返す（書き込みは行わない）

        Raises:
            MergeError: 同一エンティティ、テナント違い、連絡先なし、一意フィールドの重複
        """
        label = self.target.label
        if primary.id == secondary.id:
            raise MergeError(f"同じ{label}を統合することはできません")
        if primary.tenant_id != secondary.tenant_id:
            raise MergeError(f"異なるテナントの{label}は統合できません")

        resolution = self.resolver.resolve(primary, secondary, field_resolutions)

        if self.target.contact_fields and all(
            is_blank(resolution.values.get(name)) for name in self.target.contact_fields
        ):
            names = "も".join(self.resolver.label(name) for name in self.target.contact_fields)
            raise MergeError(f"統合後に{names}も無い状態にはできません")

        model = self.target.model
        for name in self.target.unique_fields:
            chosen = resolution.values.get(name)
            if is_blank(chosen):
                continue
            existing = self.db.query(model.id).filter(
                model.tenant_id == primary.tenant_id,
                model.id.notin_([primary.id, secondary.id]),
                getattr(model, name) == chosen
            ).first()
            if existing:
                raise MergeError(f"{self.resolver.label(name)}「{chosen}」は既に別の{label}で使用されています")

        return resolution

    def merge(
        self,
        primary,
        secondary,
        field_resolutions: Optional[Dict[str, str]] = None,
        performed_by_id: Optional[int] = None,
        merge_reason: Optional[str] = None
    ) -> MergeRecord:
        """
        secondary を primary に統合

        Args:
            primary: 統合先（残る側）
            secondary: 統合元（削除される側）
            field_resolutions: フィールド名 → 'primary' / 'secondary' / 'default'
            performed_by_id: 実行ユーザーID
            merge_reason: 統合理由

        Returns:
            作成した MergeRecord

        Raises:
            MergeError: 検証エラー（書き込みなし）
        """
        field_resolutions = dict(field_resolutions or {})
        db = self.db
        target = self.target

        with audit_operation(f"{target.entity_type}_merge", tenant_id=primary.tenant_id,
                             primary_id=primary.id, secondary_id=secondary.id,
                             performed_by_id=performed_by_id) as audit:
            self.validate(primary, secondary, field_resolutions)
            primary_id, secondary_id = primary.id, secondary.id

            try:
                locked = lock_in_id_order(db, target.model, [primary_id, secondary_id])
                primary = locked.get(primary_id)
                secondary = locked.get(secondary_id)
                if primary is None or secondary is None:
                    raise MergeError(f"統合対象の{target.label}が見つかりません")

                # ロック取得までに変更されている可能性があるため最新の状態で再検証
                resolution = self.validate(primary, secondary, field_resolutions)

                primary_snapshot = serialize_entity(primary, self.resolver.fields)
                dependent_ids = {
                    dependent.key: dependent.ids_for(db, secondary_id)
                    for dependent in target.dependents
                }
                secondary_snapshot = build_secondary_snapshot(secondary, dependent_ids)
                secondary_display = getattr(secondary, target.display_attr, None)

                # 統合先への反映で一意制約に違反しないよう統合元の一意フィールドを先に空にする
                for name in target.unique_fields:
                    setattr(secondary, name, None)
                db.flush()

                for name, value in resolution.values.items():
                    setattr(primary, name, value)
                db.flush()

                moved = {}
                for dependent in target.dependents:
                    moved[dependent.key] = dependent.reassign(db, secondary_id, primary_id)

                record = MergeRecord(
                    tenant_id=primary.tenant_id,
                    entity_type=target.entity_type,
                    primary_entity_id=primary_id,
                    secondary_entity_id=secondary_id,
                    performed_by_id=performed_by_id,
                    primary_snapshot=primary_snapshot,
                    secondary_snapshot=secondary_snapshot,
                    field_resolutions=field_resolutions,
                    snapshot_version=SNAPSHOT_VERSION,
                    merge_reason=merge_reason,
                    status='completed'
                )
                db.add(record)
                db.flush()

                if self.activity_sink is not None:
                    content = f"{secondary_display} を統合しました"
                    if not is_blank(merge_reason):
                        content += f"\n理由: {merge_reason}"
                    self.activity_sink.record(primary_id, performed_by_id, target.merge_subject, content)

                db.delete(secondary)
                db.commit()
            except Exception:
                db.rollback()
                raise

            audit["merge_record_id"] = record.id
            audit["moved"] = moved
            logger.info(f"{target.label}を統合しました: {secondary_id} → {primary_id}（統合履歴ID: {record.id}）")
            return record
