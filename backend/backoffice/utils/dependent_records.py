"""
統合対象エンティティに外部キーで紐づく関連レコードの一覧と一括付け替え
"""

from typing import Iterable, List

from sqlalchemy.orm import Session

from ..models import CustomerAccess, CustomerActivity, EmailDraft, Inquiry, PropertyInquiry


class DependentRecordType:
    """関連レコードの種類（スナップショットのキー・モデル・外部キー列）"""

    def __init__(self, key: str, model, foreign_key: str = 'customer_id'):
        self.key = key
        self.model = model
        self.foreign_key = foreign_key

    @property
    def _fk_column(self):
        return getattr(self.model, self.foreign_key)

    def ids_for(self, db: Session, entity_id: int) -> List[int]:
        """エンティティに紐づくレコードIDを取得"""
        rows = db.query(self.model.id).filter(self._fk_column == entity_id).order_by(self.model.id).all()
        return [row[0] for row in rows]

    def reassign(self, db: Session, from_id: int, to_id: int) -> int:
        """from_id に紐づくレコードをすべて to_id に付け替え"""
        return db.query(self.model).filter(
            self._fk_column == from_id
        ).update({self.foreign_key: to_id}, synchronize_session='fetch')

    def move_ids(self, db: Session, ids: Iterable[int], to_id: int) -> int:
        """指定IDのレコードを to_id に付け替え（統合取り消し用）"""
        ids = list(ids or [])
        if not ids:
            return 0
        return db.query(self.model).filter(
            self.model.id.in_(ids)
        ).update({self.foreign_key: to_id}, synchronize_session='fetch')

    def __repr__(self):
        return f"DependentRecordType({self.key!r}, {self.model.__name__})"


# 顧客に紐づく関連レコード（新しい種類を追加する場合はここに1行追加）
CUSTOMER_DEPENDENTS = (
    DependentRecordType('inquiry_ids', Inquiry),
    DependentRecordType('property_inquiry_ids', PropertyInquiry),
    DependentRecordType('customer_activity_ids', CustomerActivity),
    DependentRecordType('customer_access_ids', CustomerAccess),
    DependentRecordType('email_draft_ids', EmailDraft),
)
