"""
統合候補の除外ペア管理

除外ペアは (小さいID, 大きいID) で正規化して保存し、引数の順序に依存せずに判定する。
検出処理には読み取り専用のスナップショットとして渡す。
"""

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import BuildingMergeExclusion, CustomerMergeDismissal

logger = logging.getLogger(__name__)


def canonical_pair(id_a: int, id_b: int) -> Tuple[int, int]:
    """ペアを (min, max) に正規化"""
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


class DismissedPairs:
    """除外ペアの読み取り専用スナップショット"""

    def __init__(self, pairs: Iterable[Tuple[int, int]] = ()):
        self._pairs = frozenset(canonical_pair(a, b) for a, b in pairs)

    def is_dismissed(self, id_a: Optional[int], id_b: Optional[int]) -> bool:
        if id_a is None or id_b is None:
            return False
        return canonical_pair(id_a, id_b) in self._pairs

    def __contains__(self, pair) -> bool:
        return self.is_dismissed(*pair)

    def __len__(self) -> int:
        return len(self._pairs)


class DismissalStore:
    """除外ペアの永続化（顧客・建物で共通）"""

    def __init__(self, db: Session, model, tenant_id: int,
                 left_column: str, right_column: str, actor_column: str):
        self.db = db
        self.model = model
        self.tenant_id = tenant_id
        self.left_column = left_column
        self.right_column = right_column
        self.actor_column = actor_column

    @classmethod
    def for_customers(cls, db: Session, tenant_id: int) -> "DismissalStore":
        return cls(db, CustomerMergeDismissal, tenant_id, 'customer1_id', 'customer2_id', 'dismissed_by_id')

    @classmethod
    def for_buildings(cls, db: Session, tenant_id: int) -> "DismissalStore":
        return cls(db, BuildingMergeExclusion, tenant_id, 'building1_id', 'building2_id', 'excluded_by_id')

    def _columns(self):
        return getattr(self.model, self.left_column), getattr(self.model, self.right_column)

    def snapshot(self) -> DismissedPairs:
        """テナントの除外ペアを読み込む"""
        left, right = self._columns()
        rows = self.db.query(left, right).filter(self.model.tenant_id == self.tenant_id).all()
        return DismissedPairs((row[0], row[1]) for row in rows)

    def find(self, id_a: int, id_b: int):
        """除外設定を取得（順序は問わない）"""
        small, large = canonical_pair(id_a, id_b)
        left, right = self._columns()
        return self.db.query(self.model).filter(
            self.model.tenant_id == self.tenant_id,
            left == small,
            right == large
        ).first()

    def list_all(self) -> List:
        return self.db.query(self.model).filter(
            self.model.tenant_id == self.tenant_id
        ).order_by(self.model.created_at.desc(), self.model.id.desc()).all()

    def dismiss(self, id_a: int, id_b: int, actor_id: Optional[int] = None, reason: Optional[str] = None):
        """
        ペアを除外設定に追加（既に存在する場合はそのレコードを返す）

        Args:
            id_a: エンティティID
            id_b: エンティティID
            actor_id: 操作ユーザーID
            reason: 除外理由

        Returns:
            除外設定レコード
        """
        if id_a == id_b:
            raise ValueError("同じIDのペアは除外設定できません")

        existing = self.find(id_a, id_b)
        if existing:
            return existing

        small, large = canonical_pair(id_a, id_b)
        row = self.model(
            tenant_id=self.tenant_id,
            reason=reason,
            **{self.left_column: small, self.right_column: large, self.actor_column: actor_id}
        )
        self.db.add(row)
        self.db.flush()
        logger.info(f"統合候補から除外: {self.model.__tablename__} ({small}, {large})")
        return row
