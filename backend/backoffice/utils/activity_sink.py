"""
統合・取り消し時の対応履歴の記録

記録は補助的なもので、失敗しても統合処理自体は継続する（警告ログのみ）。
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import CustomerActivity, Inquiry

logger = logging.getLogger(__name__)


class CustomerActivitySink:
    """顧客の最新の未完了案件に対応履歴を追加する"""

    ACTIVITY_TYPE = 'customer_merged'

    def __init__(self, db: Session):
        self.db = db

    def _latest_open_inquiry(self, customer_id: int) -> Optional[Inquiry]:
        return self.db.query(Inquiry).filter(
            Inquiry.customer_id == customer_id,
            Inquiry.status == 'open'
        ).order_by(Inquiry.created_at.desc(), Inquiry.id.desc()).first()

    def _write(self, customer_id: int, user_id: Optional[int], subject: str, content: str) -> Optional[CustomerActivity]:
        inquiry = self._latest_open_inquiry(customer_id)
        if inquiry is None:
            logger.debug(f"顧客ID {customer_id} に未完了の案件がないため対応履歴を記録しません")
            return None

        activity = CustomerActivity(
            customer_id=customer_id,
            inquiry_id=inquiry.id,
            user_id=user_id,
            activity_type=self.ACTIVITY_TYPE,
            direction='internal',
            subject=subject,
            content=content
        )
        self.db.add(activity)
        return activity

    def record(self, customer_id: int, user_id: Optional[int], subject: str, content: str) -> Optional[CustomerActivity]:
        """
        対応履歴を記録（セーブポイント内で実行し、失敗時はその部分だけ巻き戻す）

        Returns:
            作成した対応履歴、記録しなかった場合はNone
        """
        try:
            with self.db.begin_nested():
                return self._write(customer_id, user_id, subject, content)
        except Exception as e:
            logger.warning(f"対応履歴の記録に失敗しました（顧客ID: {customer_id}）: {e}", exc_info=True)
            return None
