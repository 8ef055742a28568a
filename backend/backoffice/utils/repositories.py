"""
重複検出用の検索リポジトリ

テナント単位の完全一致・部分一致検索と、座標による半径検索を提供する。
読み取り専用でロックは取得しない。
"""

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..models import Building, Customer
from .geo_proximity import bounding_box, haversine_distance

logger = logging.getLogger(__name__)


class CustomerRepository:
    """顧客の検索"""

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id

    def _tenant_query(self, exclude_ids: Iterable[int] = ()):
        query = self.db.query(Customer).filter(Customer.tenant_id == self.tenant_id)
        exclude_ids = [i for i in exclude_ids if i is not None]
        if exclude_ids:
            query = query.filter(Customer.id.notin_(exclude_ids))
        return query

    def find_by_normalized_phone(self, phone_key: str, exclude_ids: Iterable[int] = ()) -> List[Customer]:
        """正規化済み電話番号が一致する顧客"""
        if not phone_key:
            return []
        return self._tenant_query(exclude_ids).filter(
            Customer.normalized_phone == phone_key
        ).order_by(Customer.id).all()

    def find_by_normalized_name(self, name_key: str, exclude_ids: Iterable[int] = ()) -> List[Customer]:
        """正規化済み氏名が一致する顧客"""
        if not name_key:
            return []
        return self._tenant_query(exclude_ids).filter(
            Customer.normalized_name == name_key
        ).order_by(Customer.id).all()

    def find_with_phone(self) -> List[Customer]:
        """電話番号が登録されている顧客（テナント全体の重複検出用）"""
        return self._tenant_query().filter(
            Customer.normalized_phone.isnot(None),
            Customer.normalized_phone != ''
        ).order_by(Customer.id).all()


class BuildingRepository:
    """建物の検索（論理削除済みは対象外）"""

    def __init__(self, db: Session, tenant_id: int):
        self.db = db
        self.tenant_id = tenant_id

    def _kept_query(self, exclude_ids: Iterable[int] = ()):
        query = self.db.query(Building).filter(
            Building.tenant_id == self.tenant_id,
            Building.discarded_at.is_(None)
        )
        exclude_ids = [i for i in exclude_ids if i is not None]
        if exclude_ids:
            query = query.filter(Building.id.notin_(exclude_ids))
        return query

    def find_by_canonical_name(self, name_key: str, exclude_ids: Iterable[int] = ()) -> List[Building]:
        """正規化済み建物名が完全一致する建物"""
        if not name_key:
            return []
        return self._kept_query(exclude_ids).filter(
            Building.canonical_name == name_key
        ).order_by(Building.id).all()

    def find_by_address_core(self, address_core: str, exclude_ids: Iterable[int] = ()) -> List[Building]:
        """正規化済み住所に核心部分を含む建物"""
        if not address_core:
            return []
        return self._kept_query(exclude_ids).filter(
            Building.normalized_address.contains(address_core, autoescape=True)
        ).order_by(Building.id).all()

    def find_named(self) -> List[Building]:
        """建物名のある建物（テナント全体の重複検出用）"""
        return self._kept_query().filter(
            Building.canonical_name.isnot(None)
        ).order_by(Building.id).all()

    def within_radius(
        self,
        latitude: float,
        longitude: float,
        radius_meters: float,
        limit: Optional[int] = None,
        exclude_ids: Iterable[int] = ()
    ) -> List[Tuple[Building, float]]:
        """
        指定地点から半径内の建物を距離順に取得

        矩形で絞り込んでから大円距離で判定する。

        Args:
            latitude: 中心の緯度
            longitude: 中心の経度
            radius_meters: 半径（メートル）
            limit: 最大件数
            exclude_ids: 除外する建物ID

        Returns:
            (建物, 距離) のリスト
        """
        min_lat, max_lat, min_lng, max_lng = bounding_box(latitude, longitude, radius_meters)
        buildings = self._kept_query(exclude_ids).filter(
            Building.latitude.isnot(None),
            Building.longitude.isnot(None),
            Building.latitude.between(min_lat, max_lat),
            Building.longitude.between(min_lng, max_lng)
        ).all()

        results = []
        for building in buildings:
            distance = haversine_distance(latitude, longitude, building.latitude, building.longitude)
            if distance <= radius_meters:
                results.append((building, distance))

        results.sort(key=lambda item: (item[1], item[0].id))
        if limit is not None:
            results = results[:limit]

        logger.debug(
            f"半径検索: ({latitude}, {longitude}) r={radius_meters}m -> {len(results)}件"
        )
        return results
