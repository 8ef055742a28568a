"""
重複候補検出のテスト
"""

import math
from datetime import datetime

import pytest

from backend.backoffice.utils.dismissal_store import DismissalStore, DismissedPairs
from backend.backoffice.utils.duplicate_detector import (
    BuildingDuplicateDetector,
    BuildingQuery,
    CustomerDuplicateDetector,
)
from backend.backoffice.utils.geo_proximity import EARTH_RADIUS_METERS

METERS_PER_DEGREE = EARTH_RADIUS_METERS * math.pi / 180
BASE_LAT, BASE_LNG = 35.6581, 139.7017


def north_of(meters):
    return BASE_LAT + meters / METERS_PER_DEGREE


class TestCustomerDuplicateDetector:
    """顧客の重複検出"""

    def test_phone_and_name_match(self, db_session, tenant, make_customer):
        """電話番号の表記ゆれと氏名一致で90点"""
        a = make_customer(name="田中太郎", phone="090-1234-5678", email="a@x.com")
        b = make_customer(name="田中太郎", phone="09012345678")

        candidates = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a)

        assert len(candidates) == 1
        assert candidates[0].entity.id == b.id
        assert candidates[0].score == 90.0
        assert candidates[0].reasons == ["電話番号一致", "名前一致"]
        assert candidates[0].confidence == 'highest'

    def test_phone_match_skips_name_tier(self, db_session, tenant, make_customer):
        """電話番号で見つかった場合は氏名だけの一致は検索しない"""
        a = make_customer(name="田中太郎", phone="090-1234-5678", email="a@x.com")
        b = make_customer(name="田中花子", phone="09012345678")
        make_customer(name="田中太郎", phone="080-0000-0000")

        candidates = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a)

        assert [c.entity.id for c in candidates] == [b.id]
        assert candidates[0].confidence == 'high'

    def test_name_only_fallback(self, db_session, tenant, make_customer):
        a = make_customer(name="田中 太郎", email="a@x.com")
        c = make_customer(name="田中太郎", phone="080-0000-0000")

        candidates = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a)

        assert [x.entity.id for x in candidates] == [c.id]
        assert candidates[0].confidence == 'medium'
        assert candidates[0].score == 50.0
        assert candidates[0].reasons == ["名前一致"]

    def test_missing_data_returns_empty(self, db_session, tenant, make_customer):
        """電話番号も一致する氏名もなければ空（エラーにならない）"""
        a = make_customer(name="山本一郎", email="a@x.com")
        make_customer(name="佐藤花子", phone="090-1111-2222")

        assert CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a) == []

    def test_other_tenant_ignored(self, db_session, tenant, other_tenant, make_customer):
        a = make_customer(name="田中太郎", phone="090-1234-5678")
        make_customer(name="田中太郎", phone="090-1234-5678", tenant_id=other_tenant.id)

        assert CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a) == []

    def test_top_n_and_ordering(self, db_session, tenant, make_customer):
        a = make_customer(name="田中太郎", phone="090-1234-5678")
        for i in range(5):
            make_customer(name=f"別人{i}", phone="09012345678")
        same_name = make_customer(name="田中太郎", phone="09012345678")

        candidates = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a)

        assert len(candidates) == 5
        assert candidates[0].entity.id == same_name.id
        scores = [c.score for c in candidates]
        assert scores == sorted(scores, reverse=True)
        assert len({c.entity.id for c in candidates}) == 5

    def test_top_n_from_environment(self, db_session, tenant, make_customer, monkeypatch):
        """候補の最大件数は環境変数で上書きできる"""
        monkeypatch.setenv("DEDUPE_TOP_N", "2")
        a = make_customer(name="田中太郎", phone="090-1234-5678")
        for i in range(4):
            make_customer(name=f"別人{i}", phone="09012345678")

        candidates = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_duplicates_for(a)

        assert len(candidates) == 2

    @pytest.mark.parametrize("reverse", [False, True])
    def test_dismissed_pair_never_returned(self, db_session, tenant, make_customer, reverse):
        """除外したペアは引数の順序に関係なく双方向で候補から外れる"""
        a = make_customer(name="田中太郎", phone="090-1234-5678")
        b = make_customer(name="田中太郎", phone="09012345678")

        store = DismissalStore.for_customers(db_session, tenant.id)
        if reverse:
            store.dismiss(b.id, a.id)
        else:
            store.dismiss(a.id, b.id)
        db_session.commit()

        detector = CustomerDuplicateDetector.for_tenant(db_session, tenant.id)
        assert detector.find_duplicates_for(a) == []
        assert detector.find_duplicates_for(b) == []

    def test_snapshot_is_read_at_construction(self, db_session, tenant, make_customer):
        a = make_customer(name="田中太郎", phone="090-1234-5678")
        b = make_customer(name="田中太郎", phone="09012345678")

        detector = CustomerDuplicateDetector(db_session, tenant.id, dismissed=DismissedPairs([(b.id, a.id)]))

        assert detector.find_duplicates_for(a) == []

    def test_whole_tenant_groups(self, db_session, tenant, make_customer):
        a = make_customer(name="田中太郎", phone="090-1234-5678")
        b = make_customer(name="田中太郎", phone="09012345678")
        c = make_customer(name="佐藤花子", phone="03-1111-2222")
        d = make_customer(name="佐藤一郎", phone="0311112222")
        make_customer(name="単独", phone="080-9999-9999")

        DismissalStore.for_customers(db_session, tenant.id).dismiss(c.id, d.id)
        db_session.commit()

        groups = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_all_duplicates()

        assert len(groups) == 1
        assert {m.id for m in groups[0].members} == {a.id, b.id}
        assert groups[0].score == 90.0
        assert groups[0].reasons == ["電話番号一致", "名前一致"]

    def test_group_keeps_members_with_undismissed_pair(self, db_session, tenant, make_customer):
        x = make_customer(name="甲", phone="090-0000-0001")
        y = make_customer(name="乙", phone="09000000001")
        z = make_customer(name="丙", phone="090 0000 0001")

        DismissalStore.for_customers(db_session, tenant.id).dismiss(x.id, y.id)
        db_session.commit()

        groups = CustomerDuplicateDetector.for_tenant(db_session, tenant.id).find_all_duplicates()

        assert len(groups) == 1
        assert {m.id for m in groups[0].members} == {x.id, y.id, z.id}


class TestBuildingDuplicateDetector:
    """建物の類似検出"""

    def test_name_and_proximity_deduplicated(self, db_session, tenant, make_building):
        """名前一致と近接の両方で見つかっても候補は1件で理由は統合される"""
        a = make_building("サンプルマンション", "東京都渋谷区神宮前3-1-2", BASE_LAT, BASE_LNG)
        b = make_building("サンプルマンション", None, north_of(80), BASE_LNG)

        candidates = BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(a)

        assert len(candidates) == 1
        assert candidates[0].entity.id == b.id
        assert candidates[0].reasons == ["名前が完全一致", "80m以内に存在"]
        assert candidates[0].score == pytest.approx(45.0, abs=0.01)

    def test_partial_address_match(self, db_session, tenant, make_building):
        b = make_building("芝浦タワー", "港区芝浦4-16-1")

        query = BuildingQuery(name="新築ビル", address="東京都港区芝浦4丁目16番1号")
        candidates = BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(query)

        assert [c.entity.id for c in candidates] == [b.id]
        assert candidates[0].reasons == ["住所が部分一致"]

    def test_fallback_radius(self, db_session, tenant, make_building):
        """近くに候補がなければ広い範囲で件数を絞って検索"""
        near = make_building("遠いマンション", None, north_of(300), BASE_LNG)
        make_building("さらに遠いマンション", None, north_of(800), BASE_LNG)

        query = BuildingQuery(name="新しい建物", latitude=BASE_LAT, longitude=BASE_LNG)
        candidates = BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(query)

        assert [c.entity.id for c in candidates] == [near.id]
        assert candidates[0].reasons == ["300m付近に存在"]
        assert candidates[0].confidence == 'low'

    def test_no_fallback_when_name_matches(self, db_session, tenant, make_building):
        named = make_building("新しい建物", None)
        make_building("遠いマンション", None, north_of(300), BASE_LNG)

        query = BuildingQuery(name="新しい建物", latitude=BASE_LAT, longitude=BASE_LNG)
        candidates = BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(query)

        assert [c.entity.id for c in candidates] == [named.id]

    def test_partial_coordinates_skip_proximity(self, db_session, tenant, make_building):
        """緯度・経度の片方だけでは近接検索しない"""
        make_building("近いマンション", None, north_of(30), BASE_LNG)

        query = BuildingQuery(name="新しい建物", latitude=BASE_LAT)
        assert not query.has_location
        assert BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(query) == []

    def test_no_signals(self, db_session, tenant, make_building):
        """名前・住所・座標が使えなくてもエラーにならない"""
        make_building("サンプルマンション", "渋谷区神宮前3-1-2")

        query = BuildingQuery(name="別の建物")
        assert BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(query) == []

    def test_discarded_building_excluded(self, db_session, tenant, make_building):
        a = make_building("サンプルマンション", None)
        make_building("サンプルマンション", None, discarded_at=datetime(2024, 1, 1))

        assert BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_similar(a) == []

    def test_dismissed_pair_excluded(self, db_session, tenant, make_building):
        a = make_building("サンプルマンション", None, BASE_LAT, BASE_LNG)
        b = make_building("サンプルマンション", None, north_of(50), BASE_LNG)

        DismissalStore.for_buildings(db_session, tenant.id).dismiss(b.id, a.id)
        db_session.commit()

        detector = BuildingDuplicateDetector.for_tenant(db_session, tenant.id)
        assert detector.find_similar(a) == []
        assert detector.find_similar(b) == []

    def test_whole_tenant_groups(self, db_session, tenant, make_building):
        a = make_building("パークハウス渋谷", None)
        b = make_building("パークハウス 渋谷", None)
        make_building("別の建物", None)

        groups = BuildingDuplicateDetector.for_tenant(db_session, tenant.id).find_all_duplicates()

        assert len(groups) == 1
        assert {m.id for m in groups[0].members} == {a.id, b.id}
        assert groups[0].reasons == ["名前が完全一致"]
