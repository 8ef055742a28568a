"""
座標の距離計算と近接スコア
"""

import math
from typing import Any, Optional

# 地球の平均半径（メートル）
EARTH_RADIUS_METERS = 6371008.8
# 緯度1度あたりの距離（メートル）
METERS_PER_DEGREE_LAT = EARTH_RADIUS_METERS * math.pi / 180


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """2点間の大円距離（メートル）"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def distance_between(
    lat1: Optional[float], lng1: Optional[float],
    lat2: Optional[float], lng2: Optional[float]
) -> Optional[float]:
    """どちらかの座標が欠けていればNone"""
    if None in (lat1, lng1, lat2, lng2):
        return None
    return haversine_distance(lat1, lng1, lat2, lng2)


def distance_to(entity: Any, latitude: Optional[float], longitude: Optional[float]) -> Optional[float]:
    """
    エンティティ（latitude/longitude属性を持つ）から指定地点までの距離

    Args:
        entity: 建物など座標を持つオブジェクト
        latitude: 地点の緯度
        longitude: 地点の経度

    Returns:
        距離（メートル）、座標がない場合はNone
    """
    return distance_between(
        getattr(entity, 'latitude', None), getattr(entity, 'longitude', None),
        latitude, longitude
    )


def proximity_score(distance: Optional[float], threshold_meters: float) -> float:
    """距離に反比例する近接スコア（閾値を超えたら0.0）"""
    if distance is None or threshold_meters <= 0:
        return 0.0
    if distance > threshold_meters:
        return 0.0
    return max(0.0, 1.0 - distance / threshold_meters)


def bounding_box(latitude: float, longitude: float, radius_meters: float):
    """
    半径検索の事前絞り込み用の矩形

    Returns:
        (最小緯度, 最大緯度, 最小経度, 最大経度)
    """
    d_lat = radius_meters / METERS_PER_DEGREE_LAT
    cos_lat = max(math.cos(math.radians(latitude)), 1e-6)
    d_lng = radius_meters / (METERS_PER_DEGREE_LAT * cos_lat)
    return (latitude - d_lat, latitude + d_lat, longitude - d_lng, longitude + d_lng)
