"""
統合取り消し用スナップショットの作成と復元

スナップショットはJSONとして保存するため、日付・日時はISO形式の文字列に変換する。
形式を変更した場合は SNAPSHOT_VERSION を上げ、読み込み側で分岐する。
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import Date, DateTime, inspect

from ..config.dedupe_config import SNAPSHOT_VERSION
from ..exceptions import MergeError

SUPPORTED_SNAPSHOT_VERSIONS = (1,)


def to_json_value(value: Any) -> Any:
    """JSONに保存できる値へ変換"""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    return value


def _column_types(model) -> Dict[str, Any]:
    return {attr.key: attr.columns[0].type for attr in inspect(model).column_attrs}


def serialize_entity(entity, fields: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """
    エンティティの列値を辞書に変換

    Args:
        entity: SQLAlchemyモデルのインスタンス
        fields: 対象の列名（省略時は全列）

    Returns:
        JSON化可能な辞書
    """
    keys = list(fields) if fields is not None else list(_column_types(type(entity)).keys())
    return {key: to_json_value(getattr(entity, key)) for key in keys}


def deserialize_attributes(model, data: Dict[str, Any]) -> Dict[str, Any]:
    """スナップショットの値を列の型に合わせて復元（未知の列は無視）"""
    column_types = _column_types(model)
    restored = {}
    for key, value in data.items():
        column_type = column_types.get(key)
        if column_type is None:
            continue
        if isinstance(value, str):
            if isinstance(column_type, DateTime):
                value = datetime.fromisoformat(value)
            elif isinstance(column_type, Date):
                value = date.fromisoformat(value)
        restored[key] = value
    return restored


def build_secondary_snapshot(entity, dependent_ids: Dict[str, list]) -> Dict[str, Any]:
    """統合元の全属性と関連レコードIDのスナップショット"""
    return {
        'attributes': serialize_entity(entity),
        'dependent_ids': {key: list(ids) for key, ids in dependent_ids.items()},
    }


def check_snapshot_version(version: Optional[int]):
    if version not in SUPPORTED_SNAPSHOT_VERSIONS:
        raise MergeError(f"未対応のスナップショット形式です（version={version}）")


__all__ = [
    'SNAPSHOT_VERSION',
    'to_json_value',
    'serialize_entity',
    'deserialize_attributes',
    'build_secondary_snapshot',
    'check_snapshot_version',
]
