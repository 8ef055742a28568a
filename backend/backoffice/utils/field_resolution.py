"""
統合時のフィールド値の決定

フィールドごとに既定の統合方法（戦略）を表で持ち、呼び出し側が
'primary' / 'secondary' を指定した場合はその値をそのまま採用する。
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

from ..config.dedupe_config import NOTES_SEPARATOR, TEXT_SEPARATOR
from ..exceptions import MergeError

VALID_CHOICES = ('primary', 'secondary', 'default')


def is_blank(value: Any) -> bool:
    """None・空白のみの文字列・空のリストを未入力とみなす"""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def prefer_present(primary: Any, secondary: Any) -> Any:
    """入力がある方を採用（両方あれば統合先）"""
    return secondary if is_blank(primary) else primary


def union_list(primary: Any, secondary: Any) -> list:
    """リストの和集合（統合先の順序を維持）"""
    merged = list(primary or [])
    for item in secondary or []:
        if item not in merged:
            merged.append(item)
    return merged


def latest(primary: Any, secondary: Any) -> Any:
    values = [v for v in (primary, secondary) if v is not None]
    return max(values) if values else None


def concat_notes(primary: Any, secondary: Any) -> Optional[str]:
    parts = [v for v in (primary, secondary) if not is_blank(v)]
    return NOTES_SEPARATOR.join(parts) if parts else None


def concat_unique_text(primary: Any, secondary: Any) -> Optional[str]:
    parts = []
    for value in (primary, secondary):
        if not is_blank(value) and value not in parts:
            parts.append(value)
    return TEXT_SEPARATOR.join(parts) if parts else None


def active_if_any(primary: Any, secondary: Any) -> Any:
    if 'active' in (primary, secondary):
        return 'active'
    return primary


# 顧客の統合対象フィールドと既定の統合方法
CUSTOMER_FIELD_STRATEGIES: Dict[str, Callable[[Any, Any], Any]] = {
    'name': prefer_present,
    'email': prefer_present,
    'line_user_id': prefer_present,
    'phone': prefer_present,
    'notes': concat_notes,
    'status': active_if_any,
    'expected_move_date': prefer_present,
    'budget_min': prefer_present,
    'budget_max': prefer_present,
    'preferred_areas': union_list,
    'requirements': concat_unique_text,
    'last_contacted_at': latest,
}

CUSTOMER_UNIQUE_FIELDS = ('email', 'line_user_id')
CUSTOMER_CONTACT_FIELDS = ('email', 'line_user_id')

CUSTOMER_FIELD_LABELS = {
    'name': '顧客名',
    'email': 'メールアドレス',
    'line_user_id': 'LINE ID',
    'phone': '電話番号',
}


@dataclass
class ResolutionResult:
    """フィールド決定の結果"""
    values: Dict[str, Any]
    discarded: Dict[str, Any] = field(default_factory=dict)    # 採用されなかった一意フィールドの値


class FieldResolver:
    """戦略表に基づいて統合後の値を決める"""

    def __init__(
        self,
        strategies: Dict[str, Callable[[Any, Any], Any]],
        unique_fields: Iterable[str] = (),
        labels: Optional[Dict[str, str]] = None,
        notes_field: Optional[str] = 'notes'
    ):
        self.strategies = strategies
        self.unique_fields = tuple(unique_fields)
        self.labels = labels or {}
        self.notes_field = notes_field

    @property
    def fields(self):
        return list(self.strategies.keys())

    def label(self, field_name: str) -> str:
        return self.labels.get(field_name, field_name)

    def validate_choices(self, field_resolutions: Optional[Dict[str, str]]):
        """指定内容の検証（不正な指定は統合エラー）"""
        for field_name, choice in (field_resolutions or {}).items():
            if field_name not in self.strategies:
                raise MergeError(f"統合できないフィールドです: {field_name}")
            if choice is not None and choice not in VALID_CHOICES:
                raise MergeError(f"{self.label(field_name)}の選択が不正です: {choice}")

    def resolve_value(self, field_name: str, primary_value: Any, secondary_value: Any,
                      choice: Optional[str] = None) -> Any:
        if choice == 'primary':
            return primary_value
        if choice == 'secondary':
            return secondary_value
        return self.strategies[field_name](primary_value, secondary_value)

    def resolve(self, primary, secondary, field_resolutions: Optional[Dict[str, str]] = None) -> ResolutionResult:
        """
        統合後のフィールド値を決定

        採用されなかった一意フィールドの値はメモ欄に追記する。

        Args:
            primary: 統合先エンティティ
            secondary: 統合元エンティティ
            field_resolutions: フィールド名 → 'primary' / 'secondary' / 'default'

        Returns:
            ResolutionResult
        """
        field_resolutions = field_resolutions or {}
        self.validate_choices(field_resolutions)

        values = {}
        for field_name in self.strategies:
            values[field_name] = self.resolve_value(
                field_name,
                getattr(primary, field_name),
                getattr(secondary, field_name),
                field_resolutions.get(field_name)
            )

        discarded = {}
        for field_name in self.unique_fields:
            kept = values.get(field_name)
            for candidate in (getattr(primary, field_name), getattr(secondary, field_name)):
                if not is_blank(candidate) and candidate != kept:
                    discarded[field_name] = candidate

        if discarded and self.notes_field:
            lines = [f"旧{self.label(name)}: {value}" for name, value in discarded.items()]
            parts = [p for p in [values.get(self.notes_field)] + lines if not is_blank(p)]
            values[self.notes_field] = "\n".join(parts)

        return ResolutionResult(values=values, discarded=discarded)


def customer_field_resolver() -> FieldResolver:
    return FieldResolver(CUSTOMER_FIELD_STRATEGIES, CUSTOMER_UNIQUE_FIELDS, CUSTOMER_FIELD_LABELS)
