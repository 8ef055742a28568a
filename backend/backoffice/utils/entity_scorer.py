"""
候補ペアのスコア計算

各シグナルの部分スコア（0.0〜1.0）を固定の重みで線形結合し、0〜100に換算する。
片側に入力がないシグナルは0として扱い、残りの重みは再配分しない。
表示用の一致理由は重みとは独立した粗いルールで生成する。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..config.dedupe_config import (
    CUSTOMER_WEIGHTS, BUILDING_WEIGHTS,
    NEARBY_RADIUS_METERS, MIN_ADDRESS_CORE_LENGTH
)
from .address_normalizer import extract_address_core
from .geo_proximity import distance_to, proximity_score
from .string_similarity import (
    normalize_building_name, normalize_person_name, normalize_phone,
    normalize_text, similarity
)


@dataclass
class ScoreResult:
    """スコア計算結果"""
    score: float
    reasons: List[str] = field(default_factory=list)


class EntityScorer(ABC):
    """スコア計算の基底クラス"""

    weights: Dict[str, float] = {}

    @abstractmethod
    def sub_scores(self, subject: Any, candidate: Any) -> Dict[str, float]:
        """シグナルごとの部分スコア（0.0〜1.0）"""
        pass

    @abstractmethod
    def reasons(self, subject: Any, candidate: Any) -> List[str]:
        """表示用の一致理由"""
        pass

    def score(self, subject: Any, candidate: Any) -> ScoreResult:
        """
        候補ペアのスコアと一致理由を計算

        Args:
            subject: 比較元（エンティティまたは属性オブジェクト）
            candidate: 比較先のエンティティ

        Returns:
            ScoreResult
        """
        terms = self.sub_scores(subject, candidate)
        total = sum(self.weights[key] * value for key, value in terms.items())
        return ScoreResult(
            score=round(total * 100, 2),
            reasons=self.reasons(subject, candidate)
        )


class CustomerScorer(EntityScorer):
    """顧客の重複スコア（電話番号・氏名・連絡先）"""

    weights = CUSTOMER_WEIGHTS

    @staticmethod
    def _phones(subject, candidate):
        return (normalize_phone(getattr(subject, 'phone', None)),
                normalize_phone(getattr(candidate, 'phone', None)))

    @staticmethod
    def _names(subject, candidate):
        return (normalize_person_name(getattr(subject, 'name', None)),
                normalize_person_name(getattr(candidate, 'name', None)))

    @staticmethod
    def _same_value(subject, candidate, attr: str) -> bool:
        a = normalize_text(getattr(subject, attr, None))
        b = normalize_text(getattr(candidate, attr, None))
        return bool(a) and a == b

    def sub_scores(self, subject, candidate) -> Dict[str, float]:
        phone_a, phone_b = self._phones(subject, candidate)
        name_a, name_b = self._names(subject, candidate)

        contact_match = (self._same_value(subject, candidate, 'email')
                         or self._same_value(subject, candidate, 'line_user_id'))

        return {
            'phone': 1.0 if phone_a and phone_a == phone_b else 0.0,
            'name': similarity(name_a, name_b, normalizer=normalize_person_name) if name_a and name_b else 0.0,
            'contact': 1.0 if contact_match else 0.0,
        }

    def reasons(self, subject, candidate) -> List[str]:
        reasons = []
        phone_a, phone_b = self._phones(subject, candidate)
        if phone_a and phone_a == phone_b:
            reasons.append("電話番号一致")

        name_a, name_b = self._names(subject, candidate)
        if name_a and name_a == name_b:
            reasons.append("名前一致")

        if self._same_value(subject, candidate, 'email'):
            reasons.append("メールアドレス一致")
        if self._same_value(subject, candidate, 'line_user_id'):
            reasons.append("LINE ID一致")
        return reasons


class BuildingScorer(EntityScorer):
    """建物の類似スコア（建物名・住所・座標）"""

    weights = BUILDING_WEIGHTS

    def __init__(self, nearby_radius_meters: float = NEARBY_RADIUS_METERS):
        self.nearby_radius_meters = nearby_radius_meters

    def _distance(self, subject, candidate):
        return distance_to(candidate, getattr(subject, 'latitude', None), getattr(subject, 'longitude', None))

    def sub_scores(self, subject, candidate) -> Dict[str, float]:
        name_a = getattr(subject, 'name', None)
        name_b = getattr(candidate, 'name', None)
        core_a = extract_address_core(getattr(subject, 'address', None))
        core_b = extract_address_core(getattr(candidate, 'address', None))

        return {
            'name': similarity(name_a, name_b, normalizer=normalize_building_name) if name_a and name_b else 0.0,
            'address': similarity(core_a, core_b, normalizer=normalize_text) if core_a and core_b else 0.0,
            'location': proximity_score(self._distance(subject, candidate), self.nearby_radius_meters),
        }

    def reasons(self, subject, candidate) -> List[str]:
        reasons = []
        name_a = normalize_building_name(getattr(subject, 'name', None))
        name_b = normalize_building_name(getattr(candidate, 'name', None))
        if name_a and name_a == name_b:
            reasons.append("名前が完全一致")

        core_a = extract_address_core(getattr(subject, 'address', None))
        core_b = extract_address_core(getattr(candidate, 'address', None))
        if len(core_a) >= MIN_ADDRESS_CORE_LENGTH and core_a in core_b:
            reasons.append("住所が部分一致")

        distance = self._distance(subject, candidate)
        if distance is not None and distance <= self.nearby_radius_meters:
            reasons.append(f"{round(distance)}m以内に存在")
        return reasons
