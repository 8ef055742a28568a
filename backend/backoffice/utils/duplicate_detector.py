"""
重複候補の検出（顧客・建物）

段階的に候補を集め（完全一致 → 部分一致 → 近接）、すべての候補を同じスコア関数で
採点し、ID単位で重複を除去、除外ペアを除いてスコア順に上位N件を返す。
読み取り専用でロックは取得しない。
"""

import logging
from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..config.dedupe_config import DedupeConfig, MIN_ADDRESS_CORE_LENGTH
from ..models import Building, Customer
from .address_normalizer import extract_address_core
from .dismissal_store import DismissalStore, DismissedPairs
from .entity_scorer import BuildingScorer, CustomerScorer, EntityScorer
from .repositories import BuildingRepository, CustomerRepository
from .string_similarity import normalize_building_name, normalize_person_name, normalize_phone

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """重複候補"""
    entity: Any
    score: float
    reasons: List[str] = field(default_factory=list)
    confidence: Optional[str] = None      # highest, high, medium, low


@dataclass
class DuplicateGroup:
    """テナント全体の重複グループ"""
    members: List[Any]
    score: float
    reasons: List[str] = field(default_factory=list)


@dataclass
class BuildingQuery:
    """類似建物検索の条件（未登録の建物にも使う）"""
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    id: Optional[int] = None

    @classmethod
    def from_building(cls, building: Building) -> "BuildingQuery":
        return cls(
            name=building.name,
            address=building.address,
            latitude=building.latitude,
            longitude=building.longitude,
            id=building.id
        )

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


def _merge_reasons(*reason_lists: Iterable[str]) -> List[str]:
    merged = []
    for reasons in reason_lists:
        for reason in reasons:
            if reason not in merged:
                merged.append(reason)
    return merged


class _CandidateCollector:
    """段階ごとに見つかった候補をIDで束ねる（最初に見つかった段階の順序を保持）"""

    CONFIDENCE_RANK = {'highest': 4, 'high': 3, 'medium': 2, 'low': 1}

    def __init__(self):
        self._entries: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()

    def add(self, entity, reasons: Iterable[str] = (), confidence: Optional[str] = None):
        entry = self._entries.get(entity.id)
        if entry is None:
            self._entries[entity.id] = {
                'entity': entity,
                'reasons': list(reasons),
                'confidence': confidence,
            }
            return
        entry['reasons'] = _merge_reasons(entry['reasons'], reasons)
        if self.CONFIDENCE_RANK.get(confidence, 0) > self.CONFIDENCE_RANK.get(entry['confidence'], 0):
            entry['confidence'] = confidence

    def ids(self) -> List[int]:
        return list(self._entries.keys())

    def entries(self):
        return list(self._entries.values())

    def __len__(self):
        return len(self._entries)


class CandidateDetector:
    """重複候補検出の共通処理"""

    def __init__(self, scorer: EntityScorer, dismissed: Optional[DismissedPairs] = None,
                 top_n: Optional[int] = None):
        self.scorer = scorer
        self.dismissed = dismissed or DismissedPairs()
        self.config = DedupeConfig.get_config()
        self.top_n = top_n if top_n is not None else self.config['top_n']

    def _finalize(self, subject: Any, collector: _CandidateCollector) -> List[Candidate]:
        """採点・除外ペアの除去・並べ替え・件数制限"""
        subject_id = getattr(subject, 'id', None)
        results = []
        for entry in collector.entries():
            entity = entry['entity']
            if self.dismissed.is_dismissed(subject_id, entity.id):
                continue
            scored = self.scorer.score(subject, entity)
            results.append(Candidate(
                entity=entity,
                score=scored.score,
                reasons=_merge_reasons(entry['reasons'], scored.reasons),
                confidence=entry['confidence']
            ))

        # 安定ソートのため同点は検出段階の順序を維持
        results.sort(key=lambda c: -c.score)
        return results[:self.top_n]

    def _find_groups(self, entities: Iterable[Any], key_fn: Callable[[Any], str]) -> List[DuplicateGroup]:
        """識別子が完全一致するエンティティをグループ化（2件以上のみ）"""
        buckets: Dict[str, List[Any]] = defaultdict(list)
        for entity in entities:
            key = key_fn(entity)
            if key:
                buckets[key].append(entity)

        groups = []
        for members in buckets.values():
            if len(members) < 2:
                continue

            # 全員と除外済みのメンバーは外す
            undismissed = [
                member for member in members
                if any(other.id != member.id and not self.dismissed.is_dismissed(member.id, other.id)
                       for other in members)
            ]
            if len(undismissed) < 2:
                continue

            scored_pairs = [
                self.scorer.score(a, b)
                for a, b in combinations(undismissed, 2)
                if not self.dismissed.is_dismissed(a.id, b.id)
            ]
            groups.append(DuplicateGroup(
                members=undismissed,
                score=max(s.score for s in scored_pairs),
                reasons=_merge_reasons(*(s.reasons for s in scored_pairs))
            ))

        groups.sort(key=lambda g: -g.score)
        return groups


class CustomerDuplicateDetector(CandidateDetector):
    """顧客の重複検出（電話番号・氏名）"""

    def __init__(self, db: Session, tenant_id: int, dismissed: Optional[DismissedPairs] = None,
                 scorer: Optional[CustomerScorer] = None, top_n: Optional[int] = None):
        super().__init__(scorer or CustomerScorer(), dismissed, top_n)
        self.db = db
        self.tenant_id = tenant_id
        self.repository = CustomerRepository(db, tenant_id)

    @classmethod
    def for_tenant(cls, db: Session, tenant_id: int) -> "CustomerDuplicateDetector":
        """現時点の除外ペアを読み込んで検出器を作成"""
        dismissed = DismissalStore.for_customers(db, tenant_id).snapshot()
        return cls(db, tenant_id, dismissed=dismissed)

    def find_duplicates_for(self, customer: Customer) -> List[Candidate]:
        """
        指定顧客の重複候補を検出

        1. 電話番号一致（氏名も一致すれば最高信頼度）
        2. 電話番号一致がない場合のみ氏名一致

        Args:
            customer: 対象顧客

        Returns:
            スコア順の候補リスト
        """
        collector = _CandidateCollector()
        name_key = normalize_person_name(customer.name)

        phone_key = normalize_phone(customer.phone)
        if phone_key:
            for match in self.repository.find_by_normalized_phone(phone_key, exclude_ids=[customer.id]):
                names_match = bool(name_key) and normalize_person_name(match.name) == name_key
                collector.add(match, confidence='highest' if names_match else 'high')

        if len(collector) == 0 and name_key:
            for match in self.repository.find_by_normalized_name(name_key, exclude_ids=[customer.id]):
                collector.add(match, confidence='medium')

        results = self._finalize(customer, collector)
        logger.debug(f"顧客ID {customer.id} の重複候補: {len(results)}件")
        return results

    def find_all_duplicates(self) -> List[DuplicateGroup]:
        """テナント全体で電話番号が一致する顧客グループを検出"""
        customers = self.repository.find_with_phone()
        return self._find_groups(customers, lambda c: normalize_phone(c.phone))


class BuildingDuplicateDetector(CandidateDetector):
    """建物の類似検出（建物名・住所・座標）"""

    def __init__(self, db: Session, tenant_id: int, dismissed: Optional[DismissedPairs] = None,
                 scorer: Optional[BuildingScorer] = None, top_n: Optional[int] = None):
        super().__init__(scorer or BuildingScorer(self._nearby_radius()), dismissed, top_n)
        self.db = db
        self.tenant_id = tenant_id
        self.repository = BuildingRepository(db, tenant_id)

    @staticmethod
    def _nearby_radius() -> float:
        return DedupeConfig.get_config()['nearby_radius_m']

    @classmethod
    def for_tenant(cls, db: Session, tenant_id: int) -> "BuildingDuplicateDetector":
        dismissed = DismissalStore.for_buildings(db, tenant_id).snapshot()
        return cls(db, tenant_id, dismissed=dismissed)

    def find_similar(self, subject: Any) -> List[Candidate]:
        """
        類似建物を検索

        1. 建物名の完全一致（正規化後）
        2. 住所の部分一致（都道府県を除く核心部分）
        3. 座標による近接検索、0件なら広域検索にフォールバック

        Args:
            subject: Building または BuildingQuery

        Returns:
            スコア順の候補リスト
        """
        if isinstance(subject, Building):
            subject = BuildingQuery.from_building(subject)

        collector = _CandidateCollector()
        exclude_ids = [subject.id] if subject.id is not None else []

        name_key = normalize_building_name(subject.name)
        if name_key:
            for match in self.repository.find_by_canonical_name(name_key, exclude_ids):
                collector.add(match, reasons=["名前が完全一致"], confidence='high')

        address_core = extract_address_core(subject.address)
        if len(address_core) >= MIN_ADDRESS_CORE_LENGTH:
            for match in self.repository.find_by_address_core(address_core, exclude_ids):
                collector.add(match, reasons=["住所が部分一致"], confidence='medium')

        if subject.has_location:
            nearby = self.repository.within_radius(
                subject.latitude, subject.longitude,
                self.config['nearby_radius_m'],
                exclude_ids=exclude_ids
            )
            for building, distance in nearby:
                collector.add(building, reasons=[f"{round(distance)}m以内に存在"], confidence='medium')

        # 候補が0件の場合、座標周辺のより広い範囲も検索
        if len(collector) == 0 and subject.has_location:
            nearby = self.repository.within_radius(
                subject.latitude, subject.longitude,
                self.config['fallback_radius_m'],
                limit=self.config['fallback_limit'],
                exclude_ids=exclude_ids
            )
            for building, distance in nearby:
                collector.add(building, reasons=[f"{round(distance)}m付近に存在"], confidence='low')

        return self._finalize(subject, collector)

    def find_all_duplicates(self) -> List[DuplicateGroup]:
        """テナント全体で建物名が一致する建物グループを検出"""
        buildings = self.repository.find_named()
        return self._find_groups(buildings, lambda b: b.canonical_name)
