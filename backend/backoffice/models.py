"""
SQLAlchemyのモデル定義（顧客・建物・統合履歴）
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Date, ForeignKey, Text, JSON, UniqueConstraint, Index, func
from sqlalchemy.orm import declarative_base, relationship, validates

from .utils.string_similarity import normalize_person_name, normalize_phone, normalize_building_name
from .utils.address_normalizer import extract_address_core

Base = declarative_base()


class Tenant(Base):
    """テナント（管理会社）テーブル"""
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)                # 会社名
    subdomain = Column(String(100))                            # サブドメイン
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('subdomain', name='unique_tenant_subdomain'),
    )


class User(Base):
    """スタッフユーザーテーブル"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(255))
    role = Column(String(20), default='member')               # member, admin, super_admin
    created_at = Column(DateTime, server_default=func.now())

    tenant = relationship("Tenant")

    __table_args__ = (
        Index('idx_users_tenant_id', 'tenant_id'),
    )


class Customer(Base):
    """顧客テーブル（統合対象エンティティ）"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    assigned_user_id = Column(Integer, ForeignKey("users.id"))

    # 基本情報
    name = Column(String(200), nullable=False)                 # 顧客名
    normalized_name = Column(String(200))                      # 照合用の正規化名（空白除去）
    email = Column(String(255))                                # メールアドレス（テナント内で一意）
    line_user_id = Column(String(100))                         # LINEユーザーID（テナント内で一意）
    phone = Column(String(50))                                 # 電話番号（入力表記のまま）
    normalized_phone = Column(String(50))                      # 照合用の電話番号（区切り文字除去）

    # 商談情報
    notes = Column(Text)                                       # メモ
    status = Column(String(20), default='active')              # active, archived
    deal_status = Column(String(30), default='new_inquiry')    # new_inquiry, contacting, ..., contracted, lost
    priority = Column(String(20), default='normal')            # low, normal, high, urgent
    expected_move_date = Column(Date)                          # 入居希望日
    budget_min = Column(Integer)                               # 予算下限（円）
    budget_max = Column(Integer)                               # 予算上限（円）
    preferred_areas = Column(JSON)                             # 希望エリア（リスト）
    requirements = Column(Text)                                # 希望条件
    last_contacted_at = Column(DateTime)                       # 最終連絡日時
    lost_reason = Column(Text)                                 # 失注理由
    deal_status_changed_at = Column(DateTime)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant")
    assigned_user = relationship("User")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='unique_customer_tenant_email'),
        UniqueConstraint('tenant_id', 'line_user_id', name='unique_customer_tenant_line_user_id'),
        Index('idx_customers_tenant_normalized_phone', 'tenant_id', 'normalized_phone'),
        Index('idx_customers_tenant_normalized_name', 'tenant_id', 'normalized_name'),
    )

    @validates('name')
    def _set_normalized_name(self, key, value):
        self.normalized_name = normalize_person_name(value) or None
        return value

    @validates('phone')
    def _set_normalized_phone(self, key, value):
        self.normalized_phone = normalize_phone(value) or None
        return value

    @validates('email', 'line_user_id')
    def _blank_to_none(self, key, value):
        # 一意制約を空文字で衝突させないためNULLとして保存
        if value is not None and not str(value).strip():
            return None
        return value


class Inquiry(Base):
    """反響（問い合わせ案件）テーブル"""
    __tablename__ = "inquiries"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    subject = Column(String(200))
    channel = Column(String(20))                               # web, email, line, phone
    status = Column(String(20), default='open')                # open, closed
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")

    __table_args__ = (
        Index('idx_inquiries_customer_id', 'customer_id'),
    )


class PropertyInquiry(Base):
    """物件ごとの問い合わせテーブル"""
    __tablename__ = "property_inquiries"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    property_publication_id = Column(Integer)                  # 公開ページID
    message = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")

    __table_args__ = (
        Index('idx_property_inquiries_customer_id', 'customer_id'),
    )


class CustomerActivity(Base):
    """顧客対応履歴テーブル"""
    __tablename__ = "customer_activities"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    inquiry_id = Column(Integer, ForeignKey("inquiries.id"))
    user_id = Column(Integer, ForeignKey("users.id"))
    activity_type = Column(String(50), nullable=False)         # email, call, status_change, customer_merged など
    direction = Column(String(20), default='internal')         # inbound, outbound, internal
    subject = Column(String(200))
    content = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")
    inquiry = relationship("Inquiry")
    user = relationship("User")

    __table_args__ = (
        Index('idx_customer_activities_customer_id', 'customer_id'),
        Index('idx_customer_activities_type', 'activity_type'),
    )


class CustomerAccess(Base):
    """顧客向け物件閲覧アクセス権テーブル"""
    __tablename__ = "customer_accesses"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    access_token = Column(String(64))
    expires_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")

    __table_args__ = (
        Index('idx_customer_accesses_customer_id', 'customer_id'),
    )


class EmailDraft(Base):
    """メール下書きテーブル"""
    __tablename__ = "email_drafts"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    subject = Column(String(200))
    body = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    customer = relationship("Customer")

    __table_args__ = (
        Index('idx_email_drafts_customer_id', 'customer_id'),
    )


class Building(Base):
    """建物テーブル（類似検出のみ、統合は対象外）"""
    __tablename__ = "buildings"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)

    name = Column(String(200), nullable=False)                 # 建物名
    canonical_name = Column(String(200))                       # 照合用の正規化名
    address = Column(String(500))                              # 住所
    normalized_address = Column(String(500))                   # 都道府県を除いた正規化住所（部分一致用）
    latitude = Column(Float)                                   # 緯度
    longitude = Column(Float)                                  # 経度
    building_type = Column(String(50))                         # mansion, apartment, house など
    total_floors = Column(Integer)                             # 総階数
    built_year = Column(Integer)                               # 築年
    discarded_at = Column(DateTime)                            # 論理削除日時

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index('idx_buildings_tenant_canonical_name', 'tenant_id', 'canonical_name'),
        Index('idx_buildings_tenant_location', 'tenant_id', 'latitude', 'longitude'),
    )

    @validates('name')
    def _set_canonical_name(self, key, value):
        self.canonical_name = normalize_building_name(value) or None
        return value

    @validates('address')
    def _set_normalized_address(self, key, value):
        self.normalized_address = extract_address_core(value) or None
        return value


class MergeRecord(Base):
    """統合履歴テーブル（取り消し用スナップショットを保持）"""
    __tablename__ = "merge_records"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    entity_type = Column(String(30), nullable=False)           # 'customer'
    primary_entity_id = Column(Integer, nullable=False)        # 統合先ID（後続の統合で削除される可能性があるためFKなし）
    secondary_entity_id = Column(Integer, nullable=False)      # 統合元ID（削除済み）
    performed_by_id = Column(Integer, ForeignKey("users.id"))
    primary_snapshot = Column(JSON)                            # 統合前の統合先フィールド値
    secondary_snapshot = Column(JSON)                          # 統合元の全属性と移動した関連レコードID
    field_resolutions = Column(JSON)                           # フィールドごとの選択（primary/secondary/default）
    snapshot_version = Column(Integer, nullable=False, default=1)
    merge_reason = Column(Text)                                # 統合理由
    status = Column(String(20), nullable=False, default='completed')  # completed, undone
    undone_by_id = Column(Integer, ForeignKey("users.id"))
    undone_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    performed_by = relationship("User", foreign_keys=[performed_by_id])
    undone_by = relationship("User", foreign_keys=[undone_by_id])

    __table_args__ = (
        Index('idx_merge_records_tenant_type', 'tenant_id', 'entity_type'),
        Index('idx_merge_records_primary', 'entity_type', 'primary_entity_id'),
        Index('idx_merge_records_created_at', 'created_at'),
    )

    @property
    def is_undone(self) -> bool:
        return self.status == 'undone'


class CustomerMergeDismissal(Base):
    """顧客統合候補の除外テーブル（ID昇順で保存）"""
    __tablename__ = "customer_merge_dismissals"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    customer1_id = Column(Integer, nullable=False)             # 小さい方のID
    customer2_id = Column(Integer, nullable=False)             # 大きい方のID
    dismissed_by_id = Column(Integer, ForeignKey("users.id"))
    reason = Column(Text)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'customer1_id', 'customer2_id', name='unique_customer_merge_dismissal'),
        Index('idx_customer_merge_dismissals_tenant', 'tenant_id'),
    )


class BuildingMergeExclusion(Base):
    """建物統合候補除外テーブル（ID昇順で保存）"""
    __tablename__ = "building_merge_exclusions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False)
    building1_id = Column(Integer, nullable=False)
    building2_id = Column(Integer, nullable=False)
    excluded_by_id = Column(Integer, ForeignKey("users.id"))
    reason = Column(Text)                                     # 除外理由
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'building1_id', 'building2_id', name='unique_building_exclusion'),
        Index('idx_building_merge_exclusions_tenant', 'tenant_id'),
    )
