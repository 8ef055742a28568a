"""
テスト共通のフィクスチャ
"""

import os
import tempfile

# アプリケーションのモジュールを読み込む前に設定する
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="backoffice-logs-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.backoffice.models import (
    Base, Building, Customer, CustomerAccess, CustomerActivity, EmailDraft, Inquiry, PropertyInquiry, Tenant, User
)
from backend.backoffice.utils.dependent_records import CUSTOMER_DEPENDENTS

# テスト用のデータベース設定
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture
def engine():
    """テスト用のインメモリDB（同一接続を共有）"""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    """テスト用のデータベースセッションを作成"""
    session = session_factory()

    yield session

    session.close()


@pytest.fixture
def tenant(db_session):
    tenant = Tenant(name="テスト不動産", subdomain="test")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def other_tenant(db_session):
    tenant = Tenant(name="別テナント不動産", subdomain="other")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def staff(db_session, tenant):
    user = User(tenant_id=tenant.id, name="山田花子", email="staff@example.com", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def make_customer(db_session, tenant):
    """顧客を作成するファクトリ"""

    def _make(name="田中太郎", tenant_id=None, **kwargs):
        customer = Customer(tenant_id=tenant_id or tenant.id, name=name, **kwargs)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture
def make_inquiry(db_session):
    """反響を作成するファクトリ"""

    def _make(customer, status="open", subject="物件について"):
        inquiry = Inquiry(
            tenant_id=customer.tenant_id,
            customer_id=customer.id,
            subject=subject,
            channel="web",
            status=status
        )
        db_session.add(inquiry)
        db_session.commit()
        return inquiry

    return _make


@pytest.fixture
def make_building(db_session, tenant):
    """建物を作成するファクトリ"""

    def _make(name, address=None, latitude=None, longitude=None, tenant_id=None, **kwargs):
        building = Building(
            tenant_id=tenant_id or tenant.id,
            name=name,
            address=address,
            latitude=latitude,
            longitude=longitude,
            **kwargs
        )
        db_session.add(building)
        db_session.commit()
        return building

    return _make


@pytest.fixture
def dependents_of(db_session):
    """顧客に紐づく関連レコードIDを種類ごとに取得する関数"""

    def _ids(customer_id):
        return {d.key: set(d.ids_for(db_session, customer_id)) for d in CUSTOMER_DEPENDENTS}

    return _ids


@pytest.fixture
def add_dependents(db_session):
    """各種関連レコードを1件ずつ作成するファクトリ"""

    def _add(customer, inquiry_status="closed"):
        inquiry = Inquiry(tenant_id=customer.tenant_id, customer_id=customer.id,
                          subject="問い合わせ", status=inquiry_status)
        db_session.add(inquiry)
        db_session.flush()
        db_session.add_all([
            PropertyInquiry(customer_id=customer.id, property_publication_id=1, message="見学希望"),
            CustomerActivity(customer_id=customer.id, inquiry_id=inquiry.id, activity_type="email", subject="返信"),
            CustomerAccess(customer_id=customer.id, access_token=f"token-{customer.id}"),
            EmailDraft(customer_id=customer.id, subject="ご案内", body="本文"),
        ])
        db_session.commit()

    return _add
