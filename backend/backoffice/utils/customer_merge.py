"""
顧客の統合・統合取り消し
"""

from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..models import Customer, MergeRecord
from .activity_sink import CustomerActivitySink
from .dependent_records import CUSTOMER_DEPENDENTS
from .field_resolution import CUSTOMER_CONTACT_FIELDS, CUSTOMER_UNIQUE_FIELDS, customer_field_resolver
from .merge_engine import MergeEngine, MergeTarget
from .undo_engine import UndoEngine

CUSTOMER_MERGE_TARGET = MergeTarget(
    entity_type='customer',
    label='顧客',
    model=Customer,
    resolver_factory=customer_field_resolver,
    dependents=CUSTOMER_DEPENDENTS,
    unique_fields=CUSTOMER_UNIQUE_FIELDS,
    contact_fields=CUSTOMER_CONTACT_FIELDS,
    activity_sink_factory=CustomerActivitySink,
    merge_subject='顧客統合',
    undo_subject='顧客統合を取り消し',
)


def merge_customers(
    db: Session,
    primary: Customer,
    secondary: Customer,
    field_resolutions: Optional[Dict[str, str]] = None,
    performed_by_id: Optional[int] = None,
    merge_reason: Optional[str] = None
) -> MergeRecord:
    """secondary を primary に統合"""
    engine = MergeEngine(db, CUSTOMER_MERGE_TARGET)
    return engine.merge(primary, secondary, field_resolutions, performed_by_id, merge_reason)


def undo_customer_merge(db: Session, merge_record: MergeRecord, undone_by_id: Optional[int] = None) -> MergeRecord:
    """顧客統合を取り消す"""
    return UndoEngine(db, CUSTOMER_MERGE_TARGET).undo(merge_record, undone_by_id)
