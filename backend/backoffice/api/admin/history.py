"""
顧客統合・統合履歴・統合取り消しAPI
"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from ...database import get_db
from ...exceptions import MergeError
from ...models import Customer, MergeRecord
from ...schemas.customer import (
    CustomerMergeListResponse, CustomerMergeRequest, CustomerMergeSchema,
    CustomerRefSchema, MergeUndoRequest, PaginationSchema, UserRefSchema
)
from ...utils.customer_merge import CUSTOMER_MERGE_TARGET, merge_customers, undo_customer_merge

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin-history"])


def _merge_response(record: MergeRecord, primary: Customer = None) -> CustomerMergeSchema:
    attributes = (record.secondary_snapshot or {}).get('attributes', {})
    return CustomerMergeSchema(
        id=record.id,
        primary_customer=CustomerRefSchema.model_validate(primary) if primary else None,
        primary_customer_id=record.primary_entity_id,
        secondary_customer_id=record.secondary_entity_id,
        secondary_name=attributes.get('name') or "不明",
        performed_by=UserRefSchema.model_validate(record.performed_by) if record.performed_by else None,
        merge_reason=record.merge_reason,
        status=record.status,
        created_at=record.created_at,
        undone_at=record.undone_at,
        undone_by=UserRefSchema.model_validate(record.undone_by) if record.undone_by else None
    )


@router.post("/tenants/{tenant_id}/customer-merges", response_model=CustomerMergeSchema)
async def create_customer_merge(
    tenant_id: int,
    request: CustomerMergeRequest,
    db: Session = Depends(get_db)
):
    """顧客を統合（統合元は削除される）"""
    customers = {
        c.id: c for c in db.query(Customer).filter(
            Customer.tenant_id == tenant_id,
            Customer.id.in_([request.primary_customer_id, request.secondary_customer_id])
        ).all()
    }
    primary = customers.get(request.primary_customer_id)
    secondary = customers.get(request.secondary_customer_id)
    if not primary or not secondary:
        raise HTTPException(status_code=404, detail="顧客が見つかりません")

    try:
        record = merge_customers(
            db, primary, secondary,
            field_resolutions=request.field_resolutions,
            performed_by_id=request.performed_by_id,
            merge_reason=request.merge_reason
        )
    except MergeError as e:
        raise HTTPException(status_code=422, detail=e.reason)

    primary = db.query(Customer).filter(Customer.id == record.primary_entity_id).first()
    return _merge_response(record, primary)


@router.get("/tenants/{tenant_id}/customer-merges", response_model=CustomerMergeListResponse)
async def get_customer_merges(
    tenant_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db)
):
    """顧客統合履歴を新しい順に取得"""
    query = db.query(MergeRecord).filter(
        MergeRecord.tenant_id == tenant_id,
        MergeRecord.entity_type == CUSTOMER_MERGE_TARGET.entity_type
    )
    total_count = query.count()

    records = query.options(
        joinedload(MergeRecord.performed_by),
        joinedload(MergeRecord.undone_by)
    ).order_by(
        MergeRecord.created_at.desc(), MergeRecord.id.desc()
    ).offset((page - 1) * per_page).limit(per_page).all()

    primary_ids = {r.primary_entity_id for r in records}
    primaries = {
        c.id: c for c in db.query(Customer).filter(Customer.id.in_(primary_ids)).all()
    } if primary_ids else {}

    return CustomerMergeListResponse(
        merges=[_merge_response(r, primaries.get(r.primary_entity_id)) for r in records],
        pagination=PaginationSchema(
            current_page=page,
            per_page=per_page,
            total_count=total_count,
            total_pages=math.ceil(total_count / per_page)
        )
    )


@router.post("/tenants/{tenant_id}/customer-merges/{merge_id}/undo")
async def undo_customer_merge_endpoint(
    tenant_id: int,
    merge_id: int,
    request: Optional[MergeUndoRequest] = None,
    db: Session = Depends(get_db)
):
    """顧客統合を取り消す"""
    record = db.query(MergeRecord).filter(
        MergeRecord.id == merge_id,
        MergeRecord.tenant_id == tenant_id,
        MergeRecord.entity_type == CUSTOMER_MERGE_TARGET.entity_type
    ).first()
    if not record:
        raise HTTPException(status_code=404, detail="統合履歴が見つかりませんでした")

    try:
        undo_customer_merge(db, record, undone_by_id=request.undone_by_id if request else None)
    except MergeError as e:
        raise HTTPException(status_code=422, detail=e.reason)

    return {"success": True, "message": "統合を取り消しました"}
