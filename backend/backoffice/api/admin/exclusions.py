"""
除外管理API（顧客・建物の統合候補からの除外設定）
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Building, BuildingMergeExclusion, Customer, CustomerMergeDismissal
from ...schemas.building import BuildingExclusionRequest, BuildingExclusionSchema
from ...schemas.customer import CustomerDismissalRequest, CustomerDismissalSchema
from ...utils.dismissal_store import DismissalStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin-exclusions"])


def _names_by_id(db: Session, model, ids) -> dict:
    ids = set(ids)
    if not ids:
        return {}
    return {row.id: row.name for row in db.query(model.id, model.name).filter(model.id.in_(ids)).all()}


def _customer_dismissal_response(row: CustomerMergeDismissal, names: dict) -> CustomerDismissalSchema:
    return CustomerDismissalSchema(
        id=row.id,
        customer1_id=row.customer1_id,
        customer2_id=row.customer2_id,
        customer1_name=names.get(row.customer1_id),
        customer2_name=names.get(row.customer2_id),
        reason=row.reason,
        dismissed_by_id=row.dismissed_by_id,
        created_at=row.created_at
    )


def _building_exclusion_response(row: BuildingMergeExclusion, names: dict) -> BuildingExclusionSchema:
    return BuildingExclusionSchema(
        id=row.id,
        building1_id=row.building1_id,
        building2_id=row.building2_id,
        building1_name=names.get(row.building1_id),
        building2_name=names.get(row.building2_id),
        reason=row.reason,
        excluded_by_id=row.excluded_by_id,
        created_at=row.created_at
    )


@router.post("/tenants/{tenant_id}/customer-merge-dismissals", response_model=CustomerDismissalSchema)
async def dismiss_customer_pair(
    tenant_id: int,
    request: CustomerDismissalRequest,
    db: Session = Depends(get_db)
):
    """顧客ペアを統合候補から除外"""
    if request.customer1_id == request.customer2_id:
        raise HTTPException(status_code=400, detail="同じ顧客のペアは除外設定できません")

    customers = db.query(Customer).filter(
        Customer.tenant_id == tenant_id,
        Customer.id.in_([request.customer1_id, request.customer2_id])
    ).all()
    if len(customers) != 2:
        raise HTTPException(status_code=404, detail="顧客が見つかりません")

    store = DismissalStore.for_customers(db, tenant_id)
    if store.find(request.customer1_id, request.customer2_id):
        raise HTTPException(status_code=400, detail="この顧客ペアは既に除外設定されています")

    row = store.dismiss(
        request.customer1_id, request.customer2_id,
        actor_id=request.dismissed_by_id, reason=request.reason
    )
    db.commit()
    db.refresh(row)

    return _customer_dismissal_response(row, {c.id: c.name for c in customers})


@router.get("/tenants/{tenant_id}/customer-merge-dismissals", response_model=List[CustomerDismissalSchema])
async def list_customer_dismissals(
    tenant_id: int,
    db: Session = Depends(get_db)
):
    """顧客の除外設定一覧"""
    rows = DismissalStore.for_customers(db, tenant_id).list_all()
    names = _names_by_id(db, Customer, [i for r in rows for i in (r.customer1_id, r.customer2_id)])
    return [_customer_dismissal_response(row, names) for row in rows]


@router.delete("/tenants/{tenant_id}/customer-merge-dismissals/{dismissal_id}")
async def delete_customer_dismissal(
    tenant_id: int,
    dismissal_id: int,
    db: Session = Depends(get_db)
):
    """顧客の除外設定を削除"""
    row = db.query(CustomerMergeDismissal).filter(
        CustomerMergeDismissal.id == dismissal_id,
        CustomerMergeDismissal.tenant_id == tenant_id
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="除外設定が見つかりません")

    pair = (row.customer1_id, row.customer2_id)
    db.delete(row)
    db.commit()
    logger.info(f"顧客の除外設定を削除: {pair}")
    return {"success": True, "message": "除外設定を削除しました"}


@router.post("/tenants/{tenant_id}/building-merge-exclusions", response_model=BuildingExclusionSchema)
async def exclude_building_pair(
    tenant_id: int,
    request: BuildingExclusionRequest,
    db: Session = Depends(get_db)
):
    """建物ペアを統合候補から除外"""
    if request.building1_id == request.building2_id:
        raise HTTPException(status_code=400, detail="同じ建物のペアは除外設定できません")

    buildings = db.query(Building).filter(
        Building.tenant_id == tenant_id,
        Building.id.in_([request.building1_id, request.building2_id])
    ).all()
    if len(buildings) != 2:
        raise HTTPException(status_code=404, detail="建物が見つかりません")

    store = DismissalStore.for_buildings(db, tenant_id)
    if store.find(request.building1_id, request.building2_id):
        raise HTTPException(status_code=400, detail="この建物ペアは既に除外設定されています")

    row = store.dismiss(
        request.building1_id, request.building2_id,
        actor_id=request.excluded_by_id, reason=request.reason
    )
    db.commit()
    db.refresh(row)

    return _building_exclusion_response(row, {b.id: b.name for b in buildings})


@router.get("/tenants/{tenant_id}/building-merge-exclusions", response_model=List[BuildingExclusionSchema])
async def list_building_exclusions(
    tenant_id: int,
    db: Session = Depends(get_db)
):
    """建物の除外設定一覧"""
    rows = DismissalStore.for_buildings(db, tenant_id).list_all()
    names = _names_by_id(db, Building, [i for r in rows for i in (r.building1_id, r.building2_id)])
    return [_building_exclusion_response(row, names) for row in rows]


@router.delete("/tenants/{tenant_id}/building-merge-exclusions/{exclusion_id}")
async def delete_building_exclusion(
    tenant_id: int,
    exclusion_id: int,
    db: Session = Depends(get_db)
):
    """建物の除外設定を削除"""
    row = db.query(BuildingMergeExclusion).filter(
        BuildingMergeExclusion.id == exclusion_id,
        BuildingMergeExclusion.tenant_id == tenant_id
    ).first()
    if not row:
        raise HTTPException(status_code=404, detail="除外設定が見つかりません")

    pair = (row.building1_id, row.building2_id)
    db.delete(row)
    db.commit()
    logger.info(f"建物の除外設定を削除: {pair}")
    return {"success": True, "message": "除外設定を削除しました"}
