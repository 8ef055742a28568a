"""
重複検出API（顧客・建物）
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Building, Customer
from ...schemas.building import (
    BuildingCandidateSchema, BuildingDuplicateGroupSchema, BuildingDuplicateGroupsResponse,
    BuildingSchema, SimilarBuildingRequest, SimilarBuildingsResponse
)
from ...schemas.customer import (
    CustomerCandidateSchema, CustomerDuplicateGroupSchema, CustomerDuplicateGroupsResponse,
    CustomerDuplicatesResponse, CustomerSummarySchema
)
from ...utils.duplicate_detector import BuildingDuplicateDetector, BuildingQuery, CustomerDuplicateDetector
from ...utils.geo_proximity import distance_to

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin-duplicates"])


@router.get("/tenants/{tenant_id}/customers/{customer_id}/duplicates", response_model=CustomerDuplicatesResponse)
async def get_customer_duplicates(
    tenant_id: int,
    customer_id: int,
    db: Session = Depends(get_db)
):
    """指定顧客の重複候補を取得"""
    customer = db.query(Customer).filter(
        Customer.id == customer_id,
        Customer.tenant_id == tenant_id
    ).first()
    if not customer:
        raise HTTPException(status_code=404, detail="顧客が見つかりません")

    detector = CustomerDuplicateDetector.for_tenant(db, tenant_id)
    candidates = detector.find_duplicates_for(customer)

    return CustomerDuplicatesResponse(
        customer_id=customer.id,
        candidates=[
            CustomerCandidateSchema(
                customer=CustomerSummarySchema.model_validate(c.entity),
                score=c.score,
                reasons=c.reasons,
                confidence=c.confidence
            )
            for c in candidates
        ]
    )


@router.get("/tenants/{tenant_id}/customer-duplicates", response_model=CustomerDuplicateGroupsResponse)
async def get_customer_duplicate_groups(
    tenant_id: int,
    db: Session = Depends(get_db)
):
    """テナント全体の顧客重複グループを取得"""
    detector = CustomerDuplicateDetector.for_tenant(db, tenant_id)
    groups = detector.find_all_duplicates()

    return CustomerDuplicateGroupsResponse(
        groups=[
            CustomerDuplicateGroupSchema(
                customers=[CustomerSummarySchema.model_validate(m) for m in group.members],
                score=group.score,
                reasons=group.reasons
            )
            for group in groups
        ],
        total=len(groups)
    )


@router.post("/tenants/{tenant_id}/similar-buildings", response_model=SimilarBuildingsResponse)
async def find_similar_buildings(
    tenant_id: int,
    request: SimilarBuildingRequest,
    db: Session = Depends(get_db)
):
    """建物名・住所・座標から類似建物を検索"""
    if request.building_id is not None:
        building = db.query(Building).filter(
            Building.id == request.building_id,
            Building.tenant_id == tenant_id
        ).first()
        if not building:
            raise HTTPException(status_code=404, detail="建物が見つかりません")

    query = BuildingQuery(
        name=request.name,
        address=request.address,
        latitude=request.latitude,
        longitude=request.longitude,
        id=request.building_id
    )

    detector = BuildingDuplicateDetector.for_tenant(db, tenant_id)
    candidates = detector.find_similar(query)

    results = []
    for c in candidates:
        distance = distance_to(c.entity, request.latitude, request.longitude)
        results.append(BuildingCandidateSchema(
            building=BuildingSchema.model_validate(c.entity),
            score=c.score,
            reasons=c.reasons,
            distance_m=round(distance, 1) if distance is not None else None
        ))

    return SimilarBuildingsResponse(candidates=results)


@router.get("/tenants/{tenant_id}/building-duplicates", response_model=BuildingDuplicateGroupsResponse)
async def get_building_duplicate_groups(
    tenant_id: int,
    db: Session = Depends(get_db)
):
    """テナント全体で建物名が一致する建物グループを取得"""
    detector = BuildingDuplicateDetector.for_tenant(db, tenant_id)
    groups = detector.find_all_duplicates()

    return BuildingDuplicateGroupsResponse(
        groups=[
            BuildingDuplicateGroupSchema(
                buildings=[BuildingSchema.model_validate(m) for m in group.members],
                score=group.score,
                reasons=group.reasons
            )
            for group in groups
        ],
        total=len(groups)
    )
