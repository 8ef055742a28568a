"""建物の類似検出関連のPydanticスキーマ"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime


class BuildingSchema(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    building_type: Optional[str] = None
    total_floors: Optional[int] = None
    built_year: Optional[int] = None

    class Config:
        from_attributes = True


class SimilarBuildingRequest(BaseModel):
    """類似建物検索リクエスト（登録前の建物も検索できる）"""
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    building_id: Optional[int] = None   # 登録済み建物の場合は自身を除外


class BuildingCandidateSchema(BaseModel):
    building: BuildingSchema
    score: float
    reasons: List[str]
    distance_m: Optional[float] = None


class SimilarBuildingsResponse(BaseModel):
    candidates: List[BuildingCandidateSchema]


class BuildingDuplicateGroupSchema(BaseModel):
    buildings: List[BuildingSchema]
    score: float
    reasons: List[str]


class BuildingDuplicateGroupsResponse(BaseModel):
    groups: List[BuildingDuplicateGroupSchema]
    total: int


class BuildingExclusionRequest(BaseModel):
    """建物統合候補の除外リクエスト"""
    building1_id: int
    building2_id: int
    reason: Optional[str] = None
    excluded_by_id: Optional[int] = None


class BuildingExclusionSchema(BaseModel):
    id: int
    building1_id: int
    building2_id: int
    building1_name: Optional[str] = None
    building2_name: Optional[str] = None
    reason: Optional[str] = None
    excluded_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
