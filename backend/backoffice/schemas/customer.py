"""顧客の重複検出・統合関連のPydanticスキーマ"""
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional
from datetime import date, datetime


class CustomerSummarySchema(BaseModel):
    id: int
    name: str
    email: Optional[str] = None
    line_user_id: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    expected_move_date: Optional[date] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CustomerCandidateSchema(BaseModel):
    customer: CustomerSummarySchema
    score: float
    reasons: List[str]
    confidence: Optional[str] = None


class CustomerDuplicatesResponse(BaseModel):
    customer_id: int
    candidates: List[CustomerCandidateSchema]


class CustomerDuplicateGroupSchema(BaseModel):
    customers: List[CustomerSummarySchema]
    score: float
    reasons: List[str]


class CustomerDuplicateGroupsResponse(BaseModel):
    groups: List[CustomerDuplicateGroupSchema]
    total: int


class CustomerMergeRequest(BaseModel):
    """顧客統合リクエスト"""
    primary_customer_id: int
    secondary_customer_id: int
    field_resolutions: Dict[str, Literal['primary', 'secondary', 'default']] = Field(default_factory=dict)
    performed_by_id: Optional[int] = None
    merge_reason: Optional[str] = None


class MergeUndoRequest(BaseModel):
    """統合取り消しリクエスト"""
    undone_by_id: Optional[int] = None


class UserRefSchema(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class CustomerRefSchema(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class CustomerMergeSchema(BaseModel):
    """顧客統合履歴"""
    id: int
    primary_customer: Optional[CustomerRefSchema] = None
    primary_customer_id: int
    secondary_customer_id: int
    secondary_name: str
    performed_by: Optional[UserRefSchema] = None
    merge_reason: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    undone_at: Optional[datetime] = None
    undone_by: Optional[UserRefSchema] = None


class PaginationSchema(BaseModel):
    current_page: int
    per_page: int
    total_count: int
    total_pages: int


class CustomerMergeListResponse(BaseModel):
    merges: List[CustomerMergeSchema]
    pagination: PaginationSchema


class CustomerDismissalRequest(BaseModel):
    """顧客統合候補の除外リクエスト"""
    customer1_id: int
    customer2_id: int
    reason: Optional[str] = None
    dismissed_by_id: Optional[int] = None


class CustomerDismissalSchema(BaseModel):
    id: int
    customer1_id: int
    customer2_id: int
    customer1_name: Optional[str] = None
    customer2_name: Optional[str] = None
    reason: Optional[str] = None
    dismissed_by_id: Optional[int] = None
    created_at: Optional[datetime] = None
