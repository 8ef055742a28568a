"""
管理者API

- duplicates: 顧客・建物の重複候補
- exclusions: 統合候補からの除外設定
- history: 顧客統合・統合履歴・統合取り消し
"""

from fastapi import APIRouter

from .duplicates import router as duplicates_router
from .exclusions import router as exclusions_router
from .history import router as history_router

router = APIRouter(prefix="/api/admin", tags=["admin"])

for sub_router in (duplicates_router, exclusions_router, history_router):
    router.include_router(sub_router)
