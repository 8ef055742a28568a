#!/usr/bin/env python3
"""
不動産バックオフィスAPI サーバー

顧客・建物の重複候補の検出、除外設定、取り消し可能な顧客統合を提供する。
起動例: python -m backend.backoffice.main
"""

import os
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.admin import router as admin_router
from .database import init_db
from .utils.logger import api_logger, log_api_request

app = FastAPI(
    title="不動産バックオフィスAPI",
    description="顧客・建物の重複検出と顧客統合",
    version="1.0.0"
)

# 管理画面のオリジン（カンマ区切りで上書き可能）
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    """リクエストごとにステータスと処理時間を記録"""
    started = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        log_api_request(request, process_time=time.time() - started, error=e)
        raise

    process_time = time.time() - started
    log_api_request(request, status_code=response.status_code, process_time=process_time)
    response.headers["X-Process-Time"] = str(process_time)
    return response


app.include_router(admin_router)


@app.on_event("startup")
async def startup_event():
    init_db()
    api_logger.info("データベース初期化完了")


@app.get("/health")
async def health_check():
    """ヘルスチェック"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    uvicorn.run("backend.backoffice.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
