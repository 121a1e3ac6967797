"""FastAPI 애플리케이션"""
import sys
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from supabase import AsyncClient, ClientOptions, create_async_client

from config import config
from trip_import.auth import InMemoryRateLimiter
from trip_import.entitlements import FeatureGate, InMemoryEntitlementStore, SupabaseEntitlementStore
from trip_import.extraction import CanonicalExtractor
from trip_import.enrichment import TravelEnricher
from trip_import.imports import (
    ImportQueue,
    ImportQueueCoordinator,
    InMemoryImportStore,
    SupabaseImportStore,
)
from trip_import.inference import ProviderGateway
from trip_import.ocr import OcrSpaceClient, TextAcquisitionLayer
from . import enrichment, entitlements, extraction, health, imports, ocr
from .errors import register_error_handlers

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[request_id]} | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: Optional[str] = None) -> None:
    logger.remove()
    logger.configure(extra={"request_id": "-"})
    logger.add(sys.stderr, level=(level or config.LOG_LEVEL).upper(), format=LOG_FORMAT)


async def create_supabase_client(key: Optional[str]) -> Optional[AsyncClient]:
    """
    Supabase Client 생성

    URL 또는 키가 없으면 None (인증이 필요한 엔드포인트는 MISCONFIGURED 응답)
    """
    if not config.SUPABASE_URL or not key:
        return None
    return await create_async_client(
        config.SUPABASE_URL,
        key,
        options=ClientOptions(
            postgrest_client_timeout=10,
            storage_client_timeout=10,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    FastAPI Lifespan Context Manager
    애플리케이션 시작/종료 시 리소스를 관리합니다.
    """
    logger.info("Initializing Supabase clients...")
    app.state.supabase = await create_supabase_client(config.SUPABASE_ANON_KEY)
    service_client = await create_supabase_client(config.SUPABASE_SERVICE_ROLE_KEY)
    if app.state.supabase is None:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY missing: authenticated endpoints will answer MISCONFIGURED")

    if service_client is not None:
        app.state.entitlement_store = SupabaseEntitlementStore(service_client)
        app.state.import_store = SupabaseImportStore(service_client)
        logger.info("Entitlement and import stores: Supabase (service role)")
    else:
        app.state.entitlement_store = InMemoryEntitlementStore()
        app.state.import_store = InMemoryImportStore()
        logger.warning("SUPABASE_SERVICE_ROLE_KEY missing: using in-memory stores")

    async with httpx.AsyncClient() as http_client:
        gateway = ProviderGateway()
        acquisition = TextAcquisitionLayer(gateway, ocr_client=OcrSpaceClient(http_client=http_client))
        extractor = CanonicalExtractor(gateway)

        app.state.rate_limiter = InMemoryRateLimiter()
        app.state.gateway = gateway
        app.state.feature_gate = FeatureGate(app.state.entitlement_store)
        app.state.acquisition = acquisition
        app.state.extractor = extractor
        app.state.enricher = TravelEnricher(gateway)
        app.state.import_coordinator = ImportQueueCoordinator(
            ImportQueue(),
            app.state.import_store,
            acquisition,
            extractor,
        )
        logger.info("Trip import services ready")
        yield

    logger.info("Shutting down trip import services")


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Trip Import",
        description="여행 문서(이미지, PDF, 텍스트, 이메일)에서 예약 정보를 추출하는 서비스",
        version="1.0.0",
        lifespan=lifespan if use_lifespan else None,
    )

    # CORS 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        with logger.contextualize(request_id=request_id):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(extraction.router)
    app.include_router(ocr.router)
    app.include_router(enrichment.router)
    app.include_router(entitlements.router)
    app.include_router(imports.router)
    return app


configure_logging()
app = create_app()
