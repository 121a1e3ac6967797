"""설정 관리"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env(*names: str, default: str | None = None) -> str | None:
    """첫 번째로 설정된 환경 변수 값 반환 (별칭 지원)"""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Config:
    # Provider credentials (missing keys degrade to per-call failures)
    OPENROUTER_API_KEY = _env("OPENROUTER_API_KEY", "open_router_key")
    GEMINI_API_KEY = _env("GEMINI_API_KEY", "gemini_api_key", "GOOGLE_API_KEY")
    LOVABLE_API_KEY = _env("LOVABLE_API_KEY")
    OPENAI_API_KEY = _env("OPENAI_API_KEY")
    OCR_SPACE_API_KEY = _env("OCR_SPACE_API_KEY")

    # Models
    OPENROUTER_MODEL = os.getenv("OPENROUTER_MODEL", "arcee-ai/trinity-large-preview:free")
    OPENROUTER_VISION_MODEL = os.getenv("OPENROUTER_VISION_MODEL", "google/gemini-2.0-flash-001")
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    LOVABLE_MODEL = os.getenv("LOVABLE_MODEL", "google/gemini-3-flash-preview")
    OPENAI_VISION_MODEL = os.getenv("OPENAI_VISION_MODEL", "gpt-4o-mini")

    # Provider endpoints
    OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    LOVABLE_BASE_URL = os.getenv("LOVABLE_BASE_URL", "https://ai.gateway.lovable.dev/v1")
    OCR_SPACE_URL = os.getenv("OCR_SPACE_URL", "https://api.ocr.space/parse/image")
    APP_ORIGIN = os.getenv("APP_ORIGIN", "https://trip-planner-foundation.local")
    APP_TITLE = os.getenv("APP_TITLE", "Trip Planner Foundation")

    # OCR
    OCR_SPACE_MAX_BYTES = _env_int("OCR_SPACE_MAX_BYTES", 1_000_000)
    OCR_SPACE_LANGUAGE = os.getenv("OCR_SPACE_LANGUAGE", "por")

    # Timeouts (ms) and base hourly quotas per operation
    EXTRACTION_TIMEOUT_MS = _env_int("EXTRACTION_TIMEOUT_MS", 15_000)
    VISION_TIMEOUT_MS = _env_int("VISION_TIMEOUT_MS", 15_000)
    ENRICHMENT_TIMEOUT_MS = _env_int("ENRICHMENT_TIMEOUT_MS", 12_000)
    EXTRACT_LIMIT_PER_HOUR = _env_int("EXTRACT_LIMIT_PER_HOUR", 20)
    OCR_LIMIT_PER_HOUR = _env_int("OCR_LIMIT_PER_HOUR", 30)
    ENRICHMENT_LIMIT_PER_HOUR = _env_int("ENRICHMENT_LIMIT_PER_HOUR", 30)
    IMPORT_LIMIT_PER_HOUR = _env_int("IMPORT_LIMIT_PER_HOUR", 20)
    REPROCESS_LIMIT_PER_ITEM = _env_int("REPROCESS_LIMIT_PER_ITEM", 3)

    # In-process import queue retention
    IMPORT_QUEUE_MAX_ITEMS = _env_int("IMPORT_QUEUE_MAX_ITEMS", 500)
    IMPORT_QUEUE_TTL_SECONDS = _env_int("IMPORT_QUEUE_TTL_SECONDS", 60 * 60)
    IMPORT_QUEUE_MAX_AGE_SECONDS = _env_int("IMPORT_QUEUE_MAX_AGE_SECONDS", 24 * 60 * 60)

    # Supabase (identity, persistence, entitlements)
    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")

    # Entitlements rollout
    ENTITLEMENTS_SELF_SERVICE = os.getenv("ENTITLEMENTS_SELF_SERVICE", "false").lower() == "true"
    ENTITLEMENTS_ROLLOUT_PERCENT = _env("ENTITLEMENTS_ROLLOUT_PERCENT", "ENTITLEMENTS_PILOT_PERCENT", default="0")
    ENTITLEMENTS_ROLLOUT_FEATURES = _env("ENTITLEMENTS_ROLLOUT_FEATURES", "ENTITLEMENTS_PILOT_FEATURES", default="")

    # 로깅
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # CORS 설정
    ALLOWED_ORIGINS = os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:8080,http://localhost:5173"
    ).split(",")

config = Config()
