import os
from dataclasses import dataclass
from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None
    openai_model: str
    deepseek_api_key: str | None
    deepseek_base_url: str
    deepseek_model: str
    enhancement_timeout: float
    offline_mode: bool
    ambulance_number: str
    police_number: str
    places_radius_m: int
    places_limit: int
    overpass_url: str
    emergency_type: str
    session_ttl_s: float
    max_sessions: int
    host: str
    port: int
    debug: bool
    log_level: str


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


def get_settings() -> Settings:
    # Load once per process; re-calling is cheap and idempotent
    load_dotenv(override=False)
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        deepseek_api_key=os.getenv("DEEPSEEK_API_KEY"),
        deepseek_base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1"),
        deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
        enhancement_timeout=float(os.getenv("ENHANCEMENT_TIMEOUT", "20")),
        offline_mode=_flag("OFFLINE_MODE"),
        ambulance_number=os.getenv("AMBULANCE_NUMBER", "108"),
        police_number=os.getenv("POLICE_NUMBER", "112"),
        places_radius_m=int(os.getenv("PLACES_RADIUS_M", "5000")),
        places_limit=int(os.getenv("PLACES_LIMIT", "10")),
        overpass_url=os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter"),
        emergency_type=os.getenv("EMERGENCY_TYPE", "road_accident"),
        session_ttl_s=float(os.getenv("SESSION_TTL_S", "1800")),
        max_sessions=int(os.getenv("MAX_SESSIONS", "1000")),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        debug=_flag("DEBUG"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
