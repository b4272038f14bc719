import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    inference_base_url: str = os.getenv(
        "INFERENCE_BASE_URL", "https://jasonfor2020-jb-hot-regression.hf.space"
    )
    inference_api_name: str = os.getenv("INFERENCE_API_NAME", "predict")
    upstream_timeout_s: float = float(os.getenv("UPSTREAM_TIMEOUT_S", "30"))
    max_image_bytes: int = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))
    allowed_image_types: str = os.getenv("ALLOWED_IMAGE_TYPES", "image/jpeg,image/png,image/webp")
    sniff_image_signature: bool = os.getenv("SNIFF_IMAGE_SIGNATURE", "false").lower() == "true"
    cors_origins: str = os.getenv("CORS_ORIGINS", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = os.getenv("LOG_JSON", "true").lower() == "true"
    enable_metrics: bool = os.getenv("ENABLE_METRICS", "true").lower() == "true"


settings = Settings()


def get_allowed_image_types() -> set[str]:
    return {item.strip().lower() for item in settings.allowed_image_types.split(",") if item.strip()}


def get_cors_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
