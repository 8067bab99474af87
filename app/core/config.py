"""
Configuration Settings
======================
Centralized configuration for the policy import service using environment variables.
"""

import os
from typing import List
from pathlib import Path
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file explicitly (important for production)
# Try multiple locations for .env file
env_paths = [
    Path(__file__).parent.parent.parent / ".env",  # Root of project
    Path(__file__).parent.parent / ".env",  # One level up
    Path.cwd() / ".env",  # Current working directory
]

for env_path in env_paths:
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)
        break


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application Info
    APP_NAME: str = "SGC Pro - Policy Import API"
    APP_DESCRIPTION: str = "Bulk policy import (OCR + AI extraction + client reconciliation) for insurance brokerages"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # AI Gateway (OpenAI-compatible chat completions)
    AI_GATEWAY_API_KEY: str = os.getenv("AI_GATEWAY_API_KEY") or os.getenv("OPENAI_API_KEY", "")
    AI_GATEWAY_URL: str = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1")
    AI_MODEL: str = os.getenv("AI_MODEL", "google/gemini-3-flash-preview")
    TEMPERATURE: float = 0.1

    # OCR.space Settings
    OCR_SPACE_API_KEY: str = os.getenv("OCR_SPACE_API_KEY", "")
    OCR_SPACE_URL: str = os.getenv("OCR_SPACE_URL", "https://api.ocr.space/parse/image")
    OCR_LANGUAGE: str = "por"
    OCR_ENGINE: str = "2"
    OCR_MAX_FILE_SIZE_KB: int = 1024  # free tier limit
    OCR_TIMEOUT_SECONDS: int = 60

    # Local PDF text layer is accepted when it has at least this many characters
    LOCAL_TEXT_MIN_CHARS: int = 100

    # Import pacing (OCR.space free tier: ~180 req/hour)
    OCR_BATCH_SIZE: int = 10
    OCR_BATCH_DELAY_SECONDS: float = 20.0
    FILE_DELAY_SECONDS: float = 5.0
    RATE_LIMIT_BACKOFF_SECONDS: float = 15.0
    MAX_RATE_LIMIT_RETRIES: int = 2

    # Import defaults
    DEFAULT_COMMISSION_RATE: float = 15.0
    MAX_FILES_PER_IMPORT: int = 50
    MAX_FILE_SIZE_MB: int = 20
    ALLOWED_EXTENSIONS: List[str] = [".pdf", ".png", ".jpg", ".jpeg", ".webp"]

    # Storage Settings
    UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "uploads")
    POLICY_DOCS_BUCKET: str = "policy-docs"
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000")

    # MongoDB
    # Try MONGO_URI first, then MONGODB_URL
    MONGODB_URL: str = os.getenv("MONGO_URI") or os.getenv("MONGODB_URL", "mongodb://localhost:27017")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE") or os.getenv("MONGO_DB_NAME", "sgc_pro")

    # CORS Settings
    CORS_ORIGINS: List[str] = ["*"]  # In production, specify actual origins

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra environment variables


# Create global settings instance
settings = Settings()
