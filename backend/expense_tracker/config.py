"""
Configuration settings for the Expense Tracker backend.

Loads environment variables from .env file and provides typed configuration.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_PREFIX: str = "/api"
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Database Configuration
    DATABASE_URL: str = Field(
        default="sqlite:///./data/expenses.db", description="SQLite database URL"
    )
    DATABASE_ECHO: bool = Field(
        default=False, description="Echo SQL queries (for debugging)"
    )

    # OCR Configuration
    OCR_ENGINE: str = Field(
        default="tesseract", description="OCR engine: 'tesseract' or 'easyocr'"
    )
    OCR_LANGUAGES: str = Field(
        default="eng", description="Tesseract language codes, e.g. 'eng' or 'eng+deu'"
    )
    USE_GPU_OCR: bool = Field(
        default=False, description="Use GPU for OCR (if available)"
    )
    TESSERACT_CMD: str = Field(
        default="tesseract", description="Path to tesseract executable"
    )
    POPPLER_PATH: str | None = Field(
        default=None, description="Path to poppler bin directory (for PDF conversion)"
    )

    # LLM Configuration
    LLM_PROVIDER: str = Field(
        default="ollama", description="Model provider: 'ollama' or 'openai'"
    )
    OLLAMA_HOST: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    OLLAMA_TIMEOUT: int = Field(
        default=300, description="Ollama request timeout in seconds"
    )
    TEXT_MODEL: str = Field(
        default="llama3.1:8b", description="Ollama text model for receipt parsing"
    )
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    OPENAI_MODEL: str = Field(
        default="gpt-4o-mini", description="OpenAI model for receipt parsing"
    )
    LLM_TEMPERATURE: float = Field(
        default=0.1, description="Sampling temperature for structured output"
    )
    LLM_MAX_TOKENS: int = Field(
        default=1024, description="Max tokens for the model response"
    )

    # File Upload Configuration
    MAX_UPLOAD_SIZE: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        description="Maximum file upload size in bytes",
    )
    UPLOAD_DIR: str = Field(
        default="./data/uploads", description="Directory for uploaded receipt files"
    )
    UPLOAD_URL_PREFIX: str = Field(
        default="/uploads", description="URL prefix under which uploads are served"
    )
    ALLOWED_EXTENSIONS: List[str] = Field(
        default=[".pdf", ".png", ".jpg", ".jpeg", ".tiff", ".tif", ".webp"],
        description="Allowed file extensions for uploads",
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    ENABLE_FILE_LOGGING: bool = Field(
        default=False, description="Enable logging to file"
    )
    LOG_DIR: str = Field(default="./logs", description="Directory for log files")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()
