"""Configuration settings for the identity verification service."""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Attributes:
        DISTANCE_THRESHOLD: Maximum descriptor distance counted as a good frame
        MAX_FAILED_ATTEMPTS: Failed matching batches allowed before the face stage fails
        YAW_MIRRORED: Flip the yaw sign for mirrored cameras
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",  # No prefix for environment variables
        env_nested_delimiter="__"  # Use double underscore for nested settings
    )

    # Core Settings
    PROJECT_NAME: str = "Identity Verification Service"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:5173"

    @property
    def cors_origins(self) -> List[str]:
        """Get list of allowed origins."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Identifier stage
    ID_SCAN_INTERVAL: float = 0.5  # seconds between identifier scan ticks
    ID_REGION_LABEL: Optional[str] = None  # None accepts any detected label
    ID_REGION_MIN_SCORE: float = 0.25
    OCR_BINARY_THRESHOLD: int = 128

    # Face stage
    FACE_SCAN_INTERVAL: float = 0.25
    FACE_MIN_CONFIDENCE: float = 0.5
    DESCRIPTOR_LENGTH: int = 128
    DISTANCE_THRESHOLD: float = 0.60
    MAX_VALID_DISTANCE: float = 2.0
    MAX_SAMPLES: int = 12
    REQUIRED_GOOD_FRAMES: int = 6
    BATCH_TIMEOUT: float = 2.2
    MIN_BATCH_INTERVAL: float = 2.2
    MAX_FAILED_ATTEMPTS: int = 5

    # Liveness
    YAW_GAIN: float = 250.0
    YAW_THRESHOLD: float = 70.0
    YAW_MIRRORED: bool = False
    MIN_EYE_DISTANCE: float = 1.0
    # Indices into the 68-point landmark layout
    NOSE_TIP_INDEX: int = 30
    LEFT_EYE_OUTER_INDEX: int = 36
    RIGHT_EYE_OUTER_INDEX: int = 45

    # Enrolled records
    RECORDS_FILE: str = "data/students.json"
    RECORDS_SYNC_URL: str = ""
    RECORDS_SYNC_TIMEOUT: float = 5.0

    # Cameras
    ID_CAMERA_INDEX: int = 0
    FACE_CAMERA_INDEX: int = 0

    # Recognition models, as "package.module:factory" import paths
    REGION_DETECTOR: str = ""
    TEXT_RECOGNIZER: str = ""
    FACE_ANALYZER: str = ""

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()
