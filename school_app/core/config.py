from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "School Marks Backend"
    API_V1_STR: str = "/api/v1"
    DATABASE_URL: str
    SECRET_KEY: str = "school-marks-backend"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    ENVIRONMENT: str = "development"
    LOG_DIR: str = "logs"
    PLATFORM_ADMIN_KEY: str

    # Bulk marks import
    IMPORT_BATCH_SIZE: int = 5
    MAX_ALLOWED_MARK: int = 100
    USE_SUBJECT_MAX_MARKS: bool = True

    class Config:
        case_sensitive = True


settings = Settings()
