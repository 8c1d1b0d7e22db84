"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    # Local durable cache for the last good read of each sheet dataset
    DATABASE_URL: str = "sqlite:///./swiftleave_cache.db"
    CORS_ORIGINS: str = "http://localhost:3000"

    # Tabular store (Google Sheets)
    SHEETS_API_BASE: str = "https://sheets.googleapis.com/v4/spreadsheets"
    SHEET_ID: str = ""
    SHEETS_API_KEY: str = ""
    SHEETS_ACCESS_TOKEN: str = ""  # OAuth bearer token, required for writes
    SHEET_EMPLOYEE_RANGE: str = "employeedetails!A:E"  # S_NO, EMP_CODE, EMP_NAME, ROLE, EMAIL_ID
    SHEET_LOG_RANGE: str = "logs!A:P"
    SHEET_LOOKUP_RANGE: str = "lookup!A:B"  # PermissionType, LeaveType
    SHEET_TASK_LOOKUP_RANGE: str = "tasklookup!A:D"  # Company, Platform, Fulfillment, Task
    SHEET_TASK_LOG_RANGE: str = "tasklogs!A:J"

    # Notification relay (Apps Script webhook or any JSON-to-mail endpoint)
    SHEET_LOG_WEBHOOK: str = ""
    MANAGER_EMAIL: str = ""
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    DASHBOARD_URL: str = "http://localhost:3000"

    # Identity assertions (Google ID tokens, RS256)
    GOOGLE_CLIENT_ID: str = ""  # required: expected audience
    GOOGLE_JWKS_URL: str = "https://www.googleapis.com/oauth2/v3/certs"
    GOOGLE_ISSUERS: str = "accounts.google.com,https://accounts.google.com"

    TIMEZONE: str = "UTC"
    HTTP_TIMEOUT_SECONDS: float = 10.0
    # Reject a second decision on an already decided request (off: last write wins)
    DECISION_REQUIRE_PENDING: bool = False

    class Config:
        env_file = ".env"


settings = Settings()
