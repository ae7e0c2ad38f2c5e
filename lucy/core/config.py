from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    SESSION_MAX_AGE: int = 8 * 60 * 60
    SQL_ECHO: bool = False

    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-lite"
    GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    # Service principal used for the Power BI push datasets
    POWERBI_CLIENT_ID: str = "CHANGE_ME"
    POWERBI_CLIENT_SECRET: str = "CHANGE_ME"
    POWERBI_TENANT_ID: str = "CHANGE_ME"
    POWERBI_WORKSPACE_ID: str = "CHANGE_ME"
    POWERBI_API_URL: str = "https://api.powerbi.com/v1.0/myorg"
    POWERBI_AUTHORITY_URL: str = "https://login.microsoftonline.com"

    SUPPORT_CONTACT: str = "logistics-support@example.com"

    # This tells Pydantic to read from the .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Values shipped in sample configs, they count as "not configured"
PLACEHOLDER_VALUES = {
    "",
    "CHANGE_ME",
    "TU_GEMINI_API_KEY_AQUI",
    "TU_CLIENT_ID_AQUI",
    "TU_CLIENT_SECRET_AQUI",
    "TU_TENANT_ID_AQUI",
}


def is_placeholder(value: str) -> bool:
    return (value or "").strip() in PLACEHOLDER_VALUES


# Create a single instance of the settings to use everywhere
settings = Settings()
