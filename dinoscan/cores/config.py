from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Deployment secrets. Server-side only; never shipped to the capture client."""

    ARK_API_KEY: str = ""
    ARK_MODEL: str = ""  # e.g. doubao-seed-1-6-vision-250815
    ARK_BASE_URL: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def get_settings() -> Settings:
    # Re-read on every call so a changed environment is picked up without a restart.
    return Settings()
