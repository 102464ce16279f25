from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Digitalius Backend"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000

    # MongoDB connection (one pooled client per process)
    mongodb_uri: str | None = None
    mongodb_database_name: str = "expediente_digital"
    mongodb_timeout_ms: int = 10000  # Server selection + operation timeout
    mongodb_max_pool_size: int = 20

    # Collection names for the three document kinds
    notices_collection: str = "circulares"
    instructions_collection: str = "instructivos"
    regulations_collection: str = "reglamentos"

    # OpenAI settings
    openai_api_key: str | None = None
    classifier_model: str = "gpt-4o-mini"
    synthesis_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 30.0  # Per LLM call
    request_timeout_seconds: float = 90.0  # Whole pipeline run

    # Retrieval tuning
    latest_notices_limit: int = 5  # Circulars returned for "most recent" queries
    long_listing_threshold: int = 10  # Above this the answer warns about truncated listings
    query_max_length: int = 500

    # Canonical link for the full regulation document
    regulation_link: str = (
        "https://personal.justucuman.gov.ar/pdf/Reglamento%20de%20Expediente%20Digital.pdf"
    )

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables that aren't in the Settings class


settings = Settings()
