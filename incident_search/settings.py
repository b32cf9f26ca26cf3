import enum
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, enum.Enum):  # noqa: WPS600
    """Possible log levels."""

    NOTSET = "NOTSET"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"


class Settings(BaseSettings):
    """
    Application settings.

    These parameters can be configured
    with environment variables.
    """

    host: str = "localhost"
    port: int = 8000
    # quantity of workers for uvicorn
    workers_count: int = 1
    # Enable uvicorn reloading
    reload: bool = False

    # Current environment
    environment: str = "dev"

    log_level: LogLevel = LogLevel.INFO
    enable_file_logging: bool = False
    logs_dir: Optional[str] = None
    structured_logging: bool = False
    # Passed to loguru for the file sink
    log_rotation: str = "20 MB"
    log_retention: str = "1 week"

    # Cosmos DB settings. The connection string wins over the endpoint,
    # the endpoint alone means DefaultAzureCredential.
    cosmos_endpoint: Optional[str] = None
    cosmos_connection_string: Optional[str] = None
    cosmos_database_name: str = "incident_search"
    cosmos_container_name: str = "incidents"
    cosmos_partition_key_path: str = "/incident_id"

    # Embedding provider settings (any OpenAI compatible endpoint,
    # e.g. http://localhost:11434/v1 for Ollama)
    embedding_api_key: Optional[str] = None
    embedding_base_url: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_timeout: int = 30  # Seconds
    embedding_max_retries: int = 3

    # Kusto (Azure Data Explorer) settings
    kusto_uri: Optional[str] = None
    kusto_database: Optional[str] = None
    kusto_tenant_id: Optional[str] = None
    kusto_incident_query: str = (
        "Incidents | where CreateDate > ago(30d) | take 1000"
    )

    # Ingestion settings
    ingest_batch_size: int = 20
    ingest_inter_batch_delay: float = 0.05  # Seconds between batches
    # Target dimension of stored embeddings after PCA
    reduced_dimension: int = 3

    # Multi-vector search defaults
    search_title_weight: float = 0.7
    search_summary_weight: float = 0.3
    search_max_results: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INCIDENT_SEARCH_",
    )


settings = Settings()
