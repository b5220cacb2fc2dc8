
from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    app_name: str = Field("billify", alias="APP_NAME")
    app_env: str = Field("dev", alias="APP_ENV")

    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_format: str = Field("text", alias="LOG_FORMAT")  # "text" or "json"

    # Azure Document Intelligence
    az_di_endpoint: str | None = Field(default=None, alias="AZ_DI_ENDPOINT")
    az_di_api_key: str | None = Field(default=None, alias="AZ_DI_API_KEY")
    az_di_model: str = Field("prebuilt-invoice", alias="AZ_DI_MODEL")

    # Job queue (Azure Service Bus). Unset = in-process queue
    service_bus_connection_string: str | None = Field(default=None, alias="SERVICE_BUS_CONNECTION_STRING")
    service_bus_queue_name: str = Field("billify-queue", alias="SERVICE_BUS_QUEUE_NAME")

    # Document store (Azure Blob Storage). Unset = local directory
    blob_connection_string: str | None = Field(default=None, alias="BLOB_CONNECTION_STRING")
    blob_container: str = Field("billify-invoices", alias="BLOB_CONTAINER")
    local_document_dir: str = Field("./data/invoices", alias="LOCAL_DOCUMENT_DIR")

    # Bill store / recipient registry (SQLite). Unset = in-memory
    bill_db_path: str | None = Field(default=None, alias="BILL_DB_PATH")
    recipients_db_path: str | None = Field(default=None, alias="RECIPIENTS_DB_PATH")
    bill_retention_days: int | None = Field(default=None, alias="BILL_RETENTION_DAYS")

    # Email
    email_provider: str = Field("mock", alias="EMAIL_PROVIDER")  # "mock" or "graph"
    email_sender: str = Field("noreply@billify.local", alias="EMAIL_SENDER")
    email_wire_format: str = Field("structured", alias="EMAIL_WIRE_FORMAT")  # "structured" or "mime"

    # Microsoft Identity
    ms_tenant_id: str | None = Field(default=None, alias="MS_TENANT_ID")
    ms_client_id: str | None = Field(default=None, alias="MS_CLIENT_ID")
    ms_client_secret: str | None = Field(default=None, alias="MS_CLIENT_SECRET")

    # Graph
    graph_scope: str = Field("https://graph.microsoft.com/.default", alias="GRAPH_SCOPE")
    graph_base_url: str = Field("https://graph.microsoft.com/v1.0", alias="GRAPH_BASE_URL")
    ms_login_url: str = Field("https://login.microsoftonline.com", alias="MS_LOGIN_URL")

    # API Base URL (for verification links in emails)
    api_base_url: str = Field("http://127.0.0.1:8000", alias="API_BASE_URL")

    # CORS allowed origins (comma-separated list for production deployment)
    cors_origins: str = Field("http://localhost:3000,http://127.0.0.1:3000", alias="CORS_ORIGINS")

    # Intake
    intake_request_verification: bool = Field(False, alias="INTAKE_REQUEST_VERIFICATION")

    # Extraction worker
    worker_batch_size: int = Field(10, alias="WORKER_BATCH_SIZE")
    worker_max_wait_seconds: float = Field(5.0, alias="WORKER_MAX_WAIT_SECONDS")
    extraction_failure_policy: str = Field("commit_zero", alias="EXTRACTION_FAILURE_POLICY")  # or "quarantine"

    # Monthly aggregation
    scan_page_size: int = Field(100, alias="SCAN_PAGE_SIZE")
    aggregation_day: int = Field(1, alias="AGGREGATION_DAY")
    aggregation_hour: int = Field(11, alias="AGGREGATION_HOUR")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

settings = Settings()
