from pydantic_settings import BaseSettings
from dotenv import load_dotenv
from pathlib import Path
import os


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "Sentinel Shipment API"
    debug: bool = False
    database_url: str = "sqlite:///./sentinel.db"
    host: str = "127.0.0.1"
    port: int = 8000
    secret_key: str = ""
    access_token_expire_minutes: int = 60 * 12
    allowed_hosts: str = ""
    static_dir: Path = Path(__file__).parent.parent.parent / "static"
    public_url: str = "http://localhost:8000"

    # Ledger endpoint
    ledger_backend: str = "web3"  # "web3" or "memory"
    ledger_rpc_url: str = "http://127.0.0.1:8545"
    ledger_contract_address: str = ""
    ledger_private_key: str = ""
    ledger_chain_id: int = 1337
    ledger_timeout_seconds: int = 120

    # Indexer / reconciler
    indexer_start_block: int = 0
    indexer_enabled: bool = False
    indexer_poll_seconds: float = 5.0
    indexer_max_backoff_seconds: float = 60.0
    reconcile_max_attempts: int = 5

    # Policy: hold AT_WAREHOUSE / DELIVERED while concerns are unresolved
    concerns_block_progress: bool = False

    max_document_bytes: int = 10 * 1024 * 1024


settings = Settings()

if not settings.secret_key:
    raise RuntimeError("Secret key not configured.")


os.makedirs(settings.static_dir, exist_ok=True)
