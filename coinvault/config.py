from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()  # loads .env if present


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


class Settings(BaseModel):
    # provider keys (configured once, before first use)
    coinranking_api_key: str | None = os.getenv("COINRANKING_API_KEY")
    coingecko_api_key: str | None = os.getenv("COINGECKO_API_KEY")
    cryptocompare_api_key: str | None = os.getenv("CRYPTOCOMPARE_API_KEY")
    etherscan_api_key: str | None = os.getenv("ETHERSCAN_API_KEY")
    covalent_api_key: str | None = os.getenv("COVALENT_API_KEY")
    moralis_api_key: str | None = os.getenv("MORALIS_API_KEY")
    newsapi_api_key: str | None = os.getenv("NEWSAPI_API_KEY")
    cryptonews_api_key: str | None = os.getenv("CRYPTONEWS_API_KEY")

    # persisted state + secret store
    state_path: str | None = os.getenv("COINVAULT_STATE_PATH")
    passphrase: str | None = os.getenv("COINVAULT_PASSPHRASE")
    salt: str = os.getenv("COINVAULT_SALT", "coinvault_salt")

    # session
    session_timeout_minutes: float = _env_float("COINVAULT_SESSION_TIMEOUT_MINUTES", 30.0)
    session_warning_minutes: float = _env_float("COINVAULT_SESSION_WARNING_MINUTES", 5.0)

    # transport
    retry_attempts: int = int(os.getenv("COINVAULT_RETRY_ATTEMPTS", "3"))
    retry_delay_seconds: float = _env_float("COINVAULT_RETRY_DELAY_SECONDS", 1.0)
    http_timeout_seconds: float = _env_float("COINVAULT_HTTP_TIMEOUT_SECONDS", 30.0)
    snapshot_limit: int = int(os.getenv("COINVAULT_SNAPSHOT_LIMIT", "50"))

    # background market refresh; 0 turns it off
    market_refresh_minutes: float = _env_float("COINVAULT_MARKET_REFRESH_MINUTES", 5.0)

    log_level: str = os.getenv("COINVAULT_LOG_LEVEL", "INFO")

    def api_keys(self) -> dict[str, str | None]:
        """Provider name -> configured key."""
        return {
            "coinranking": self.coinranking_api_key,
            "coingecko": self.coingecko_api_key,
            "cryptocompare": self.cryptocompare_api_key,
            "etherscan": self.etherscan_api_key,
            "covalent": self.covalent_api_key,
            "moralis": self.moralis_api_key,
            "newsapi": self.newsapi_api_key,
            "cryptonews": self.cryptonews_api_key,
        }


settings = Settings()
