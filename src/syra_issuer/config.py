from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .statement import GOOGLE_JWKS_URL


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SYRA_", env_file=".env", case_sensitive=True, extra="ignore")

    # HTTP
    HOST: str = "127.0.0.1"
    PORT: int = 9000
    ALLOWED_ORIGIN: str = "http://localhost:3000"

    # Issuer key lifecycle
    MODE: Literal["standalone", "threshold"] = "standalone"
    # Fixed issuer scalar for reproducible test deployments only.
    TEST_ISK: Optional[int] = None

    # Threshold DKG
    PARTICIPANT_INDEX: int = 1
    THRESHOLD_N: int = 5
    THRESHOLD_T: int = 3
    PEERS: Dict[int, str] = {}  # JSON: {"2": "http://issuer-2:9000", ...}
    DKG_SESSION_ID: str = "syra-session-001"
    DKG_TIMEOUT_SECONDS: float = 30.0
    # Shared by all issuers of the group; required on the peer-to-peer endpoints when set.
    DKG_SHARED_SECRET: Optional[str] = None
    DKG_SEND_RETRIES: int = 3

    # Proof gate
    JWKS_URL: str = GOOGLE_JWKS_URL
    JWKS_PATH: Optional[str] = None  # pinned JWKS document instead of fetching
    HTTP_TIMEOUT_SECONDS: float = 10.0
    VERIFICATION_KEY_PATH: str = "verification_key.json"
    SUBJECT_ENCODING: Literal["hash", "decimal"] = "hash"

    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def _check_threshold(self) -> "Settings":
        if not 1 <= self.THRESHOLD_T <= self.THRESHOLD_N:
            raise ValueError("THRESHOLD_T must satisfy 1 <= t <= n")
        if not 1 <= self.PARTICIPANT_INDEX <= self.THRESHOLD_N:
            raise ValueError("PARTICIPANT_INDEX must lie in [1, THRESHOLD_N]")
        if self.DKG_TIMEOUT_SECONDS <= 0:
            raise ValueError("DKG_TIMEOUT_SECONDS must be positive")
        if self.DKG_SEND_RETRIES < 1:
            raise ValueError("DKG_SEND_RETRIES must be at least 1")
        if self.MODE == "threshold":
            bad = [i for i in self.PEERS if not 1 <= i <= self.THRESHOLD_N or i == self.PARTICIPANT_INDEX]
            if bad:
                raise ValueError(f"PEERS has invalid indices {bad}")
        return self
