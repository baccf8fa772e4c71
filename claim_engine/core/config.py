"""
Claims Engine Configuration
Tunable thresholds for scrubbing, remittance matching, underpayments and appeals.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from claim_engine.core.enums import ClaimStatus


class ClaimsSettings(BaseSettings):
    """
    Claim engine configuration settings.

    All values are read from the environment with the CLAIMS_ prefix,
    e.g. CLAIMS_UNDERPAYMENT_THRESHOLD_PERCENT=12.5.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="CLAIMS_",
    )

    # =========================================================================
    # Scrub Engine
    # =========================================================================
    MAX_DX_POINTERS: int = Field(
        default=4,
        ge=1,
        description="Maximum diagnosis pointers allowed on one line item",
    )
    MAX_MODIFIERS: int = Field(
        default=4,
        ge=1,
        description="Maximum modifiers allowed on one line item",
    )
    TIMELY_FILING_DAYS: int = Field(
        default=365,
        gt=0,
        description="Default filing limit when no payer contract overrides it",
    )
    TIMELY_FILING_WARNING_DAYS: int = Field(
        default=30,
        ge=0,
        description="Warn when fewer than this many days remain in the filing window",
    )
    SCRUB_MAX_FIX_PASSES: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Upper bound on auto-fix / re-scrub passes",
    )

    # =========================================================================
    # ERA Reconciliation
    # =========================================================================
    ERA_MAX_RECORDS: int = Field(
        default=5000,
        gt=0,
        description="Maximum remittance records accepted in one import",
    )
    ERA_FUZZY_MATCH_STATUSES: str = Field(
        default="submitted,accepted,appealed",
        description="Comma-separated claim statuses open for payment by name matching",
    )

    # =========================================================================
    # Underpayment Detection
    # =========================================================================
    UNDERPAYMENT_THRESHOLD_PERCENT: float = Field(
        default=10.0,
        ge=0.0,
        le=100.0,
        description="Variance percent above which a claim counts as underpaid",
    )
    UNDERPAYMENT_TOP_N: int = Field(
        default=50,
        gt=0,
        le=1000,
        description="Default number of claims returned by the underpayment report",
    )

    # =========================================================================
    # Appeals
    # =========================================================================
    APPEAL_DEADLINE_DAYS: int = Field(
        default=60,
        gt=0,
        description="Days after denial to file an appeal when no contract says otherwise",
    )

    @field_validator("ERA_FUZZY_MATCH_STATUSES")
    @classmethod
    def validate_fuzzy_statuses(cls, v: str) -> str:
        """Reject unknown status names early."""
        for item in v.split(","):
            if item.strip():
                ClaimStatus(item.strip())
        return v

    @property
    def fuzzy_match_statuses(self) -> list[ClaimStatus]:
        """Statuses a name-matched remittance may post against."""
        return [
            ClaimStatus(item.strip())
            for item in self.ERA_FUZZY_MATCH_STATUSES.split(",")
            if item.strip()
        ]


# =============================================================================
# Singleton Instance
# =============================================================================


_claims_settings: Optional[ClaimsSettings] = None


def get_claims_settings() -> ClaimsSettings:
    """Get singleton claims settings instance."""
    global _claims_settings
    if _claims_settings is None:
        _claims_settings = ClaimsSettings()
    return _claims_settings
