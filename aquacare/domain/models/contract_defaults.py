"""Tunables handed to the contract services at construction time."""

from dataclasses import dataclass

from aquacare.settings import Settings


@dataclass(frozen=True)
class ContractDefaults:
    """Fallbacks for plan fields and prefixes for human-readable ids."""

    amc_duration_months: int = 12
    amc_service_quota: int = 4
    rental_duration_months: int = 1
    expiring_soon_days: int = 30

    amc_code_prefix: str = "AMC"
    rental_code_prefix: str = "RNT"
    ticket_code_prefix: str = "SR"
    customer_code_prefix: str = "CUST"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ContractDefaults":
        return cls(
            amc_duration_months=settings.default_amc_duration_months,
            amc_service_quota=settings.default_amc_service_quota,
            rental_duration_months=settings.default_rental_duration_months,
            expiring_soon_days=settings.expiring_soon_days,
            amc_code_prefix=settings.amc_code_prefix,
            rental_code_prefix=settings.rental_code_prefix,
            ticket_code_prefix=settings.ticket_code_prefix,
            customer_code_prefix=settings.customer_code_prefix,
        )
