"""Link self-registered web accounts to offline customer profiles."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from aquacare.core.identifiers import generate_customer_code, utcnow
from aquacare.core.phone import phone_match_pattern
from aquacare.core.result import ConflictError, ErrorKind
from aquacare.domain.models.contract_defaults import ContractDefaults
from aquacare.persistence.models.customer_profile import CustomerProfile, CustomerType
from aquacare.persistence.models.web_account import WebAccount
from aquacare.persistence.repositories.customer_profile_repository import CustomerProfileRepository
from aquacare.persistence.repositories.web_account_repository import WebAccountRepository

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Finds the CustomerProfile behind a WebAccount.

    Matching is a disjunction of a fuzzy phone match and a case-insensitive
    email match. Several matches are a data-quality problem, not an error:
    the most recently updated profile wins and the ambiguity is logged.
    Resolution never writes.
    """

    def __init__(self, session: AsyncSession, defaults: ContractDefaults | None = None) -> None:
        self.session = session
        self.defaults = defaults or ContractDefaults()
        self.profile_repo = CustomerProfileRepository(session)
        self.account_repo = WebAccountRepository(session)

    async def resolve(self, account: WebAccount | None) -> CustomerProfile | None:
        """Resolve the profile linked to a web account.

        Args:
            account: Web account, or None when the caller could not load it

        Returns:
            Linked profile, or None when there is no linked customer yet
        """
        if account is None:
            return None
        return await self._resolve(account.id, account.phone, account.email)

    async def resolve_by_account_id(self, account_id: int) -> CustomerProfile | None:
        """Resolve by web account id; unknown accounts resolve to None."""
        account = await self.account_repo.get_by_id(account_id)
        if account is None:
            logger.debug(f"Web account {account_id} not found during identity resolution")
            return None
        return await self.resolve(account)

    async def accounts_for_profile(self, profile: CustomerProfile) -> list[WebAccount]:
        """Web accounts that would resolve to this profile's contact details."""
        return await self.account_repo.find_matching(
            phone_match_pattern(profile.mobile),
            profile.email,
        )

    async def resolve_or_create(
        self,
        account: WebAccount,
        name: str | None = None,
        phone: str | None = None,
        address: dict[str, Any] | None = None,
    ) -> CustomerProfile:
        """Resolve the account's profile, creating one if none exists.

        Re-resolves right before inserting, and treats a unique violation on
        the mobile number as another request having created the profile
        first. Call it before any other pending writes in the session: the
        violation path rolls the session back.

        Args:
            account: Web account placing the order or enquiry
            name: Customer name, defaults to the account's full name
            phone: Phone to store, defaults to the account's phone
            address: Delivery address

        Raises:
            ConflictError: The account has no phone number to create from
        """
        account_id = account.id
        account_phone = account.phone
        account_email = account.email
        mobile = phone or account_phone
        full_name = name or account.full_name

        profile = await self._resolve(account_id, account_phone, account_email)
        if profile is not None:
            return profile
        if not mobile:
            raise ConflictError(
                "Cannot create a customer profile without a phone number",
                account_id=account_id,
            )

        now = utcnow()
        try:
            profile = await self.profile_repo.create(
                customer_code=generate_customer_code(self.defaults.customer_code_prefix, now),
                name=full_name,
                mobile=mobile,
                email=account_email,
                address=address,
                type=CustomerType.NEW,
                created_at=now,
                updated_at=now,
            )
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                "Customer profile created concurrently, re-resolving",
                extra={"account_id": account_id},
            )
            profile = await self._resolve(account_id, mobile, account_email)
            if profile is None:
                raise
            return profile

        logger.info(
            f"Created customer profile {profile.customer_code} for web account",
            extra={"account_id": account_id, "customer_code": profile.customer_code},
        )
        return profile

    async def _resolve(
        self,
        account_id: int | None,
        phone: str | None,
        email: str | None,
    ) -> CustomerProfile | None:
        matches = await self.profile_repo.find_matching(phone_match_pattern(phone), email)
        if not matches:
            return None

        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} customer profiles match one web account, using most recently updated",
                extra={
                    "error_kind": ErrorKind.AMBIGUOUS_IDENTITY.value,
                    "account_id": account_id,
                    "profile_ids": [p.id for p in matches],
                    "chosen_profile_id": matches[0].id,
                },
            )
        return matches[0]
