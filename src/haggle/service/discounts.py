"""Discount validation and redemption.

``validate_for_purchase`` is a read-only preview used at checkout; it reports
business outcomes in a :class:`ValidationResult` and never consumes the code.
``redeem`` is called by the payment pipeline strictly after payment success:
it re-checks the code from storage (never trusting an earlier preview) and
then consumes it with one atomic conditional update.
"""

from __future__ import annotations

import math
import sqlite3
from collections.abc import Callable
from datetime import datetime

import structlog

from haggle.credentials.codes import normalize_code
from haggle.credentials.store import CredentialStore
from haggle.domain.errors import DISCOUNT_ERRORS
from haggle.domain.models import CodeListing, DiscountCredential, ValidationResult, WelcomeStatus
from haggle.domain.types import CredentialKind, CredentialStatus, RedemptionOutcome
from haggle.external.catalog import Catalog
from haggle.external.ledger import PurchaseLedger, SQLitePurchaseLedger
from haggle.observability.metrics import CODES_REDEEMED, WELCOME_CODES_ISSUED
from haggle.pricing.discounts import WelcomeTerms, discounted_price, welcome_discount
from haggle.resilience.retry import resilient_storage_call
from haggle.state.serializers import utc_now

logger = structlog.get_logger()

SECONDS_PER_DAY = 24 * 60 * 60


class DiscountService:
    """Validate, redeem, and issue discount codes."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        catalog: Catalog,
        code_salt: str,
        ledger: PurchaseLedger | None = None,
        welcome_terms: WelcomeTerms | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize over one database connection.

        Args:
            conn: Connection used for every read and write of this service.
            catalog: Source of item prices.
            code_salt: Secret for negotiated code derivation.
            ledger: Purchase history for welcome eligibility; defaults to
                    the ``purchases`` table on *conn*.
            welcome_terms: Percent, cap, minimum and lifetime for new
                           welcome codes.
            clock: Source of "now".
        """
        self._catalog = catalog
        self._credentials = CredentialStore(conn, code_salt, clock)
        self._ledger = ledger or SQLitePurchaseLedger(conn)
        self._welcome_terms = welcome_terms or WelcomeTerms()
        self._clock = clock

    @property
    def credentials(self) -> CredentialStore:
        """The credential store behind checkout and welcome codes."""
        return self._credentials

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @resilient_storage_call("validate_discount")
    def validate_for_purchase(self, code: str, buyer_id: str, item_id: str) -> ValidationResult:
        """Preview what *code* would do for *buyer_id* buying *item_id*.

        Checks, in order: existence, unused, not expired, owner, then the
        kind-specific rules (item scope for negotiated codes, minimum
        purchase for welcome codes).

        Raises:
            ItemNotFoundError: If the catalog does not know *item_id*.
        """
        normalized = normalize_code(code)
        credential = self._credentials.lookup(normalized)
        reason = self._first_failure(credential, buyer_id)
        if reason is not None or credential is None:
            return ValidationResult.invalid(normalized, reason or "CodeNotFound")

        if credential.kind == CredentialKind.NEGOTIATED:
            if credential.scope_item_id != item_id:
                return ValidationResult.invalid(normalized, "WrongItem")
            item_price = self._catalog.get_item_price(item_id)
            discount = credential.discount_amount or 0
        else:
            item_price = self._catalog.get_item_price(item_id)
            if item_price < (credential.min_purchase_amount or 0):
                return ValidationResult.invalid(normalized, "BelowMinimumPurchase")
            discount = welcome_discount(
                item_price,
                credential.discount_percent or 0,
                credential.max_discount_cap or 0,
            )

        return ValidationResult(
            valid=True,
            code=normalized,
            kind=credential.kind,
            discount_amount=discount,
            final_price=discounted_price(item_price, discount),
            original_price=item_price,
            expires_at=credential.expires_at,
        )

    @resilient_storage_call("redeem_discount")
    def redeem(
        self, code: str, payment_id: str, buyer_id: str | None = None
    ) -> DiscountCredential:
        """Consume *code* for a confirmed payment.

        Re-runs the existence, usage, and expiry checks (and the owner check
        when *buyer_id* is given) against fresh state, then flips the code to
        ``used`` atomically.  Of N concurrent calls exactly one succeeds;
        the rest raise :class:`AlreadyUsedError`.

        Returns:
            The credential as stored after redemption.

        Raises:
            DiscountError: ``CodeNotFound``, ``AlreadyUsed``, ``Expired`` or
                ``NotOwner``.
        """
        normalized = normalize_code(code)
        credential = self._credentials.lookup(normalized)
        reason = self._first_failure(credential, buyer_id)
        if reason is not None:
            logger.info("redemption_refused", code=normalized, payment_id=payment_id, reason=reason)
            raise DISCOUNT_ERRORS[reason](normalized)

        outcome = self._credentials.mark_used(normalized, payment_id)
        if outcome != RedemptionOutcome.SUCCESS:
            logger.info(
                "redemption_refused", code=normalized, payment_id=payment_id, reason=outcome.value
            )
            raise DISCOUNT_ERRORS[outcome.value](normalized)

        redeemed = self._credentials.lookup(normalized)
        if redeemed is None:
            raise RuntimeError(f"credential {normalized} vanished after redemption")
        CODES_REDEEMED.labels(kind=redeemed.kind.value).inc()
        logger.info(
            "code_redeemed",
            code=normalized,
            payment_id=payment_id,
            kind=redeemed.kind.value,
            negotiation_id=redeemed.negotiation_id,
        )
        return redeemed

    # ------------------------------------------------------------------
    # Welcome codes
    # ------------------------------------------------------------------

    @resilient_storage_call("claim_welcome")
    def claim_welcome(self, buyer_id: str) -> DiscountCredential:
        """Issue the buyer's one-time welcome code.

        Raises:
            NotEligibleError: If the buyer already has one or has purchased.
        """
        credential = self._credentials.issue_welcome_if_eligible(
            buyer_id, self._ledger, self._welcome_terms
        )
        WELCOME_CODES_ISSUED.inc()
        return credential

    def welcome_status(self, buyer_id: str) -> WelcomeStatus:
        """Report the buyer's welcome code, or whether they could claim one."""
        credential = self._credentials.get_welcome(buyer_id)
        if credential is None:
            return WelcomeStatus(
                buyer_id=buyer_id,
                has_code=False,
                eligible=not self._ledger.has_completed_purchase(buyer_id),
            )

        now = self._clock()
        remaining = (credential.expires_at - now).total_seconds()
        return WelcomeStatus(
            buyer_id=buyer_id,
            has_code=True,
            eligible=False,
            credential=credential,
            is_valid=credential.is_valid_at(now),
            days_until_expiry=max(0, math.ceil(remaining / SECONDS_PER_DAY)),
        )

    def list_codes(self, buyer_id: str) -> list[CodeListing]:
        """Return every code issued to *buyer_id*, newest first."""
        now = self._clock()
        return [
            CodeListing(credential=credential, is_valid=credential.is_valid_at(now))
            for credential in self._credentials.list_for_buyer(buyer_id)
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _first_failure(
        self, credential: DiscountCredential | None, buyer_id: str | None
    ) -> str | None:
        """Return the first failing reason among the shared checks, or None."""
        if credential is None:
            return "CodeNotFound"
        if credential.status == CredentialStatus.USED:
            return "AlreadyUsed"
        if self._clock() > credential.expires_at:
            return "Expired"
        if buyer_id is not None and credential.buyer_id != buyer_id:
            return "NotOwner"
        return None
