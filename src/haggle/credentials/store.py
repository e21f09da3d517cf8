"""SQLite-backed discount credential store.

Three uniqueness rules make the store safe under concurrent callers without
any in-process locking:

- ``code`` is the primary key and negotiated codes are deterministic, so a
  repeated mint for one negotiation is an ``INSERT OR IGNORE`` no-op;
- ``negotiation_id`` is unique, so one negotiation never owns two codes;
- a partial unique index allows one welcome code per buyer.

``mark_used`` is a single conditional ``UPDATE ... WHERE status = 'unused'``,
so exactly one of N concurrent redeemers flips the row.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from datetime import datetime

import structlog

from haggle.credentials.codes import negotiated_code, normalize_code, welcome_code
from haggle.domain.errors import NotEligibleError
from haggle.domain.models import DiscountCredential
from haggle.domain.types import CredentialKind, CredentialStatus, RedemptionOutcome
from haggle.external.ledger import PurchaseLedger
from haggle.pricing.discounts import WelcomeTerms
from haggle.state.serializers import row_to_credential, to_db_time, utc_now

logger = structlog.get_logger()

# Random welcome tokens are retried this many times on a primary-key clash
_WELCOME_CODE_ATTEMPTS = 5


class CredentialStore:
    """Mint, look up, and atomically consume discount credentials."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        code_salt: str,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the ``discount_credentials``
                  table (see ``init_schema``).
            code_salt: Secret mixed into negotiated code derivation.
            clock: Source of "now" for timestamps and expiry checks.
        """
        self._conn = conn
        self._salt = code_salt
        self._clock = clock

    # ------------------------------------------------------------------
    # Minting
    # ------------------------------------------------------------------

    def code_for_negotiation(self, negotiation_id: str) -> str:
        """Return the deterministic code a negotiation mints (or minted)."""
        return negotiated_code(negotiation_id, self._salt)

    def insert_negotiated(
        self,
        negotiation_id: str,
        buyer_id: str,
        item_id: str,
        discount_amount: int,
        expires_at: datetime,
    ) -> str:
        """Insert the negotiation's credential if absent (no commit).

        Returns:
            The credential code.
        """
        code = self.code_for_negotiation(negotiation_id)
        self._conn.execute(
            """
            INSERT OR IGNORE INTO discount_credentials (
                code, kind, buyer_id, scope_item_id, negotiation_id,
                discount_amount, status, expires_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                code,
                CredentialKind.NEGOTIATED.value,
                buyer_id,
                item_id,
                negotiation_id,
                discount_amount,
                CredentialStatus.UNUSED.value,
                to_db_time(expires_at),
                to_db_time(self._clock()),
            ),
        )
        return code

    def mint_negotiated(
        self,
        negotiation_id: str,
        buyer_id: str,
        item_id: str,
        discount_amount: int,
        expires_at: datetime,
    ) -> DiscountCredential:
        """Mint the single credential for an accepted negotiation.

        Idempotent: a second call for the same *negotiation_id* returns the
        stored credential unchanged (its amount and expiry are never
        recomputed).
        """
        with self._conn:
            self.insert_negotiated(negotiation_id, buyer_id, item_id, discount_amount, expires_at)
        credential = self.get_by_negotiation(negotiation_id)
        if credential is None:
            raise RuntimeError(f"credential for negotiation {negotiation_id} vanished after insert")
        return credential

    def issue_welcome_if_eligible(
        self,
        buyer_id: str,
        ledger: PurchaseLedger,
        terms: WelcomeTerms | None = None,
    ) -> DiscountCredential:
        """Issue the buyer's one-time welcome credential.

        Eligibility is zero completed purchases and no welcome code already
        issued.  The unique index decides races between concurrent claims:
        the loser's insert fails and it is reported as already holding one.

        Raises:
            NotEligibleError: With reason ``already_has_code`` or
                ``already_purchased``.
        """
        terms = terms or WelcomeTerms()

        if self.get_welcome(buyer_id) is not None:
            raise NotEligibleError(buyer_id, "already_has_code")
        if ledger.has_completed_purchase(buyer_id):
            raise NotEligibleError(buyer_id, "already_purchased")

        now = self._clock()
        for _ in range(_WELCOME_CODE_ATTEMPTS):
            code = welcome_code()
            try:
                with self._conn:
                    self._conn.execute(
                        """
                        INSERT INTO discount_credentials (
                            code, kind, buyer_id, discount_percent,
                            min_purchase_amount, max_discount_cap, status,
                            expires_at, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            code,
                            CredentialKind.WELCOME.value,
                            buyer_id,
                            terms.discount_percent,
                            terms.min_purchase_amount,
                            terms.max_discount_cap,
                            CredentialStatus.UNUSED.value,
                            to_db_time(now + terms.ttl),
                            to_db_time(now),
                        ),
                    )
            except sqlite3.IntegrityError as exc:
                if "discount_credentials.buyer_id" in str(exc):
                    raise NotEligibleError(buyer_id, "already_has_code") from exc
                logger.warning("welcome_code_collision", code=code)
                continue
            logger.info("welcome_code_issued", buyer_id=buyer_id, code=code)
            return self.lookup(code)  # type: ignore[return-value]

        raise RuntimeError("could not generate a unique welcome code")

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    def mark_used(self, code: str, payment_id: str) -> RedemptionOutcome:
        """Atomically flip ``unused -> used`` and bind *payment_id*.

        Safe to retry: once used, every further call (including a retry by
        the original payer) returns ``ALREADY_USED`` and leaves the recorded
        payment id untouched.
        """
        code = normalize_code(code)
        now = self._clock()
        with self._conn:
            cursor = self._conn.execute(
                """
                UPDATE discount_credentials
                SET status = ?, used_by_payment_id = ?, used_at = ?
                WHERE code = ? AND status = ? AND expires_at >= ?
                """,
                (
                    CredentialStatus.USED.value,
                    payment_id,
                    to_db_time(now),
                    code,
                    CredentialStatus.UNUSED.value,
                    to_db_time(now),
                ),
            )
        if cursor.rowcount == 1:
            return RedemptionOutcome.SUCCESS

        credential = self.lookup(code)
        if credential is None:
            return RedemptionOutcome.NOT_FOUND
        if credential.status == CredentialStatus.USED:
            return RedemptionOutcome.ALREADY_USED
        return RedemptionOutcome.EXPIRED

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def lookup(self, code: str) -> DiscountCredential | None:
        """Return the credential for *code* (case-insensitive), or None."""
        row = self._conn.execute(
            "SELECT * FROM discount_credentials WHERE code = ?", (normalize_code(code),)
        ).fetchone()
        return row_to_credential(row) if row else None

    def get_by_negotiation(self, negotiation_id: str) -> DiscountCredential | None:
        """Return the credential minted for *negotiation_id*, or None."""
        row = self._conn.execute(
            "SELECT * FROM discount_credentials WHERE negotiation_id = ?", (negotiation_id,)
        ).fetchone()
        return row_to_credential(row) if row else None

    def get_welcome(self, buyer_id: str) -> DiscountCredential | None:
        """Return the buyer's welcome credential, or None."""
        row = self._conn.execute(
            "SELECT * FROM discount_credentials WHERE buyer_id = ? AND kind = ?",
            (buyer_id, CredentialKind.WELCOME.value),
        ).fetchone()
        return row_to_credential(row) if row else None

    def list_for_buyer(self, buyer_id: str) -> list[DiscountCredential]:
        """Return every credential issued to *buyer_id*, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM discount_credentials WHERE buyer_id = ? ORDER BY created_at DESC",
            (buyer_id,),
        ).fetchall()
        return [row_to_credential(row) for row in rows]
