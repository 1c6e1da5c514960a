"""High-level wallet manager used by the CLI and by embedding agents."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from paperwall.config import PaperwallConfig
from paperwall.errors import DecryptionError, DeriveKeyError, PaymentDeclinedError, WalletError
from paperwall.payments.budget import (
    NO_SPENDING,
    BudgetCheckResult,
    check_budget,
    needs_totals,
    utc_day_start,
)
from paperwall.payments.publisher import PublisherPaymentResponse, submit_payment
from paperwall.payments.receipts import create_intent_receipt, decline_receipt, settle_receipt
from paperwall.payments.signer import PaymentTerms, SignedPayment, SignerDomain, sign_payment
from paperwall.randomness import RandomSource
from paperwall.storage.database import ReceiptStore
from paperwall.storage.models import Receipt
from paperwall.wallet.detector import EncryptionModeDetector
from paperwall.wallet.keystore import (
    PRIVATE_KEY_ENV_VAR,
    WalletInfo,
    create_wallet,
    decrypt_wallet_key,
    import_wallet,
    load_address,
    load_wallet,
    resolve_private_key,
    wallet_path,
)
from paperwall.wallet.modes import EncryptionModeName
from paperwall.wallet.session import PasswordPromptFn, SessionPasswordCache, get_session_cache

logger = logging.getLogger("paperwall.wallet.manager")


@dataclass(frozen=True)
class PaymentResult:
    """A settled payment: the receipt plus the content the publisher returned."""

    receipt: Receipt
    signed: SignedPayment
    response: PublisherPaymentResponse


class WalletManager:
    """Orchestrates keystore, password cache, signer, publisher and receipts."""

    def __init__(
        self,
        config_dir: Path,
        config: PaperwallConfig | None = None,
        receipts: ReceiptStore | None = None,
        session_cache: SessionPasswordCache | None = None,
        random_source: RandomSource | None = None,
    ) -> None:
        self.config_dir = Path(config_dir)
        self.config = config or PaperwallConfig()
        self.receipts = receipts
        self.session_cache = session_cache if session_cache is not None else get_session_cache()
        self.random_source = random_source
        self._payment_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Wallet lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        mode: EncryptionModeName | str | None = None,
        mode_input: str | None = None,
        network: str | None = None,
        force: bool = False,
    ) -> WalletInfo:
        """Create a new wallet and return its info."""
        return create_wallet(
            self.config_dir,
            network=network or self.config.default_network,
            mode=mode or self.config.default_mode,
            mode_input=mode_input,
            force=force,
            random_source=self.random_source,
        )

    def import_key(
        self,
        private_key_hex: str,
        mode: EncryptionModeName | str | None = None,
        mode_input: str | None = None,
        network: str | None = None,
        force: bool = False,
    ) -> WalletInfo:
        return import_wallet(
            self.config_dir,
            private_key_hex,
            network=network or self.config.default_network,
            mode=mode or self.config.default_mode,
            mode_input=mode_input,
            force=force,
            random_source=self.random_source,
        )

    def has_wallet(self) -> bool:
        """Check whether a wallet file exists."""
        return wallet_path(self.config_dir).exists()

    @property
    def address(self) -> str | None:
        """The wallet address, or ``None`` if no wallet exists."""
        return load_address(self.config_dir)

    @property
    def encryption_mode(self) -> EncryptionModeName | None:
        wallet = load_wallet(self.config_dir)
        if wallet is None:
            return None
        return EncryptionModeDetector().detect_mode(wallet.metadata)

    # ------------------------------------------------------------------
    # Unlock
    # ------------------------------------------------------------------

    async def unlock(self, prompt: PasswordPromptFn | None = None) -> str:
        """Return the ``0x`` private key, prompting for a password if needed.

        Passwords go through the session cache so one process prompts once
        per wallet.  A wrong password is evicted so the next call re-prompts.
        """
        wallet = load_wallet(self.config_dir)
        if (
            wallet is None
            or os.environ.get(PRIVATE_KEY_ENV_VAR)
            or EncryptionModeDetector().detect_mode(wallet.metadata) is not EncryptionModeName.PASSWORD
        ):
            return resolve_private_key(self.config_dir)

        if prompt is None:
            raise WalletError("This wallet is password-protected; a password prompt is required")

        password = await self.session_cache.get_or_prompt(wallet.address, prompt)
        try:
            return decrypt_wallet_key(wallet, password)
        except (DecryptionError, DeriveKeyError):
            self.session_cache.remove(wallet.address)
            raise

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def sign(
        self,
        domain: SignerDomain,
        terms: PaymentTerms,
        prompt: PasswordPromptFn | None = None,
    ) -> SignedPayment:
        private_key = await self.unlock(prompt)
        return sign_payment(private_key, domain, terms, self.random_source)

    async def check_budget(self, amount: str, max_price: str | None = None) -> BudgetCheckResult:
        """Check *amount* (smallest units) against the configured limits.

        Daily and lifetime totals are summed from settled receipts.  Without
        a receipt store they count as zero.
        """
        budget = self.config.budget
        totals = NO_SPENDING
        if needs_totals(budget):
            if self.receipts is None:
                logger.warning("No receipt store; daily and total limits see zero spend")
            else:
                totals = await self.receipts.spending_totals(utc_day_start())
        return check_budget(amount, budget, totals, max_price)

    async def pay(
        self,
        payment_url: str,
        terms: PaymentTerms,
        domain: SignerDomain,
        prompt: PasswordPromptFn | None = None,
        agent_id: Optional[str] = None,
        client: httpx.AsyncClient | None = None,
        max_price: str | None = None,
    ) -> PaymentResult:
        """Check the budget, then sign, submit and record one payment.

        A budget denial raises ``BudgetExceededError`` before anything is
        signed.  Transport and malformed-response failures propagate without
        writing anything.  A decline is recorded and then re-raised.
        """
        # One payment at a time, so two callers cannot both pass the budget
        async with self._payment_lock:
            return await self._pay(payment_url, terms, domain, prompt, agent_id, client, max_price)

    async def _pay(
        self,
        payment_url: str,
        terms: PaymentTerms,
        domain: SignerDomain,
        prompt: PasswordPromptFn | None,
        agent_id: Optional[str],
        client: httpx.AsyncClient | None,
        max_price: str | None,
    ) -> PaymentResult:
        verdict = await self.check_budget(terms.amount, max_price)
        if not verdict.allowed:
            logger.warning(
                f"Payment of {terms.amount} to {terms.pay_to} refused by budget "
                f"({verdict.reason.value}, limit={verdict.limit}, spent={verdict.spent})"
            )
            verdict.raise_for_denial()

        signed = await self.sign(domain, terms, prompt)
        intent = create_intent_receipt(payment_url, signed, terms.network, agent_id)
        logger.info(
            f"Submitting payment of {terms.amount} to {terms.pay_to} on {terms.network} "
            f"(receipt={intent.id})"
        )

        try:
            response = await submit_payment(
                payment_url,
                signed,
                client=client,
                timeout=self.config.payments.request_timeout,
                allow_insecure_hosts=self.config.payments.allow_insecure_hosts,
            )
        except PaymentDeclinedError as exc:
            declined = decline_receipt(intent, exc.reason)
            logger.info(f"Payment declined (receipt={declined.id}): {exc.reason}")
            await self._record(declined)
            raise

        settled = settle_receipt(intent, response.tx_hash)
        logger.info(f"Payment settled (receipt={settled.id}): tx={response.tx_hash}")
        await self._record(settled)
        return PaymentResult(receipt=settled, signed=signed, response=response)

    async def _record(self, receipt: Receipt) -> None:
        if self.receipts is None:
            return
        try:
            await self.receipts.append(receipt)
        except Exception as exc:
            logger.warning(f"Failed to write receipt {receipt.id}: {exc}")
