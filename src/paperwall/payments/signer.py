"""EIP-712 signer for USDC ``TransferWithAuthorization`` (EIP-3009).

The message authorizes a transfer from the wallet to ``payTo`` that is valid
immediately and expires 300 seconds later.  A fresh 32-byte nonce is drawn
for every signature, so identical terms never produce the same payload.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass

from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import Web3

from paperwall.networks import parse_chain_id
from paperwall.randomness import RandomSource, random_bytes

VALIDITY_WINDOW_SECONDS = 300
NONCE_LENGTH = 32

_AMOUNT_RE = re.compile(r"[0-9]+")

TRANSFER_WITH_AUTHORIZATION_TYPES = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ]
}


@dataclass(frozen=True)
class SignerDomain:
    """EIP-712 domain of the token contract on one network."""

    name: str
    version: str
    verifying_contract: str


@dataclass(frozen=True)
class PaymentTerms:
    """What the publisher asks for: network, smallest-unit amount, recipient."""

    network: str
    amount: str
    pay_to: str


@dataclass(frozen=True)
class PaymentAuthorization:
    from_address: str
    to: str
    value: str
    valid_after: str
    valid_before: str
    nonce: str

    def to_dict(self) -> dict[str, str]:
        return {
            "from": self.from_address,
            "to": self.to,
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": self.nonce,
        }


@dataclass(frozen=True)
class SignedPayment:
    signature: str
    authorization: PaymentAuthorization

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "authorization": self.authorization.to_dict(),
        }


def _normalize_private_key(private_key_hex: str) -> str:
    key = private_key_hex.strip()
    if not key.startswith("0x"):
        key = "0x" + key
    return key


def build_typed_data(domain: SignerDomain, chain_id: int, authorization: PaymentAuthorization) -> dict:
    """Assemble the ``encode_typed_data`` arguments for *authorization*."""
    return {
        "domain_data": {
            "name": domain.name,
            "version": domain.version,
            "chainId": chain_id,
            "verifyingContract": Web3.to_checksum_address(domain.verifying_contract),
        },
        "message_types": TRANSFER_WITH_AUTHORIZATION_TYPES,
        "message_data": {
            "from": authorization.from_address,
            "to": authorization.to,
            "value": int(authorization.value),
            "validAfter": int(authorization.valid_after),
            "validBefore": int(authorization.valid_before),
            "nonce": authorization.nonce,
        },
    }


def sign_payment(
    private_key_hex: str,
    domain: SignerDomain,
    terms: PaymentTerms,
    random_source: RandomSource | None = None,
) -> SignedPayment:
    """Sign a transfer authorization for *terms* under *domain*.

    Parameters
    ----------
    private_key_hex:
        Wallet private key, with or without ``0x``.
    domain:
        EIP-712 domain (token name, version, contract address).
    terms:
        Payment terms.  ``amount`` must be a base-10 integer string.

    Returns
    -------
    SignedPayment
        65-byte ``r||s||v`` signature as ``0x`` + 130 hex chars, plus the
        authorization fields the facilitator needs to settle.
    """
    account = Account.from_key(_normalize_private_key(private_key_hex))
    chain_id = parse_chain_id(terms.network)

    if not _AMOUNT_RE.fullmatch(terms.amount):
        raise ValueError(f"amount must be a non-negative integer string, got {terms.amount!r}")

    nonce = "0x" + random_bytes(NONCE_LENGTH, random_source).hex()
    valid_before = int(time.time()) + VALIDITY_WINDOW_SECONDS

    authorization = PaymentAuthorization(
        from_address=account.address,
        to=Web3.to_checksum_address(terms.pay_to),
        value=terms.amount,
        valid_after="0",
        valid_before=str(valid_before),
        nonce=nonce,
    )

    signable = encode_typed_data(**build_typed_data(domain, chain_id, authorization))
    signed = Account.sign_message(signable, account.key)

    return SignedPayment(
        signature="0x" + bytes(signed.signature).hex(),
        authorization=authorization,
    )


def recover_signer(signed: SignedPayment, domain: SignerDomain, network: str) -> str:
    """Recover the address that produced *signed*."""
    signable = encode_typed_data(
        **build_typed_data(domain, parse_chain_id(network), signed.authorization)
    )
    return Account.recover_message(signable, signature=signed.signature)

