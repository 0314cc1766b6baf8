from __future__ import annotations

import re
import uuid

from eth_account import Account
from eth_account.messages import encode_defunct

from giki.utils.log import logger

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

SIGN_IN_PREFIX = "Giki.js Authentication Nonce:"


def is_wallet_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(str(address or "").strip()))


def build_sign_in_message(address: str | None = None, nonce: str | None = None) -> str:
    """
    Human-readable message the wallet is asked to `personal_sign`.
    """
    msg = f"{SIGN_IN_PREFIX} {nonce or uuid.uuid4()}"
    if address:
        msg += f"\nAddress: {str(address).strip()}"
    return msg


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the EIP-191 (personal_sign) signer of `message`.

    Raises on malformed signatures; callers that need a boolean use
    `verify_wallet_signature`.
    """
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def verify_wallet_signature(address: str, signature: str, message: str) -> bool:
    """
    True iff `signature` over `message` recovers to `address` (case-insensitive).
    """
    if not address or not signature or message is None:
        return False
    try:
        recovered = recover_signer(message, signature)
    except Exception as ex:
        logger.info("wallet_signature_unrecoverable", error=type(ex).__name__)
        return False
    return recovered.lower() == str(address).strip().lower()
