"""Hook contract backend (web3).

The hook contract stores one verification result per credit token id and
emits ``AVSVerificationRequested`` when a trade references an unverified
credit. web3 calls are blocking, so submissions run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Sequence

from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from carbon_avs.utils import LedgerRejected, LedgerUnavailable

logger = logging.getLogger(__name__)

HOOK_ABI: list[dict[str, Any]] = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "creditId", "type": "uint256"},
            {"indexed": False, "name": "requester", "type": "address"},
        ],
        "name": "AVSVerificationRequested",
        "type": "event",
    },
    {
        "inputs": [
            {"name": "creditId", "type": "uint256"},
            {"name": "isVerified", "type": "bool"},
            {"name": "qualityScore", "type": "uint256"},
            {"name": "sources", "type": "string[]"},
        ],
        "name": "submitAVSVerification",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "", "type": "uint256"}],
        "name": "avsVerified",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "", "type": "uint256"}],
        "name": "avsQualityScore",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class VerificationRequestedEvent:
    credit_id: str
    requester: str
    block_number: int


def _token_id(credit_id: str) -> int:
    try:
        return int(credit_id)
    except ValueError as exc:
        raise LedgerRejected(f"Credit id {credit_id!r} is not a uint256 token id") from exc


class HookContract:
    """Ledger sink and request source backed by the hook contract."""

    def __init__(
        self,
        w3: Web3,
        address: str,
        private_key: str = "",
        receipt_timeout: float = 120.0,
    ) -> None:
        self.w3 = w3
        self.contract = w3.eth.contract(address=Web3.to_checksum_address(address), abi=HOOK_ABI)
        self.account = w3.eth.account.from_key(private_key) if private_key else None
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_rpc(
        cls,
        rpc_url: str,
        address: str,
        private_key: str = "",
        receipt_timeout: float = 120.0,
    ) -> "HookContract":
        return cls(Web3(Web3.HTTPProvider(rpc_url)), address, private_key, receipt_timeout)

    @property
    def address(self) -> str:
        return self.contract.address

    # -- Sink -----------------------------------------------------------------

    async def submit_verification(
        self,
        credit_id: str,
        is_valid: bool,
        quality_score: int,
        sources: Sequence[str],
    ) -> None:
        await asyncio.to_thread(
            self._submit_sync, credit_id, is_valid, quality_score, list(sources)
        )

    def _submit_sync(
        self,
        credit_id: str,
        is_valid: bool,
        quality_score: int,
        sources: list[str],
    ) -> None:
        if self.account is None:
            raise LedgerRejected("No operator private key configured for the hook contract")
        token_id = _token_id(credit_id)

        try:
            tx = self.contract.functions.submitAVSVerification(
                token_id, bool(is_valid), int(quality_score), sources
            ).build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info("Verification tx for credit %s sent: %s", credit_id, tx_hash.hex())
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except ContractLogicError as exc:
            raise LedgerRejected(f"submitAVSVerification reverted for credit {credit_id}: {exc}") from exc
        except (Web3Exception, OSError) as exc:
            raise LedgerUnavailable(f"Could not submit verification for credit {credit_id}: {exc}") from exc

        if receipt.get("status") != 1:
            raise LedgerRejected(f"Verification tx for credit {credit_id} reverted")
        logger.info(
            "Verification for credit %s mined in block %s (gas used %s)",
            credit_id, receipt.get("blockNumber"), receipt.get("gasUsed"),
        )

    # -- Reads ----------------------------------------------------------------

    def is_verified(self, credit_id: str) -> bool:
        return bool(self.contract.functions.avsVerified(_token_id(credit_id)).call())

    def quality_score(self, credit_id: str) -> int:
        return int(self.contract.functions.avsQualityScore(_token_id(credit_id)).call())

    def latest_block(self) -> int:
        return int(self.w3.eth.block_number)

    def fetch_requests(self, from_block: int, to_block: int) -> list[VerificationRequestedEvent]:
        """Return ``AVSVerificationRequested`` events in the block range, oldest first."""
        logs = self.contract.events.AVSVerificationRequested.get_logs(
            from_block=from_block, to_block=to_block
        )
        return [
            VerificationRequestedEvent(
                credit_id=str(log["args"]["creditId"]),
                requester=str(log["args"]["requester"]),
                block_number=int(log["blockNumber"]),
            )
            for log in logs
        ]
