"""Contract event listener.

Polls the hook contract for ``AVSVerificationRequested`` events and hands
each one to the coordinator. Waves run in the background; the listener
never waits for them, and a failed poll is retried on the next tick.
"""

from __future__ import annotations

import asyncio
import logging

from web3.exceptions import Web3Exception

from carbon_avs.ledger.contract import HookContract, VerificationRequestedEvent
from carbon_avs.utils import CarbonAVSError
from carbon_avs.verification.coordinator import VerificationCoordinator

logger = logging.getLogger(__name__)


class ContractRequestListener:
    def __init__(
        self,
        contract: HookContract,
        coordinator: VerificationCoordinator,
        poll_interval: float = 5.0,
        start_block: int | None = None,
        skip_verified: bool = True,
    ) -> None:
        self.contract = contract
        self.coordinator = coordinator
        self.poll_interval = poll_interval
        self.skip_verified = skip_verified
        self._next_block = start_block

    @property
    def next_block(self) -> int | None:
        return self._next_block

    async def poll_once(self) -> int:
        """Dispatch events from unseen blocks. Returns how many were found."""
        latest = await asyncio.to_thread(self.contract.latest_block)
        if self._next_block is None:
            self._next_block = latest
        if latest < self._next_block:
            return 0

        events = await asyncio.to_thread(self.contract.fetch_requests, self._next_block, latest)
        for event in events:
            await self._dispatch(event)
        self._next_block = latest + 1
        return len(events)

    async def _dispatch(self, event: VerificationRequestedEvent) -> None:
        logger.info(
            "Verification request received: credit=%s requester=%s block=%d",
            event.credit_id, event.requester, event.block_number,
        )
        if self.skip_verified:
            verified = await asyncio.to_thread(self.contract.is_verified, event.credit_id)
            if verified:
                logger.info("Credit %s already verified on-chain, skipping", event.credit_id)
                return
        await self.coordinator.submit(event.credit_id, event.requester)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Poll until *stop* is set (or forever)."""
        stop = stop or asyncio.Event()
        logger.info(
            "Listening for verification requests on %s (every %.1fs)",
            self.contract.address, self.poll_interval,
        )
        while not stop.is_set():
            try:
                await self.poll_once()
            except (Web3Exception, OSError, CarbonAVSError) as exc:
                logger.warning("Polling failed: %s. Retrying in %.1fs", exc, self.poll_interval)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
