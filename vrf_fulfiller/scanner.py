"""Bounded, resumable scan of RandomnessRequest logs."""

import logging
from dataclasses import dataclass, field
from typing import Protocol

from web3 import Web3

from .abi import REQUEST_TOPIC
from .errors import ProviderQueryFailed

logger = logging.getLogger(__name__)


class LogProvider(Protocol):
    def get_block_number(self) -> int: ...

    def get_logs(self, params: dict) -> list: ...

    def get_block_timestamp(self, block: int) -> int: ...

    def get_chain_id(self) -> int: ...


class Web3LogProvider:
    """LogProvider backed by a web3.Web3 instance."""

    def __init__(self, w3: Web3):
        self.w3 = w3

    def get_block_number(self) -> int:
        return self.w3.eth.block_number

    def get_logs(self, params: dict) -> list:
        return list(self.w3.eth.get_logs(params))

    def get_block_timestamp(self, block: int) -> int:
        return self.w3.eth.get_block(block)["timestamp"]

    def get_chain_id(self) -> int:
        return self.w3.eth.chain_id


def sender_topic(address: str) -> str:
    """Left-pad an address to a 32-byte indexed topic."""
    return "0x" + Web3.to_checksum_address(address)[2:].lower().rjust(64, "0")


@dataclass
class ScanResult:
    logs: list
    checkpoint: int
    start_block: int
    queries: int = 0
    windows: list[tuple[int, int]] = field(default_factory=list)


class LogScanner:
    """Walks [checkpoint + 1, current_block] in windows of at most `max_window`
    blocks, issuing at most `max_windows` log queries per scan.

    `allowed_senders=None` matches every sender; an empty list matches none
    and no queries are made at all.
    """

    def __init__(self, provider: LogProvider, adapter: str,
                 allowed_senders: list[str] | None = None,
                 max_window: int = 100, max_windows: int = 100,
                 default_lookback: int = 700, stale_threshold: int | None = None,
                 start_block: int | None = None):
        if max_window < 1 or max_windows < 1:
            raise ValueError("max_window and max_windows must be >= 1")
        self.provider = provider
        self.adapter = Web3.to_checksum_address(adapter)
        self.allowed_senders = (
            None if allowed_senders is None
            else [Web3.to_checksum_address(a) for a in allowed_senders]
        )
        self.max_window = max_window
        self.max_windows = max_windows
        self.default_lookback = default_lookback
        self.stale_threshold = (
            stale_threshold if stale_threshold is not None else max_window * max_windows
        )
        self.start_block = start_block

    def topics(self) -> list:
        if self.allowed_senders is None:
            return [REQUEST_TOPIC]
        return [REQUEST_TOPIC, [sender_topic(a) for a in self.allowed_senders]]

    def initial_checkpoint(self, checkpoint: int | None, current_block: int) -> int:
        """Highest block considered already scanned before this scan starts."""
        if checkpoint is None:
            last = max(current_block - self.default_lookback, 0)
        else:
            last = checkpoint
        if self.start_block is not None:
            last = max(last, self.start_block - 1)
        return last

    def scan(self, checkpoint: int | None, current_block: int) -> ScanResult:
        last = self.initial_checkpoint(checkpoint, current_block)
        result = ScanResult(logs=[], checkpoint=last, start_block=last + 1)

        behind = current_block - last
        if behind > self.stale_threshold:
            logger.warning(
                "Scanner is %d blocks behind (threshold %d); scanning at most %d blocks now",
                behind, self.stale_threshold, self.max_window * self.max_windows,
            )

        match_nothing = self.allowed_senders == []
        topics = self.topics()
        while last < current_block and len(result.windows) < self.max_windows:
            from_block = last + 1
            to_block = min(from_block + self.max_window - 1, current_block)
            if not match_nothing:
                params = {
                    "address": self.adapter,
                    "topics": topics,
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
                result.queries += 1
                try:
                    logs = self.provider.get_logs(params)
                except Exception as e:
                    raise ProviderQueryFailed(str(e), from_block, to_block) from e
                logger.debug("Blocks %d-%d: %d logs", from_block, to_block, len(logs))
                result.logs.extend(logs)
            result.windows.append((from_block, to_block))
            last = to_block
            result.checkpoint = last
        return result
