"""Reconciliation loop: checkpoint -> scan -> decode -> resolve -> calls."""

import enum
import logging
import time
from dataclasses import dataclass, field

from web3 import Web3

from .beacon import DrandClient
from .checkpoint import CheckpointStore, FileCheckpointStore, load_checkpoint, save_checkpoint
from .config import ExecutorConfig
from .errors import ConfigError, FulfillerError, ProviderQueryFailed
from .events import decode_log
from .fulfill import Fulfillment, FulfillmentBuilder, FulfillmentCall
from .scanner import LogScanner, Web3LogProvider

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "Idle"
    SCANNING = "Scanning"
    DECODING = "Decoding"
    RESOLVING = "Resolving"
    READY = "Ready"
    BLOCKED = "Blocked"


@dataclass
class ExecutionResult:
    can_execute: bool
    calls: list[FulfillmentCall] = field(default_factory=list)
    message: str = ""
    state: State = State.READY
    checkpoint: int | None = None
    fulfillments: list[Fulfillment] = field(default_factory=list)

    @classmethod
    def ready(cls, fulfillments: list[Fulfillment], checkpoint: int) -> "ExecutionResult":
        return cls(True, [f.call for f in fulfillments], "", State.READY,
                   checkpoint, list(fulfillments))

    @classmethod
    def blocked(cls, message: str, checkpoint: int | None) -> "ExecutionResult":
        return cls(False, [], message, State.BLOCKED, checkpoint)

    def to_dict(self) -> dict:
        if self.can_execute:
            return {"canExecute": True, "calls": [c.to_dict() for c in self.calls]}
        return {"canExecute": False, "message": self.message}


def _query(fn, what: str):
    try:
        return fn()
    except Exception as e:
        raise ProviderQueryFailed(f"{what}: {e}") from e


def make_scanner(config: ExecutorConfig, provider) -> LogScanner:
    return LogScanner(
        provider, config.adapter,
        allowed_senders=config.allowed_senders,
        max_window=config.max_window,
        max_windows=config.max_windows,
        default_lookback=config.default_lookback,
        stale_threshold=config.stale_threshold,
        start_block=config.start_block,
    )


def run(config: ExecutorConfig, checkpoint: int | None, provider, beacon,
        now_ms: int | None = None) -> tuple[ExecutionResult, int | None]:
    """One invocation. Returns (result, checkpoint to persist).

    On any failure the result is blocked and the input checkpoint is
    returned untouched; errors never escape as exceptions.
    """
    state = State.IDLE
    try:
        state = State.SCANNING
        current_block = _query(provider.get_block_number, "eth_blockNumber")
        scan = make_scanner(config, provider).scan(checkpoint, current_block)
        logger.info(
            "Scanned blocks %d-%d in %d queries: %d logs",
            scan.start_block, scan.checkpoint, scan.queries, len(scan.logs),
        )

        state = State.DECODING
        requests = sorted((decode_log(lg) for lg in scan.logs), key=lambda r: r.position)

        state = State.RESOLVING
        fulfillments = []
        if requests:
            chain_id = config.chain_id
            if chain_id is None:
                chain_id = _query(provider.get_chain_id, "eth_chainId")
            builder = FulfillmentBuilder(
                beacon, config.beacon.chain, config.adapter, chain_id,
                provider=provider,
                workers=config.beacon.workers,
                onchain_derivation=config.onchain_derivation,
                rounds_to_fulfill=config.rounds_to_fulfill,
            )
            fulfillments = builder.build(requests, now_ms)
    except FulfillerError as e:
        logger.warning("Cannot execute (%s): %s", state.value, e)
        return ExecutionResult.blocked(f"{state.value} failed: {e}", checkpoint), checkpoint

    if not fulfillments:
        logger.info("Nothing to fulfill (checkpoint %s -> %d)", checkpoint, scan.checkpoint)
    return ExecutionResult.ready(fulfillments, scan.checkpoint), scan.checkpoint


def run_with_store(config: ExecutorConfig, store: CheckpointStore, provider, beacon,
                   now_ms: int | None = None) -> ExecutionResult:
    """Load the checkpoint, run, and write it back only if the run succeeded."""
    try:
        checkpoint = load_checkpoint(store)
    except ValueError as e:
        return ExecutionResult.blocked(f"{State.IDLE.value} failed: bad checkpoint: {e}", None)
    result, new_checkpoint = run(config, checkpoint, provider, beacon, now_ms)
    if result.can_execute and new_checkpoint is not None:
        save_checkpoint(store, new_checkpoint)
    return result


def connect_web3(rpc_urls: list[str], timeout: float = 10.0) -> Web3:
    """First RPC endpoint that answers."""
    for url in rpc_urls:
        if url.startswith("ws://") or url.startswith("wss://"):
            w3 = Web3(Web3.LegacyWebSocketProvider(url, websocket_timeout=timeout))
        else:
            w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
        if w3.is_connected():
            return w3
        logger.warning("Cannot connect to RPC: %s", url)
    raise ConfigError(f"Cannot connect to any RPC: {', '.join(rpc_urls) or '(none given)'}")


def make_beacon(config: ExecutorConfig) -> DrandClient:
    b = config.beacon
    return DrandClient(
        b.chain, endpoints=b.endpoints, timeout=b.timeout, verify=b.verify,
        check_chain=b.check_chain, shuffle=b.shuffle, cache=b.cache,
    )


class Executor:
    """Binds a config to its provider, beacon client and checkpoint store."""

    def __init__(self, config: ExecutorConfig, provider, beacon, store: CheckpointStore):
        self.config = config
        self.provider = provider
        self.beacon = beacon
        self.store = store

    @classmethod
    def from_config(cls, config: ExecutorConfig) -> "Executor":
        w3 = connect_web3(config.rpc_urls, config.rpc_timeout)
        return cls(config, Web3LogProvider(w3), make_beacon(config),
                   FileCheckpointStore(config.state_file))

    def run_once(self) -> ExecutionResult:
        self.beacon.reset()
        return run_with_store(self.config, self.store, self.provider, self.beacon)

    def run_loop(self, interval: float = 10.0, count: int | None = None, on_result=None) -> int:
        """Invoke run_once every `interval` seconds. count=None -> until interrupted.

        Returns the number of completed invocations.
        """
        i = 0
        try:
            while count is None or i < count:
                result = self.run_once()
                i += 1
                if on_result is not None:
                    on_result(result)
                if count is None or i < count:
                    time.sleep(interval)
        except KeyboardInterrupt:
            logger.info("Stopped after %d invocation(s)", i)
        return i

    def status(self) -> dict:
        try:
            checkpoint = load_checkpoint(self.store)
        except ValueError as e:
            raise ConfigError(f"bad checkpoint: {e}") from e
        current_block = self.provider.get_block_number()
        scanner = make_scanner(self.config, self.provider)
        start = scanner.initial_checkpoint(checkpoint, current_block)
        return {
            "adapter": self.config.adapter,
            "checkpoint": checkpoint,
            "current_block": current_block,
            "backlog": max(current_block - start, 0),
            "max_blocks_per_run": self.config.max_window * self.config.max_windows,
            "state_file": getattr(self.store, "path", None),
        }
