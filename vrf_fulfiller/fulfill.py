"""Seed/word derivation and fulfillRandomWords calldata."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from eth_abi import encode
from web3 import Web3

from .abi import FULFILL_SELECTOR, FULFILL_TYPES, SEED_TYPES, WORD_TYPES
from .beacon import BeaconValue
from .errors import BeaconResolutionFailed, ConfigError, FulfillerError, ProviderQueryFailed
from .events import RandomnessRequest
from .rounds import ChainInfo, current_round, round_at

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FulfillmentCall:
    to: str
    data: bytes

    def to_dict(self) -> dict:
        return {"to": self.to, "data": Web3.to_hex(self.data)}


@dataclass(frozen=True)
class Fulfillment:
    request: RandomnessRequest
    beacon: BeaconValue
    seed: bytes
    words: tuple[int, ...]
    call: FulfillmentCall


def derive_seed(randomness: int, consumer: str, chain_id: int, request_id: int) -> bytes:
    """keccak256(abi.encode(randomness, consumer, chainId, requestId))."""
    return bytes(Web3.keccak(encode(
        SEED_TYPES,
        [randomness, Web3.to_checksum_address(consumer), chain_id, request_id],
    )))


def derive_word(seed: bytes, index: int) -> int:
    return int.from_bytes(Web3.keccak(encode(WORD_TYPES, [seed, index])), "big")


def derive_words(seed: bytes, num_words: int) -> tuple[int, ...]:
    return tuple(derive_word(seed, i) for i in range(num_words))


def encode_fulfill_call(num_words: int, request_id: int, randomness: int,
                        consumer: str) -> bytes:
    """Calldata for fulfillRandomWords(uint32,uint256,uint256,address)."""
    return FULFILL_SELECTOR + encode(
        FULFILL_TYPES,
        [num_words, request_id, randomness, Web3.to_checksum_address(consumer)],
    )


class FulfillmentBuilder:
    """Turns decoded requests into fulfillment calls against `adapter`.

    The payload carries the per-request seed as randomness unless
    `onchain_derivation` is set, in which case the raw beacon randomness is
    passed and the adapter derives the seed itself.
    """

    def __init__(self, beacon, chain: ChainInfo, adapter: str, chain_id: int,
                 provider=None, workers: int = 1, onchain_derivation: bool = False,
                 rounds_to_fulfill: int | None = None):
        self.beacon = beacon
        self.chain = chain
        self.adapter = Web3.to_checksum_address(adapter)
        self.chain_id = chain_id
        self.provider = provider
        self.workers = max(1, workers)
        self.onchain_derivation = onchain_derivation
        self.rounds_to_fulfill = rounds_to_fulfill

    def target_round(self, request: RandomnessRequest) -> int:
        if request.target_round:
            return request.target_round
        if self.provider is None:
            raise ConfigError(
                f"request {request.request_id} has no round and no provider to derive it"
            )
        try:
            timestamp = self.provider.get_block_timestamp(request.source_block)
        except Exception as e:
            raise ProviderQueryFailed(str(e), request.source_block, request.source_block) from e
        return round_at(timestamp * 1000, self.chain)

    def _fetch_rounds(self, rounds: list[int]) -> dict[int, BeaconValue]:
        if self.workers == 1 or len(rounds) <= 1:
            return {r: self.beacon.fetch(r) for r in rounds}
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            values = list(pool.map(self.beacon.fetch, rounds))
        return dict(zip(rounds, values))

    def build_one(self, request: RandomnessRequest, beacon: BeaconValue) -> Fulfillment:
        seed = derive_seed(beacon.randomness_int, request.consumer,
                           self.chain_id, request.request_id)
        randomness = (
            beacon.randomness_int if self.onchain_derivation
            else int.from_bytes(seed, "big")
        )
        call = FulfillmentCall(
            to=self.adapter,
            data=encode_fulfill_call(request.num_words, request.request_id,
                                     randomness, request.consumer),
        )
        # numWords 0 still yields one word; the payload echoes the event as-is
        words = derive_words(seed, max(request.num_words, 1))
        return Fulfillment(request, beacon, seed, words, call)

    def _warn_expired(self, request: RandomnessRequest, round: int, now_round: int):
        if self.rounds_to_fulfill is None:
            return
        deadline = round + self.rounds_to_fulfill
        if deadline < now_round:
            # still submitted: the adapter rejects late fulfillments itself
            logger.warning(
                "Request %d (block %d) deadline round %d has passed (current %d)",
                request.request_id, request.source_block, deadline, now_round,
            )

    def build(self, requests: list[RandomnessRequest], now_ms: int | None = None) -> list[Fulfillment]:
        """Resolve every request in order; the first failure aborts the batch."""
        targets = [self.target_round(req) for req in requests]

        distinct = list(dict.fromkeys(targets))
        try:
            beacons = self._fetch_rounds(distinct)
        except FulfillerError as e:
            failed_round = getattr(e, "round", None)
            req = next(
                (r for r, t in zip(requests, targets) if t == failed_round),
                requests[0],
            )
            raise BeaconResolutionFailed(req.request_id, failed_round or targets[0], e) from e

        now_round = current_round(self.chain, now_ms)
        out = []
        for req, round_ in zip(requests, targets):
            self._warn_expired(req, round_, now_round)
            out.append(self.build_one(req, beacons[round_]))
        logger.info("Built %d fulfillment(s) over %d round(s)", len(out), len(distinct))
        return out
