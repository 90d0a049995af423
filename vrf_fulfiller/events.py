"""Decoding of RandomnessRequest logs."""

from dataclasses import dataclass

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from .abi import REQUEST_DATA_TYPES, REQUEST_TOPIC
from .errors import MalformedEvent


@dataclass(frozen=True)
class RandomnessRequest:
    requester: str
    request_id: int
    num_words: int  # as emitted; 0 derives a single word
    target_round: int  # 0: derive from the request block's timestamp
    consumer: str
    source_block: int
    log_index: int = 0

    @property
    def position(self) -> tuple[int, int]:
        return self.source_block, self.log_index


def decode_log(log) -> RandomnessRequest:
    """RandomnessRequest(address indexed sender, uint32 numWords,
    uint256 requestId, uint64 roundNumber, address consumer)."""
    try:
        block = int(log["blockNumber"])
        log_index = int(log.get("logIndex", 0))
        topics = [HexBytes(t) for t in log["topics"]]
        data = bytes(HexBytes(log["data"]))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedEvent(f"missing or invalid log field: {e!r}") from e

    if not topics or Web3.to_hex(topics[0]) != REQUEST_TOPIC:
        raise MalformedEvent("topic0 is not RandomnessRequest", block, log_index)
    if len(topics) != 2 or len(topics[1]) != 32:
        raise MalformedEvent("expected exactly one indexed sender topic", block, log_index)
    if any(topics[1][:12]):
        raise MalformedEvent("sender topic is not a padded address", block, log_index)

    try:
        num_words, request_id, round_number, consumer = decode(REQUEST_DATA_TYPES, data)
    except (DecodingError, ValueError) as e:
        raise MalformedEvent(f"cannot decode data: {e}", block, log_index) from e

    return RandomnessRequest(
        requester=Web3.to_checksum_address(topics[1][12:]),
        request_id=request_id,
        num_words=num_words,
        target_round=round_number,
        consumer=Web3.to_checksum_address(consumer),
        source_block=block,
        log_index=log_index,
    )
