import hashlib
import logging

import pytest
from eth_abi import encode
from web3 import Web3

from vrf_fulfiller.abi import REQUEST_DATA_TYPES, REQUEST_TOPIC
from vrf_fulfiller.beacon import BeaconValue
from vrf_fulfiller.config import build_config
from vrf_fulfiller.errors import UnreachableBeacon
from vrf_fulfiller.rounds import ChainInfo
from vrf_fulfiller.scanner import sender_topic

ADAPTER = Web3.to_checksum_address("0x" + "aa" * 20)
SENDER = Web3.to_checksum_address("0x" + "bb" * 20)
OTHER_SENDER = Web3.to_checksum_address("0x" + "cc" * 20)
CONSUMER = Web3.to_checksum_address("0x" + "dd" * 20)
CHAIN_ID = 31337

TEST_CHAIN = ChainInfo(
    hash="ab" * 32,
    public_key="cd" * 48,
    period=3,
    genesis_time=1_000,
    scheme="bls-unchained-g1-rfc9380",
)


def make_log(block, request_id, num_words=1, round_number=10, sender=SENDER,
             consumer=CONSUMER, log_index=0, address=ADAPTER):
    return {
        "address": address,
        "blockNumber": block,
        "logIndex": log_index,
        "topics": [REQUEST_TOPIC, sender_topic(sender)],
        "data": Web3.to_hex(encode(REQUEST_DATA_TYPES, [num_words, request_id, round_number, consumer])),
    }


def fake_beacon_value(round_number: int) -> BeaconValue:
    signature = hashlib.sha256(b"sig-%d" % round_number).digest() + b"\x01" * 16
    return BeaconValue(round_number, hashlib.sha256(signature).digest(), signature)


class FakeProvider:
    """In-memory log provider honouring address/topic/block-range filters."""

    def __init__(self, block_number, logs=(), chain_id=CHAIN_ID, fail_from=None,
                 timestamps=None):
        self.block_number = block_number
        self.logs = list(logs)
        self.chain_id = chain_id
        self.fail_from = fail_from
        self.timestamps = dict(timestamps or {})
        self.queries = []

    def get_block_number(self):
        return self.block_number

    def get_chain_id(self):
        return self.chain_id

    def get_block_timestamp(self, block):
        return self.timestamps[block]

    def get_logs(self, params):
        self.queries.append(params)
        if self.fail_from is not None and params["fromBlock"] >= self.fail_from:
            raise ConnectionError("query returned more than 10000 results")
        topics = params["topics"]
        out = []
        for lg in self.logs:
            if lg["address"] != params["address"]:
                continue
            if not params["fromBlock"] <= lg["blockNumber"] <= params["toBlock"]:
                continue
            if lg["topics"][0] != topics[0]:
                continue
            if len(topics) > 1 and lg["topics"][1] not in topics[1]:
                continue
            out.append(lg)
        return out


class FakeBeacon:
    def __init__(self, fail=False):
        self.fail = fail
        self.fetched = []
        self.resets = 0

    def reset(self):
        self.resets += 1

    def fetch(self, round=None):
        self.fetched.append(round)
        if self.fail:
            raise UnreachableBeacon(round, [
                ("https://api.drand.sh", ConnectionError("connection refused")),
                ("https://drand.cloudflare.com", TimeoutError("read timed out")),
            ])
        return fake_beacon_value(round)


@pytest.fixture
def config():
    return build_config({
        "adapter": ADAPTER,
        "allowed_senders": [SENDER],
        "chain_id": CHAIN_ID,
        "max_window": 100,
        "max_windows": 5,
        "beacon": {"chain": "quicknet"},
    })


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger("vrf_fulfiller")
    logger.handlers[:] = []
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
