"""drand HTTP client with multi-endpoint fallback and verification."""

import logging
import random
from dataclasses import dataclass

import requests

from .abi import DRAND_URLS
from .errors import UnreachableBeacon, VerificationError
from .rounds import ChainInfo, current_round, now_ms
from .verify import verify_beacon

logger = logging.getLogger(__name__)

_HEADERS = {"User-Agent": "vrf-fulfiller"}


@dataclass(frozen=True)
class BeaconValue:
    round: int
    randomness: bytes  # 32 bytes
    signature: bytes
    previous_signature: bytes | None = None

    @property
    def randomness_int(self) -> int:
        return int.from_bytes(self.randomness, "big")

    @classmethod
    def from_json(cls, payload: dict) -> "BeaconValue":
        """Parse a /public/{round} response. Raises VerificationError on bad shape."""
        try:
            round_ = int(payload["round"])
            randomness = bytes.fromhex(payload["randomness"])
            signature = bytes.fromhex(payload["signature"])
            prev = payload.get("previous_signature")
            previous_signature = bytes.fromhex(prev) if prev else None
        except (KeyError, TypeError, ValueError) as e:
            raise VerificationError(f"malformed beacon payload: {e!r}") from e
        if len(randomness) != 32:
            raise VerificationError(f"randomness is {len(randomness)} bytes, expected 32")
        return cls(round_, randomness, signature, previous_signature)


class DrandClient:
    """Fetches beacon rounds from a list of equivalent relays.

    Relays are tried one after the other (shuffled per fetch for load
    balancing); any transport, payload or verification failure moves on to
    the next one. Only when all of them fail is UnreachableBeacon raised,
    carrying the last recorded error.
    """

    def __init__(self, chain: ChainInfo, endpoints: list[str] | None = None,
                 session: requests.Session | None = None, timeout: float = 5.0,
                 verify: bool = True, check_chain: bool = True,
                 shuffle: bool = True, cache: bool = True,
                 clock=now_ms, verifier=verify_beacon):
        self.chain = chain
        self.endpoints = list(endpoints if endpoints is not None else DRAND_URLS)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.verify = verify
        self.check_chain = check_chain
        self.shuffle = shuffle
        self.cache = cache
        self.clock = clock
        self.verifier = verifier
        self._rounds: dict[int, BeaconValue] = {}
        self._checked: set[str] = set()

    def reset(self):
        """Forget cached rounds and chain checks (start of a new invocation)."""
        self._rounds.clear()
        self._checked.clear()

    def _ordered_endpoints(self) -> list[str]:
        urls = [u.rstrip("/") for u in self.endpoints]
        if self.shuffle:
            random.shuffle(urls)
        return urls

    def _get_json(self, url: str) -> dict:
        resp = self.session.get(url, timeout=self.timeout, headers=_HEADERS)
        if resp.status_code != 200:
            raise requests.HTTPError(f"GET {url} -> HTTP {resp.status_code}", response=resp)
        body = resp.json()
        if not isinstance(body, dict):
            raise VerificationError(f"unexpected payload from {url}: {type(body).__name__}")
        return body

    def _check_chain_info(self, base: str):
        if base in self._checked:
            return
        info = self._get_json(f"{base}/{self.chain.hash}/info")
        if info.get("hash") != self.chain.hash:
            raise VerificationError(
                f"chain hash mismatch: expected {self.chain.hash}, got {info.get('hash')}"
            )
        if info.get("public_key") != self.chain.public_key:
            raise VerificationError("chain public key mismatch")
        self._checked.add(base)

    def _fetch_from(self, base: str, round: int) -> BeaconValue:
        if self.check_chain:
            self._check_chain_info(base)
        payload = self._get_json(f"{base}/{self.chain.hash}/public/{round}")
        beacon = BeaconValue.from_json(payload)
        if beacon.round != round:
            raise VerificationError(f"asked for round {round}, got {beacon.round}")
        if self.verify:
            self.verifier(beacon, self.chain.public_key, self.chain.scheme)
        return beacon

    def fetch(self, round: int | None = None) -> BeaconValue:
        """Return the verified beacon for `round` (latest published round if None)."""
        latest = current_round(self.chain, self.clock())
        if round is None:
            round = latest
        if round > latest:
            raise UnreachableBeacon(
                round, [("", VerificationError(f"round {round} not published yet (latest {latest})"))]
            )
        if self.cache and round in self._rounds:
            return self._rounds[round]

        logger.info("Fetching randomness for round %d", round)
        errors: list[tuple[str, Exception]] = []
        for base in self._ordered_endpoints():
            logger.debug("Trying %s...", base)
            try:
                beacon = self._fetch_from(base, round)
            except (requests.RequestException, ValueError, VerificationError) as e:
                logger.warning("drand endpoint %s failed for round %d: %s", base, round, e)
                errors.append((base, e))
                continue
            if self.cache:
                self._rounds[round] = beacon
            return beacon
        raise UnreachableBeacon(round, errors)
