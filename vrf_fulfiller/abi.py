"""Minimal adapter ABI and drand network constants."""

from web3 import Web3

ADAPTER_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "sender", "type": "address"},
            {"indexed": False, "name": "numWords", "type": "uint32"},
            {"indexed": False, "name": "requestId", "type": "uint256"},
            {"indexed": False, "name": "roundNumber", "type": "uint64"},
            {"indexed": False, "name": "consumer", "type": "address"},
        ],
        "name": "RandomnessRequest",
        "type": "event",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "numWords", "type": "uint32"},
            {"name": "requestId", "type": "uint256"},
            {"name": "randomness", "type": "uint256"},
            {"name": "consumer", "type": "address"},
        ],
        "name": "fulfillRandomWords",
        "outputs": [],
        "type": "function",
    },
]


def _entry(name: str) -> dict:
    for item in ADAPTER_ABI:
        if item["name"] == name:
            return item
    raise KeyError(name)


def signature(name: str) -> str:
    """Canonical signature, e.g. "fulfillRandomWords(uint32,uint256,uint256,address)"."""
    entry = _entry(name)
    types = ",".join(i["type"] for i in entry["inputs"])
    return f"{name}({types})"


REQUEST_EVENT = _entry("RandomnessRequest")
# non-indexed event fields, in ABI order
REQUEST_DATA_TYPES = [i["type"] for i in REQUEST_EVENT["inputs"] if not i["indexed"]]
REQUEST_TOPIC = Web3.to_hex(Web3.keccak(text=signature("RandomnessRequest")))

FULFILL_FUNCTION = _entry("fulfillRandomWords")
FULFILL_TYPES = [i["type"] for i in FULFILL_FUNCTION["inputs"]]
FULFILL_SELECTOR = bytes(Web3.keccak(text=signature("fulfillRandomWords"))[:4])

# Seed and per-word derivation layouts (abi.encode, not encodePacked)
SEED_TYPES = ["uint256", "address", "uint256", "uint256"]
WORD_TYPES = ["bytes32", "uint32"]

# drand HTTP relays
DRAND_URLS = [
    # Protocol Labs
    "https://api.drand.sh",
    "https://api2.drand.sh",
    "https://api3.drand.sh",
    # Cloudflare
    "https://drand.cloudflare.com",
    # Storswift
    "https://api.drand.secureweb3.com:6875",
]

SCHEME_CHAINED = "pedersen-bls-chained"
SCHEME_UNCHAINED = "pedersen-bls-unchained"
SCHEME_G1 = "bls-unchained-on-g1"
SCHEME_G1_RFC9380 = "bls-unchained-g1-rfc9380"

DRAND_CHAINS = {
    "quicknet": {
        "hash": "52db9ba70e0cc0f6eaf7803dd07447a1f5477735fd3f661792ba94600c84e971",
        "public_key": (
            "83cf0f2896adee7eb8b5f01fcad3912212c437e0073e911fb90022d3e760183c"
            "8c4b450b6a0a6c3ac6a5776a2d1064510d1fec758c921cc22b0e17e63aaf4bcb"
            "5ed66304de9cf809bd274ca73bab4af5a6e9c76a4bc09e76eae8991ef5ece45a"
        ),
        "period": 3,
        "genesis_time": 1692803367,
        "scheme": SCHEME_G1_RFC9380,
    },
    "fastnet": {
        "hash": "dbd506d6ef76e5f386f41c651dcb808c5bcbd75471cc4eafa3f4df7ad4e4c493",
        "public_key": (
            "a0b862a7527fee3a731bcb59280ab6abd62d5c0b6ea03dc4ddf6612fdfc9d01f"
            "01c31542541771903475eb1ec6615f8d0df0b8b6dce385811d6dcf8cbefb8759"
            "e5e616a3dfd054c928940766d9a5b9db91e3b697e5d70a975181e007f87fca5e"
        ),
        "period": 3,
        "genesis_time": 1677685200,
        "scheme": SCHEME_G1,
    },
    "default": {
        "hash": "8990e7a9aaed2ffed73dbd7092123d6f289930540d7651336225dc172e51b2ce",
        "public_key": (
            "868f005eb8e6e4ca0a47c8a77ceaa5309a47978a7c71bc5cce96366b5d7a5699"
            "37c529eeda66c7293784a9402801af31"
        ),
        "period": 30,
        "genesis_time": 1595431050,
        "scheme": SCHEME_CHAINED,
    },
}

DEFAULT_CHAIN = "quicknet"
