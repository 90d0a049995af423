"""Executor configuration: YAML file overlaid with CLI options."""

from dataclasses import asdict, dataclass, field

import yaml
from web3 import Web3

from .abi import DEFAULT_CHAIN, DRAND_URLS
from .errors import ConfigError
from .rounds import ChainInfo


@dataclass
class BeaconConfig:
    chain: ChainInfo
    endpoints: list[str] = field(default_factory=lambda: list(DRAND_URLS))
    verify: bool = True
    check_chain: bool = True
    shuffle: bool = True
    cache: bool = True
    timeout: float = 5.0
    workers: int = 1


@dataclass
class ExecutorConfig:
    adapter: str
    beacon: BeaconConfig
    rpc_urls: list[str] = field(default_factory=list)
    allowed_senders: list[str] | None = None
    chain_id: int | None = None
    max_window: int = 100
    max_windows: int = 100
    default_lookback: int = 700
    stale_threshold: int | None = None
    start_block: int | None = None
    rpc_timeout: float = 10.0
    rounds_to_fulfill: int | None = None
    onchain_derivation: bool = False
    state_file: str = "checkpoint.yaml"


def load_config(path: str | None) -> dict:
    if path is None:
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _chain_from(cfg: dict) -> ChainInfo:
    name = cfg.get("chain", DEFAULT_CHAIN)
    try:
        base = asdict(ChainInfo.preset(name)) if name else {}
    except KeyError as e:
        raise ConfigError(e.args[0]) from e
    for key in ("hash", "public_key", "period", "genesis_time", "scheme"):
        if cfg.get(key) is not None:
            base[key] = cfg[key]
    missing = [k for k in ("hash", "public_key", "period", "genesis_time", "scheme") if k not in base]
    if missing:
        raise ConfigError(f"beacon chain incomplete, missing: {', '.join(missing)}")
    if int(base["period"]) <= 0:
        raise ConfigError("beacon period must be positive")
    return ChainInfo(
        hash=str(base["hash"]).lower(),
        public_key=str(base["public_key"]).lower(),
        period=int(base["period"]),
        genesis_time=int(base["genesis_time"]),
        scheme=str(base["scheme"]),
    )


def _address(value, what: str) -> str:
    if not value or not Web3.is_address(value):
        raise ConfigError(f"{what} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def build_config(cfg: dict) -> ExecutorConfig:
    """Validate a raw mapping (YAML + CLI overrides) into an ExecutorConfig."""
    beacon_cfg = cfg.get("beacon") or {}
    beacon = BeaconConfig(chain=_chain_from(beacon_cfg))
    for key in ("endpoints", "verify", "check_chain", "shuffle", "cache", "timeout", "workers"):
        if beacon_cfg.get(key) is not None:
            setattr(beacon, key, beacon_cfg[key])
    if not beacon.endpoints:
        raise ConfigError("at least one drand endpoint is required")

    senders = cfg.get("allowed_senders")
    if senders is not None:
        senders = [_address(s, "allowed sender") for s in senders]

    rpc_urls = cfg.get("rpc_urls") or []
    if isinstance(rpc_urls, str):
        rpc_urls = [rpc_urls]

    conf = ExecutorConfig(
        adapter=_address(cfg.get("adapter"), "adapter"),
        beacon=beacon,
        rpc_urls=list(rpc_urls),
        allowed_senders=senders,
    )
    for key in ("chain_id", "max_window", "max_windows", "default_lookback",
                "stale_threshold", "start_block", "rounds_to_fulfill"):
        if cfg.get(key) is not None:
            setattr(conf, key, int(cfg[key]))
    for key in ("rpc_timeout",):
        if cfg.get(key) is not None:
            setattr(conf, key, float(cfg[key]))
    if cfg.get("onchain_derivation") is not None:
        conf.onchain_derivation = bool(cfg["onchain_derivation"])
    if cfg.get("state_file"):
        conf.state_file = cfg["state_file"]

    if conf.max_window < 1 or conf.max_windows < 1:
        raise ConfigError("max_window and max_windows must be >= 1")
    if conf.default_lookback < 0:
        raise ConfigError("default_lookback must be >= 0")
    return conf
