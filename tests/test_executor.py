from eth_abi import decode

from vrf_fulfiller.abi import FULFILL_TYPES
from vrf_fulfiller.checkpoint import CHECKPOINT_KEY, MemoryCheckpointStore
from vrf_fulfiller.executor import Executor, State, run, run_with_store
from vrf_fulfiller.fulfill import derive_seed

from conftest import ADAPTER, CHAIN_ID, CONSUMER, FakeBeacon, FakeProvider, fake_beacon_value, make_log

NOW_MS = 1_800_000_000_000


def test_scenario_a_nothing_to_do(config):
    result, checkpoint = run(config, 100, FakeProvider(100), FakeBeacon(), NOW_MS)
    assert result.can_execute
    assert result.calls == []
    assert result.state is State.READY
    assert checkpoint == 100
    assert result.to_dict() == {"canExecute": True, "calls": []}


def test_scenario_b_single_request(config):
    provider = FakeProvider(102, [make_log(101, 77, num_words=1, round_number=500)])
    result, checkpoint = run(config, 100, provider, FakeBeacon(), NOW_MS)
    assert result.can_execute
    assert len(result.calls) == 1
    call = result.calls[0]
    assert call.to == ADAPTER
    num_words, request_id, randomness, consumer = decode(FULFILL_TYPES, call.data[4:])
    expected = derive_seed(fake_beacon_value(500).randomness_int, CONSUMER, CHAIN_ID, 77)
    assert (num_words, request_id) == (1, 77)
    assert randomness == int.from_bytes(expected, "big")
    assert consumer.lower() == CONSUMER.lower()
    assert checkpoint == 102
    assert result.to_dict()["calls"][0]["data"].startswith("0x")


def test_scenario_c_backlog_is_bounded(config):
    # one request per block for 1000 blocks after a 1001-block gap
    logs = [make_log(b, b) for b in range(2, 1002)]
    provider = FakeProvider(1001, logs)
    result, checkpoint = run(config, 0, provider, FakeBeacon(), NOW_MS)
    assert result.can_execute
    assert len(provider.queries) <= config.max_windows
    assert len(result.calls) == 499
    assert checkpoint == 500

    # the rest is picked up by later invocations, never twice
    seen = {f.request.request_id for f in result.fulfillments}
    while checkpoint < 1001:
        provider.queries.clear()
        result, checkpoint = run(config, checkpoint, provider, FakeBeacon(), NOW_MS)
        assert len(provider.queries) <= config.max_windows
        ids = {f.request.request_id for f in result.fulfillments}
        assert not ids & seen
        seen |= ids
    assert seen == set(range(2, 1002))


def test_scenario_d_beacon_unreachable(config):
    provider = FakeProvider(102, [make_log(101, 1)])
    result, checkpoint = run(config, 100, provider, FakeBeacon(fail=True), NOW_MS)
    assert not result.can_execute
    assert result.calls == []
    assert result.state is State.BLOCKED
    assert checkpoint == 100
    assert result.message.startswith("Resolving failed")
    assert result.to_dict() == {"canExecute": False, "message": result.message}


def test_idempotent_without_checkpoint_write(config):
    provider = FakeProvider(300, [make_log(150, 1), make_log(160, 2, num_words=4)])
    first, _ = run(config, 100, provider, FakeBeacon(), NOW_MS)
    second, _ = run(config, 100, provider, FakeBeacon(), NOW_MS)
    assert first.calls == second.calls
    assert len(first.calls) == 2


def test_checkpoint_monotonic_over_invocations(config):
    provider = FakeProvider(120, [make_log(110, 1)])
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "100"})
    history = [100]
    for head in (120, 120, 118, 900, 2000):
        provider.block_number = head
        run_with_store(config, store, provider, FakeBeacon(), NOW_MS)
        history.append(int(store.get(CHECKPOINT_KEY)))
    assert history == sorted(history)
    assert history[-1] <= 2000


def test_no_double_fulfillment_across_invocations(config):
    provider = FakeProvider(120, [make_log(110, 1)])
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "100"})
    first = run_with_store(config, store, provider, FakeBeacon(), NOW_MS)
    provider.logs.append(make_log(130, 2))
    provider.block_number = 140
    second = run_with_store(config, store, provider, FakeBeacon(), NOW_MS)
    assert [f.request.request_id for f in first.fulfillments] == [1]
    assert [f.request.request_id for f in second.fulfillments] == [2]


def test_provider_failure_blocks_without_write(config):
    provider = FakeProvider(1000, [make_log(150, 1)], fail_from=301)
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "100"})
    result = run_with_store(config, store, provider, FakeBeacon(), NOW_MS)
    assert not result.can_execute
    assert result.message.startswith("Scanning failed")
    assert store.get(CHECKPOINT_KEY) == "100"
    assert store.writes == 0


def test_block_number_failure_blocks(config):
    class Broken(FakeProvider):
        def get_block_number(self):
            raise TimeoutError("rpc timeout")

    result, checkpoint = run(config, 5, Broken(10), FakeBeacon(), NOW_MS)
    assert not result.can_execute
    assert "rpc timeout" in result.message
    assert checkpoint == 5


def test_malformed_event_blocks(config):
    bad = make_log(105, 1)
    bad["data"] = "0x1234"
    result, checkpoint = run(config, 100, FakeProvider(110, [bad]), FakeBeacon(), NOW_MS)
    assert not result.can_execute
    assert result.message.startswith("Decoding failed")
    assert checkpoint == 100


def test_beacon_failure_leaves_store_untouched(config):
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "100"})
    provider = FakeProvider(102, [make_log(101, 1)])
    result = run_with_store(config, store, provider, FakeBeacon(fail=True), NOW_MS)
    assert not result.can_execute
    assert store.writes == 0


def test_success_writes_checkpoint_once(config):
    store = MemoryCheckpointStore()
    provider = FakeProvider(1000)
    result = run_with_store(config, store, provider, FakeBeacon(), NOW_MS)
    assert result.can_execute
    assert store.writes == 1
    # no checkpoint: starts default_lookback blocks back, 5 windows of 100
    assert store.get(CHECKPOINT_KEY) == str(1000 - 700 + 500)


def test_corrupt_checkpoint_blocks(config):
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "not-a-number"})
    result = run_with_store(config, store, FakeProvider(10), FakeBeacon(), NOW_MS)
    assert not result.can_execute
    assert store.writes == 0


def test_chain_id_from_provider_when_not_configured(config):
    config.chain_id = None
    provider = FakeProvider(102, [make_log(101, 3, round_number=8)], chain_id=10)
    result, _ = run(config, 100, provider, FakeBeacon(), NOW_MS)
    f = result.fulfillments[0]
    assert f.seed == derive_seed(f.beacon.randomness_int, CONSUMER, 10, 3)


def test_executor_loop_and_status(config):
    provider = FakeProvider(300, [make_log(150, 1)])
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "100"})
    executor = Executor(config, provider, FakeBeacon(), store)
    results = []
    assert executor.run_loop(interval=0, count=2, on_result=results.append) == 2
    assert [len(r.calls) for r in results] == [1, 0]
    status = executor.status()
    assert status["checkpoint"] == 300
    assert status["backlog"] == 0
    assert status["max_blocks_per_run"] == 500


class RawLogsProvider(FakeProvider):
    """Hands back its logs untouched for the window holding block 101."""

    def get_logs(self, params):
        self.queries.append(params)
        if params["fromBlock"] <= 101 <= params["toBlock"]:
            return list(self.logs)
        return []


def test_requests_fulfilled_in_block_and_log_order(config):
    logs = [make_log(101, 3, log_index=2), make_log(101, 1, log_index=0), make_log(101, 2, log_index=1)]
    result, _ = run(config, 100, RawLogsProvider(102, logs), FakeBeacon(), NOW_MS)
    assert [f.request.request_id for f in result.fulfillments] == [1, 2, 3]


def test_log_without_block_number_blocks(config):
    bad = make_log(101, 2)
    bad["blockNumber"] = None
    provider = RawLogsProvider(102, [make_log(101, 1), bad])
    result, checkpoint = run(config, 100, provider, FakeBeacon(), NOW_MS)
    assert not result.can_execute
    assert result.message.startswith("Decoding failed")
    assert checkpoint == 100


def test_each_invocation_starts_with_fresh_beacon_cache(config):
    beacon = FakeBeacon()
    store = MemoryCheckpointStore({CHECKPOINT_KEY: "100"})
    executor = Executor(config, FakeProvider(100), beacon, store)
    executor.run_loop(interval=0, count=3)
    assert beacon.resets == 3
