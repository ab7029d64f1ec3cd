import asyncio

import pytest

from contract_monitor.config.monitor_config import MonitorConfig
from contract_monitor.models.data_types import PollOutcome, PollState
from contract_monitor.processors.block_poller import BlockPoller
from contract_monitor.tests.fakes import (
    SENDER_NONCE0_ADDRESS, SENDER_NONCE1_ADDRESS, TEST_CHAIN, FakeRPCManager, FakeSleep,
    creation_tx, make_block, transfer_tx
)

CONFIG = MonitorConfig(
    block_pause=1.0,
    block_pause_factor=2.0,
    block_pause_upper_limit=8.0,
    block_pause_lower_limit=0.25,
    initial_bytecode_tries=3,
)


def _make_poller(rpc, start=100, delay=1.0, on_candidate=None, sleep=None):
    state = PollState(next_block_height=start, current_poll_delay=delay, running=True)
    candidates = []
    poller = BlockPoller(
        TEST_CHAIN, rpc, CONFIG, state,
        on_candidate if on_candidate is not None else candidates.append,
        sleep=sleep or FakeSleep(),
    )
    return poller, state, candidates


def test_misses_grow_delay_geometrically_until_upper_limit():
    rpc = FakeRPCManager()
    poller, state, _ = _make_poller(rpc)

    async def run():
        delays = []
        for _ in range(5):
            assert await poller.poll_next() is PollOutcome.NOT_MINED
            delays.append(state.current_poll_delay)
        return delays

    delays = asyncio.run(run())
    assert delays == pytest.approx([2.0, 4.0, 8.0, 8.0, 8.0])
    assert state.next_block_height == 100
    assert rpc.block_requests == [100] * 5


def test_found_blocks_shrink_delay_until_lower_limit():
    rpc = FakeRPCManager(blocks={h: [make_block(h)] for h in range(100, 107)})
    poller, state, _ = _make_poller(rpc, delay=8.0)

    async def run():
        delays = []
        for _ in range(7):
            assert await poller.poll_next() is PollOutcome.FOUND
            delays.append(state.current_poll_delay)
        return delays

    delays = asyncio.run(run())
    assert delays == pytest.approx([4.0, 2.0, 1.0, 0.5, 0.25, 0.25, 0.25])
    assert state.next_block_height == 107
    assert poller.blocks_processed == 7


def test_height_advances_only_on_found_block():
    rpc = FakeRPCManager(blocks={
        100: [None, RuntimeError("rpc down"), make_block(100)],
        101: [make_block(101)],
    })
    poller, state, _ = _make_poller(rpc)

    async def run():
        outcomes = []
        heights = []
        for _ in range(5):
            outcomes.append(await poller.poll_next())
            heights.append(state.next_block_height)
        return outcomes, heights

    outcomes, heights = asyncio.run(run())
    assert outcomes == [PollOutcome.NOT_MINED, PollOutcome.FAILED, PollOutcome.FOUND,
                        PollOutcome.FOUND, PollOutcome.NOT_MINED]
    assert heights == [100, 100, 101, 102, 102]
    assert rpc.block_requests == [100, 100, 100, 101, 102]


def test_provider_failure_leaves_delay_unchanged():
    rpc = FakeRPCManager(blocks={100: [RuntimeError("timeout")]})
    poller, state, _ = _make_poller(rpc, delay=3.0)

    assert asyncio.run(poller.poll_next()) is PollOutcome.FAILED
    assert state.current_poll_delay == 3.0
    assert state.next_block_height == 100


def test_scan_block_yields_creation_transactions_in_order():
    block = make_block(100, [
        creation_tx(nonce=0),
        transfer_tx(),
        dict(creation_tx(nonce=1), to=""),
    ])
    rpc = FakeRPCManager(blocks={100: [block]})
    poller, state, candidates = _make_poller(rpc)

    assert asyncio.run(poller.poll_next()) is PollOutcome.FOUND
    assert [c.address.lower() for c in candidates] == [SENDER_NONCE0_ADDRESS, SENDER_NONCE1_ADDRESS]
    assert all(c.retries_remaining == 3 for c in candidates)
    assert all(c.block_number == 100 for c in candidates)
    assert candidates[0].tx_hash == "0x" + "01" * 32
    assert poller.contracts_found == 2


def test_malformed_transaction_is_a_block_failure():
    bad_tx = {'to': None, 'hash': b"\x03" * 32}  # 缺少 from / nonce
    rpc = FakeRPCManager(blocks={100: [make_block(100, [bad_tx])]})
    poller, state, candidates = _make_poller(rpc, delay=2.0)

    assert asyncio.run(poller.poll_next()) is PollOutcome.FAILED
    assert state.next_block_height == 100
    assert state.current_poll_delay == 2.0
    assert candidates == []


def test_candidate_callback_error_does_not_stop_polling():
    def explode(candidate):
        raise RuntimeError("dispatch failed")

    rpc = FakeRPCManager(blocks={100: [make_block(100, [creation_tx()])]})
    poller, state, _ = _make_poller(rpc, on_candidate=explode)

    assert asyncio.run(poller.poll_next()) is PollOutcome.FOUND
    assert state.next_block_height == 101


def test_run_sleeps_current_delay_and_stops_when_flag_cleared():
    rpc = FakeRPCManager(blocks={100: [make_block(100)], 101: [make_block(101)]})
    state_holder = {}

    def stop_after_three(count):
        if count == 3:
            state_holder['state'].running = False

    sleep = FakeSleep(on_sleep=stop_after_three)
    poller, state, _ = _make_poller(rpc, delay=1.0, sleep=sleep)
    state_holder['state'] = state

    asyncio.run(poller.run())

    # 101 之后未出块：两次加速后一次退避
    assert sleep.delays == pytest.approx([0.5, 0.25, 0.5])
    assert rpc.block_requests == [100, 101, 102]
    assert state.next_block_height == 102


def test_run_does_nothing_when_not_running():
    rpc = FakeRPCManager()
    poller, state, _ = _make_poller(rpc)
    state.running = False

    asyncio.run(poller.run())
    assert rpc.block_requests == []
