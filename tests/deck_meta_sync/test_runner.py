import asyncio

import pytest

from src.functions.deck_meta_sync.core.datasets import CARD_STATS, DECKS, RANK_STATS
from src.functions.deck_meta_sync.core.db.memory_store import InMemoryDatasetStore
from src.functions.deck_meta_sync.core.db.staging_writer import StagingWriter
from src.functions.deck_meta_sync.core.db.swap import SwapCoordinator
from src.functions.deck_meta_sync.core.db.update_lock import UpdateLock
from src.functions.deck_meta_sync.core.errors import LockContentionError, StagingWriteError
from src.functions.deck_meta_sync.core.orchestration.runner import PipelineRunner, RunnerState

from tests.deck_meta_sync.fixtures import FailingStore, FakeStage, card_stat_rows, no_sleep, rank_rows


def _runner(store, stages_by_mode, **kwargs):
    lock = UpdateLock(store)
    runner = PipelineRunner(
        lock=lock,
        writer=StagingWriter(store),
        swap=SwapCoordinator(store),
        stage_factory=lambda mode: stages_by_mode[mode],
        sleep=no_sleep,
        **kwargs,
    )
    return runner, lock


def _snapshot(store):
    return {name: sorted(map(repr, store.select(name))) for name in store.instances()}


def test_successful_run_promotes_exactly_the_staged_content():
    store = InMemoryDatasetStore()
    store.seed("rank_stats", rank_rows(4, prefix="Old"), RANK_STATS.key_fields)
    store.seed("card_stats", card_stat_rows(3, prefix="Old"), CARD_STATS.key_fields)
    new_a = rank_rows(50)
    new_b = card_stat_rows(30)
    runner, _ = _runner(
        store,
        {"standard": [FakeStage(RANK_STATS, "standard", new_a), FakeStage(CARD_STATS, "standard", new_b)]},
    )

    report = asyncio.run(runner.run(["standard"]))

    assert report.status == "success"
    assert report.promoted == ["rank_stats", "card_stats"]
    assert store.count("rank_stats") == 50
    assert store.count("card_stats") == 30
    assert sorted(row["name"] for row in store.select("rank_stats")) == sorted(r["name"] for r in new_a)
    # Previous live content is kept one generation as backup.
    assert store.count("rank_stats_backup") == 4
    assert store.count("card_stats_backup") == 3
    assert not store.instance_exists("rank_stats_staging")
    assert report.record_counts() == {"rank_stats": 50, "card_stats": 30}


def test_abort_leaves_every_live_dataset_untouched():
    store = FailingStore(fail_on="card_stats_staging")
    store.seed("rank_stats", rank_rows(4, prefix="Old"), RANK_STATS.key_fields)
    store.seed("card_stats", card_stat_rows(3, prefix="Old"), CARD_STATS.key_fields)
    before = _snapshot(store)
    matchup_stage = FakeStage(DECKS, "standard", [])
    runner, lock = _runner(
        store,
        {
            "standard": [
                FakeStage(RANK_STATS, "standard", rank_rows(10)),
                FakeStage(CARD_STATS, "standard", card_stat_rows(5)),
                matchup_stage,
            ]
        },
    )

    with pytest.raises(StagingWriteError):
        asyncio.run(runner.run(["standard"]))

    assert _snapshot(store) == before
    assert matchup_stage.calls == 0
    report = runner.last_report
    assert report.status == "aborted"
    assert report.promoted == []
    assert set(report.cleaned_up) == {"rank_stats", "card_stats"}
    assert lock.state().is_updating is False
    assert runner.state is RunnerState.IDLE


def test_lock_is_held_during_the_run_and_released_after():
    store = InMemoryDatasetStore()
    observed = []
    stage = FakeStage(
        RANK_STATS,
        "standard",
        rank_rows(2),
        on_collect=lambda ctx: observed.append(UpdateLock(store).state().is_updating),
    )
    runner, lock = _runner(store, {"standard": [stage]})

    asyncio.run(runner.run(["standard"]))

    state = lock.state()
    assert observed == [True]
    assert state.is_updating is False
    assert state.unlocked_at >= state.locked_at


def test_lock_is_released_when_a_stage_raises():
    store = InMemoryDatasetStore()
    runner, lock = _runner(
        store, {"standard": [FakeStage(RANK_STATS, "standard", error=RuntimeError("parser bug"))]}
    )

    with pytest.raises(RuntimeError):
        asyncio.run(runner.run(["standard"]))

    state = lock.state()
    assert state.is_updating is False
    assert state.unlocked_at >= state.locked_at


def test_contention_rejects_without_side_effects():
    store = InMemoryDatasetStore()
    store.seed("rank_stats", rank_rows(3, prefix="Old"), RANK_STATS.key_fields)
    holder = UpdateLock(store)
    holder.acquire("other-run")
    locked_at = holder.state().locked_at
    before = _snapshot(store)
    stage = FakeStage(RANK_STATS, "standard", rank_rows(8))
    runner, _ = _runner(store, {"standard": [stage]})

    with pytest.raises(LockContentionError):
        asyncio.run(runner.run(["standard"]))

    assert _snapshot(store) == before
    assert holder.state().locked_at == locked_at
    assert holder.state().is_updating is True
    assert stage.calls == 0
    assert runner.state is RunnerState.IDLE


def test_stage_without_records_keeps_previous_live_data():
    store = InMemoryDatasetStore()
    store.seed("rank_stats", rank_rows(3, prefix="Old"), RANK_STATS.key_fields)
    runner, _ = _runner(
        store,
        {
            "standard": [
                FakeStage(RANK_STATS, "standard", [], failed_targets=["top_legend", "top_10k"]),
                FakeStage(CARD_STATS, "standard", card_stat_rows(2)),
            ]
        },
    )

    report = asyncio.run(runner.run(["standard"]))

    assert report.status == "success"
    assert report.promoted == ["card_stats"]
    assert _snapshot(store)["rank_stats"] == sorted(map(repr, rank_rows(3, prefix="Old")))
    assert not store.instance_exists("rank_stats_backup")
    assert [failure.target for failure in report.failed_targets] == ["top_legend", "top_10k"]
    assert report.failed_targets[0].stage == "standard/rank_stats"
    assert report.stages[0].committed is False


def test_partial_target_failures_still_commit():
    store = InMemoryDatasetStore()
    runner, _ = _runner(
        store,
        {"standard": [FakeStage(RANK_STATS, "standard", rank_rows(5), failed_targets=["diamond_4to1"])]},
    )

    report = asyncio.run(runner.run(["standard"]))

    assert store.count("rank_stats") == 5
    assert report.stages[0].failed == 1
    assert len(report.failed_targets) == 1


def test_modes_run_in_order_and_promote_after_every_stage():
    store = InMemoryDatasetStore()
    promoted_before_wild = []
    wild_stage = FakeStage(
        RANK_STATS,
        "wild",
        rank_rows(2),
        on_collect=lambda ctx: promoted_before_wild.append(store.instance_exists("rank_stats")),
    )
    runner, _ = _runner(
        store,
        {"standard": [FakeStage(RANK_STATS, "standard", rank_rows(3))], "wild": [wild_stage]},
    )

    report = asyncio.run(runner.run(["standard", "wild"]))

    assert promoted_before_wild == [False]
    assert report.promoted == ["rank_stats", "rank_stats_wild"]
    assert store.count("rank_stats_wild") == 2


def test_interrupted_promotion_is_rolled_forward_and_orphans_dropped():
    store = InMemoryDatasetStore()
    store.seed("rank_stats", rank_rows(2, prefix="Old"), RANK_STATS.key_fields)
    store.seed("rank_stats_staging", rank_rows(6, prefix="Finished"), RANK_STATS.key_fields)
    store.seed("card_stats_staging", card_stat_rows(4, prefix="Orphan"), CARD_STATS.key_fields)
    crashed = UpdateLock(store)
    crashed.acquire("crashed")
    crashed.record_pending(["rank_stats"])
    crashed.release()
    seen = []
    runner, lock = _runner(
        store,
        {
            "standard": [
                FakeStage(
                    RANK_STATS,
                    "standard",
                    [],
                    on_collect=lambda ctx: seen.append(sorted(r["name"] for r in store.select("rank_stats"))),
                ),
                FakeStage(CARD_STATS, "standard", []),
            ]
        },
    )

    report = asyncio.run(runner.run(["standard"]))

    assert report.recovered == ["rank_stats"]
    assert report.cleaned_up == ["card_stats"]
    assert seen[0][0].startswith("Finished")
    assert store.count("rank_stats_backup") == 2
    assert not store.instance_exists("card_stats_staging")
    assert lock.pending() == []


def test_references_are_loaded_before_stages():
    class Reference:
        loads = 0

        def ensure_loaded(self):
            Reference.loads += 1

    store = InMemoryDatasetStore()
    runner, _ = _runner(
        store,
        {"standard": [FakeStage(RANK_STATS, "standard", rank_rows(1))]},
        references=[Reference(), Reference()],
    )

    asyncio.run(runner.run(["standard"]))

    assert Reference.loads == 2


def test_unknown_mode_is_rejected_before_locking():
    store = InMemoryDatasetStore()
    runner, lock = _runner(store, {})

    with pytest.raises(ValueError):
        asyncio.run(runner.run(["arena"]))

    assert store.read_lock() is None


def test_run_whose_lock_was_taken_over_does_not_release_it():
    store = InMemoryDatasetStore()
    stage = FakeStage(
        RANK_STATS,
        "standard",
        rank_rows(2),
        on_collect=lambda ctx: store.update_lock({"holder": "rescuer"}),
    )
    runner, lock = _runner(store, {"standard": [stage]})

    asyncio.run(runner.run(["standard"]))

    state = lock.state()
    assert state.is_updating is True
    assert state.holder == "rescuer"
