import random
import time
from unittest.mock import patch

import pytest

from assembler import CategoryAssembler, build_category
from errors import FetchFailure, InsufficientClues, RetryLimitExceeded, SamplingExhausted, StaleRun
from jservice import parse_category
from sampling import ConsumedIDRegistry, sample_ids

from conftest import FakeClient, make_category_payload


def short_category(category_id):
    return make_category_payload(category_id, values=(200, 400, 600))


def fail_first(n, bad=short_category):
    state = {"calls": 0}

    def responder(category_id):
        state["calls"] += 1
        if state["calls"] <= n:
            return bad(category_id)
        return make_category_payload(category_id)

    return responder


def assert_board_shape(board, config):
    assert len(board.categories) == config.num_categories
    for category in board.categories:
        assert len(category.clues) == config.num_questions_per_cat
        assert len({c.question for c in category.clues}) == config.num_questions_per_cat
        assert len({c.source_id for c in category.clues}) == config.num_questions_per_cat
    ids = board.source_ids
    assert len(set(ids)) == len(ids)


class TestBuildCategory:
    def test_sanitizes_and_orders_rows(self, config, rng):
        payload = make_category_payload(12, values=(1000, 800, 600, 400, 200), title="<i>potent</i> potables")
        payload["clues"][0]["answer"] = "<b>it\\'s</b>"
        category = build_category(parse_category(payload), config, rng)
        assert category.title == "POTENT POTABLES"
        assert [c.value for c in category.clues] == [200, 400, 600, 800, 1000]
        assert category.clues[-1].answer == "IT'S"
        assert category.source_id == 12

    def test_short_category_rejected_before_bucketing(self, config, rng):
        raw = parse_category(short_category(3))
        assert raw.clues_count == 3
        with patch("assembler.bucket") as bucket_mock, patch("assembler.assign_rows") as rows_mock:
            with pytest.raises(InsufficientClues):
                build_category(raw, config, rng)
        bucket_mock.assert_not_called()
        rows_mock.assert_not_called()

    def test_too_few_valid_clues_rejected(self, config, rng):
        payload = make_category_payload(4)
        payload["clues"][1]["question"] = ""
        payload["clues"][2]["invalid_count"] = 1
        with pytest.raises(InsufficientClues):
            build_category(parse_category(payload), config, rng)

    def test_unfillable_rows_rejected(self, config, rng):
        payload = make_category_payload(4, values=(1000, 1000, 1000, 1000, 1000))
        with pytest.raises(InsufficientClues):
            build_category(parse_category(payload), config, rng)


class TestAssemble:
    def test_all_valid_builds_in_one_pass(self, config, rng):
        client = FakeClient()
        registry = ConsumedIDRegistry()
        assembler = CategoryAssembler(client, registry, config=config, rng=rng)

        board = assembler.assemble()

        assert_board_shape(board, config)
        assert len(client.calls) == 6
        assert assembler.stats.passes == 1
        assert registry.snapshot() == frozenset(board.source_ids)

    def test_two_rejections_backfilled_with_exactly_two_fetches(self, config, rng):
        client = FakeClient(fail_first(2))
        registry = ConsumedIDRegistry()
        assembler = CategoryAssembler(client, registry, config=config, rng=rng)

        board = assembler.assemble()

        assert_board_shape(board, config)
        assert len(client.calls) == 8
        assert assembler.stats.passes == 2
        assert len(assembler.stats.rejected) == 2
        rejected_ids = {o.category_id for o in assembler.stats.rejected}
        assert rejected_ids == set(client.calls[:2])
        assert not (rejected_ids & set(registry.snapshot()))

    def test_fetch_failures_are_backfilled(self, config, rng):
        client = FakeClient(fail_first(3, bad=lambda cid: FetchFailure(cid, "boom")))
        board = CategoryAssembler(client, ConsumedIDRegistry(), config=config, rng=rng).assemble()
        assert_board_shape(board, config)
        assert len(client.calls) == 9

    def test_registry_ids_are_never_resampled(self, config, rng):
        cfg = config.with_overrides(num_api_categories=8)
        registry = ConsumedIDRegistry([1, 2])
        board = CategoryAssembler(FakeClient(), registry, config=cfg, rng=rng).assemble()
        assert sorted(board.source_ids) == [3, 4, 5, 6, 7, 8]
        assert len(registry) == 8

    def test_exhausted_id_space_is_fatal(self, config, rng):
        cfg = config.with_overrides(num_api_categories=4)
        with pytest.raises(SamplingExhausted):
            CategoryAssembler(FakeClient(), ConsumedIDRegistry(), config=cfg, rng=rng).assemble()

    def test_retry_cap_is_fatal(self, config, rng):
        cfg = config.with_overrides(max_fetch_attempts=12)
        client = FakeClient(lambda cid: FetchFailure(cid, "down"))
        with pytest.raises(RetryLimitExceeded):
            CategoryAssembler(client, ConsumedIDRegistry(), config=cfg, rng=rng).assemble()
        assert len(client.calls) == 12

    def test_excluding_rejected_ids_never_refetches(self, config, rng):
        cfg = config.with_overrides(num_api_categories=12, num_categories=3, exclude_rejected_ids=True)
        client = FakeClient(lambda cid: short_category(cid) if cid % 2 else make_category_payload(cid))
        board = CategoryAssembler(client, ConsumedIDRegistry(), config=cfg, rng=rng).assemble()
        assert all(cid % 2 == 0 for cid in board.source_ids)
        assert len(client.calls) == len(set(client.calls))

    def test_stale_run_writes_nothing(self, config, rng):
        registry = ConsumedIDRegistry()
        assembler = CategoryAssembler(FakeClient(), registry, config=config, rng=rng)
        with pytest.raises(StaleRun):
            assembler.assemble(is_current=lambda: False)
        assert len(registry) == 0

    def test_accepted_ids_wait_for_commit(self, config, rng):
        client = FakeClient(fail_first(2))
        registry = ConsumedIDRegistry()
        seen = []

        def commit(board):
            seen.append(len(registry))
            raise StaleRun("superseded at publish")

        assembler = CategoryAssembler(client, registry, config=config, rng=rng)
        with pytest.raises(StaleRun):
            assembler.assemble(commit=commit)
        assert seen == [0]
        assert len(registry) == 0

    def test_default_commit_registers_board_ids(self, config, rng):
        registry = ConsumedIDRegistry()
        assembler = CategoryAssembler(FakeClient(), registry, config=config, rng=rng)
        board = assembler.assemble()
        assert registry.snapshot() == frozenset(board.source_ids)

    def test_parallel_fetch_keeps_slot_order(self, config):
        cfg = config.with_overrides(fetch_workers=6)
        jitter = random.Random(99)
        delays = {}

        def slow(category_id):
            time.sleep(delays.setdefault(category_id, jitter.random() * 0.02))
            return make_category_payload(category_id)

        expected = sample_ids(6, cfg.num_api_categories, frozenset(), rng=random.Random(5))
        board = CategoryAssembler(FakeClient(slow), ConsumedIDRegistry(), config=cfg, rng=random.Random(5)).assemble()
        assert board.source_ids == expected
