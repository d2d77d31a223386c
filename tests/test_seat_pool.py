"""
Tests for credential assignment, seat pickers, and dataset loading.
"""

import asyncio
import json
import random
from collections import Counter

import pytest

from holdrace.core.config import SeatPickMode
from holdrace.core.exceptions import DatasetError, SetupFatal
from holdrace.infrastructure.datasets import load_seat_ids, load_tokens, parse_seat_json, parse_tokens_csv
from holdrace.services.interfaces import RandomSeatPicker, RoundRobinSeatPicker
from holdrace.services.picker_factory import get_seat_picker
from holdrace.services.seat_pool import CredentialSeatPool


def test_credentials_wrap_modulo_pool_size():
    """Actor indices 1..6 over [t1, t2, t3] map to t1, t2, t3, t1, t2, t3."""
    pool = CredentialSeatPool(["t1", "t2", "t3"], [30001])

    tokens = [pool.credential_for(i).token for i in range(1, 7)]
    assert tokens == ["t1", "t2", "t3", "t1", "t2", "t3"]


def test_device_id_follows_token_slot():
    pool = CredentialSeatPool(["t1", "t2"], [30001], device_prefix="Load")

    assert pool.credential_for(1).device_id == "Load-1"
    assert pool.credential_for(2).device_id == "Load-2"
    assert pool.credential_for(3).device_id == "Load-1"


def test_credential_for_rejects_zero_index():
    pool = CredentialSeatPool(["t1"], [30001])
    with pytest.raises(ValueError):
        pool.credential_for(0)


def test_empty_pools_are_fatal():
    with pytest.raises(DatasetError):
        CredentialSeatPool([], [30001])
    with pytest.raises(SetupFatal):
        CredentialSeatPool(["t1"], [])


def test_round_robin_is_balanced_under_concurrency():
    """M picks over K seats select each seat floor(M/K) or ceil(M/K) times."""
    seats = [1, 2, 3, 4, 5, 6, 7]
    picker = RoundRobinSeatPicker(seats)
    total = 100

    async def pick_all():
        async def one():
            await asyncio.sleep(0)
            return picker.pick()
        return await asyncio.gather(*(one() for _ in range(total)))

    counts = Counter(asyncio.run(pick_all()))
    assert set(counts) == set(seats)
    assert set(counts.values()) <= {total // len(seats), -(-total // len(seats))}
    assert picker.cursor == total


def test_round_robin_walks_in_order():
    picker = RoundRobinSeatPicker([10, 20, 30])
    assert [picker.pick() for _ in range(4)] == [10, 20, 30, 10]
    assert picker.pick_many(3) == [20, 30, 10]
    assert picker.cursor == 7


def test_random_picker_stays_in_pool():
    picker = RandomSeatPicker([5, 6, 7], rng=random.Random(42))
    picks = [picker.pick() for _ in range(200)]
    assert set(picks) <= {5, 6, 7}
    assert len(set(picks)) == 3


def test_factory_selects_policy():
    assert isinstance(get_seat_picker(SeatPickMode.ROUND_ROBIN, [1]), RoundRobinSeatPicker)
    assert isinstance(get_seat_picker(SeatPickMode.RANDOM, [1]), RandomSeatPicker)


def test_parse_tokens_csv_skips_blank_rows():
    text = "userId,token\n1,Bearer aaa\n2,\n3, Bearer ccc \n"
    assert parse_tokens_csv(text) == ("Bearer aaa", "Bearer ccc")


@pytest.mark.parametrize(
    "text",
    [
        "",
        "userId,token\n",
        "userId,token\n1,\n",
        "userId,jwt\n1,abc\n",
    ],
)
def test_parse_tokens_csv_rejects_unusable_files(text):
    with pytest.raises(DatasetError):
        parse_tokens_csv(text)


def test_parse_seat_json():
    assert parse_seat_json('{"performanceSeatIds": [30001, 30002]}') == (30001, 30002)


@pytest.mark.parametrize(
    "text",
    [
        '{"performanceSeatIds": []}',
        '{"seats": [1, 2]}',
        '{"performanceSeatIds": ["a"]}',
        "not json",
    ],
)
def test_parse_seat_json_rejects_unusable_files(text):
    with pytest.raises(DatasetError):
        parse_seat_json(text)


def test_from_config_loads_both_files(tmp_path, make_config):
    token_csv = tmp_path / "tokens.csv"
    token_csv.write_text("token\nt1\nt2\n")
    seat_json = tmp_path / "seat_ids.json"
    seat_json.write_text(json.dumps({"performanceSeatIds": [7, 8, 9]}))

    config = make_config(token_csv=str(token_csv), seat_json=str(seat_json), device_prefix="D")
    pool = CredentialSeatPool.from_config(config)

    assert pool.tokens == ("t1", "t2")
    assert pool.seat_ids == (7, 8, 9)
    assert isinstance(pool.picker, RoundRobinSeatPicker)
    assert pool.next_seats(2) == [7, 8]
    assert pool.next_seats(2) == [9, 7]


def test_missing_files_are_fatal(tmp_path):
    with pytest.raises(DatasetError):
        load_tokens(str(tmp_path / "nope.csv"))
    with pytest.raises(DatasetError):
        load_seat_ids(str(tmp_path / "nope.json"))


@pytest.mark.parametrize("mode", [SeatPickMode.RANDOM, SeatPickMode.ROUND_ROBIN])
def test_multi_seat_picks_never_repeat_a_seat(mode):
    seats = [30001, 30002, 30003]
    picker = get_seat_picker(mode, seats)

    for count in (2, 3):
        for _ in range(50):
            picks = picker.pick_many(count)
            assert len(picks) == count
            assert len(set(picks)) == count
            assert set(picks) <= set(seats)


def test_random_multi_seat_pick_over_two_seats_takes_both():
    picker = RandomSeatPicker([30001, 30002], rng=random.Random(7))
    for _ in range(20):
        assert sorted(picker.pick_many(2)) == [30001, 30002]


def test_round_robin_multi_seat_picks_stay_together_under_concurrency():
    """Each request gets consecutive slots even when many actors pick at once."""
    seats = [1, 2, 3, 4]
    picker = RoundRobinSeatPicker(seats)

    async def pick_all():
        async def one():
            await asyncio.sleep(0)
            return picker.pick_many(2)
        return await asyncio.gather(*(one() for _ in range(40)))

    for picks in asyncio.run(pick_all()):
        assert picks in ([1, 2], [3, 4])
    assert picker.cursor == 80


@pytest.mark.parametrize("mode", [SeatPickMode.RANDOM, SeatPickMode.ROUND_ROBIN])
def test_picking_more_seats_than_the_pool_is_rejected(mode):
    picker = get_seat_picker(mode, [30001])
    with pytest.raises(ValueError):
        picker.pick_many(2)


def test_pool_rejects_seats_per_hold_larger_than_pool():
    with pytest.raises(DatasetError):
        CredentialSeatPool(["t1"], [30001, 30002], seats_per_hold=3)


def test_from_config_rejects_seats_per_hold_larger_than_pool(tmp_path, make_config):
    token_csv = tmp_path / "tokens.csv"
    token_csv.write_text("token\nt1\n")
    seat_json = tmp_path / "seat_ids.json"
    seat_json.write_text(json.dumps({"performanceSeatIds": [30001]}))

    config = make_config(token_csv=str(token_csv), seat_json=str(seat_json), seats_per_hold=2)
    with pytest.raises(DatasetError):
        CredentialSeatPool.from_config(config)


def test_duplicate_seat_ids_in_dataset_are_rejected():
    with pytest.raises(DatasetError):
        parse_seat_json('{"performanceSeatIds": [30001, 30001]}')
