from __future__ import annotations

from typing import Sequence

from tiles7800.catalog import EncodedTile
from tiles7800.config import EncoderConfig
from tiles7800.modes import MODES
from tiles7800.refiner import RunRefiner, continuous_eligible
from tiles7800.segmenter import Run, RunRole
from tiles7800.store import BlobKind, BlobStore


def _run(indices: Sequence[int], *, start: int = 0, fake: bool = False) -> Run:
    tiles = tuple(
        EncodedTile(
            handle=position,
            name=f"t{index}",
            index=index,
            mode=MODES["160A"],
            palette=0,
            tile_bytes=1,
            entries=(index,),
            fake=fake,
        )
        for position, index in enumerate(indices)
    )
    return Run(row=1, start=start, tiles=tiles, role=RunRole.BACKGROUND)


def _spans(runs: Sequence[Run]) -> list[tuple[int, int]]:
    return [(run.start, run.length) for run in runs]


def test_continuous_eligibility() -> None:
    config = EncoderConfig()

    assert continuous_eligible(_run([4, 5, 6]), config)
    assert not continuous_eligible(_run([4, 5]), config)
    assert not continuous_eligible(_run([4, 6, 7]), config)
    assert not continuous_eligible(_run([4, 5, 6], fake=True), config)
    assert continuous_eligible(_run([4, 5]), EncoderConfig(min_continuous_length=2))


def test_short_runs_are_not_matched_against_the_store() -> None:
    store = BlobStore()
    store.register("seq", (1, 2, 3), BlobKind.INDIRECT)

    assert _spans(RunRefiner(store, EncoderConfig()).refine(_run([9, 1, 2, 3]))) == [(0, 4)]


def test_split_first_cell_when_rest_is_stored() -> None:
    store = BlobStore()
    store.register("seq", (1, 2, 3, 4), BlobKind.INDIRECT)

    pieces = RunRefiner(store, EncoderConfig()).refine(_run([9, 1, 2, 3, 4], start=2))

    assert _spans(pieces) == [(2, 1), (3, 4)]


def test_split_last_cell_when_prefix_is_stored() -> None:
    store = BlobStore()
    store.register("seq", (1, 2, 3, 4), BlobKind.INDIRECT)

    pieces = RunRefiner(store, EncoderConfig()).refine(_run([1, 2, 3, 4, 9]))

    assert _spans(pieces) == [(0, 4), (4, 1)]


def test_remainder_found_in_store_is_kept_whole() -> None:
    store = BlobStore()
    store.register("seq", (9, 1, 2, 3, 4, 5), BlobKind.INDIRECT)

    pieces = RunRefiner(store, EncoderConfig()).refine(_run([8, 9, 1, 2, 3, 4, 5]))

    assert _spans(pieces) == [(0, 1), (1, 6)]


def test_full_match_is_not_split() -> None:
    store = BlobStore()
    store.register("seq", (0, 1, 3, 5, 7, 9), BlobKind.INDIRECT)

    assert _spans(RunRefiner(store, EncoderConfig()).refine(_run([1, 3, 5, 7, 9]))) == [(0, 5)]


def test_matches_of_another_kind_are_ignored() -> None:
    store = BlobStore()
    store.register("pixels", (1, 2, 3, 4), BlobKind.IMMEDIATE, payload=b"\x00" * 4, height=1)

    assert _spans(RunRefiner(store, EncoderConfig()).refine(_run([9, 1, 2, 3, 4]))) == [(0, 5)]


def test_continuous_runs_are_never_split() -> None:
    store = BlobStore()
    store.register("seq", (2, 3, 4, 5), BlobKind.INDIRECT)

    assert _spans(RunRefiner(store, EncoderConfig()).refine(_run([1, 2, 3, 4, 5]))) == [(0, 5)]


def test_short_runs_split_at_stride_breaks() -> None:
    refiner = RunRefiner(BlobStore(), EncoderConfig())

    assert _spans(refiner.refine(_run([10, 11, 20, 21], start=3))) == [(3, 2), (5, 2)]
    assert _spans(refiner.refine(_run([1, 2, 7, 8]))) == [(0, 2), (2, 2)]


def test_stride_split_never_leaves_single_cells() -> None:
    refiner = RunRefiner(BlobStore(), EncoderConfig())

    assert _spans(refiner.refine(_run([5, 4]))) == [(0, 2)]
    assert _spans(refiner.refine(_run([10, 11, 20]))) == [(0, 3)]
