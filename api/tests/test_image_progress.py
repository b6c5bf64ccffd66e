import random
from datetime import datetime, timedelta, timezone

import pytest

from services.image_progress import (
    ImageProgressStore,
    calculate_progress_from_elapsed,
    get_estimated_total_time,
    get_stage_message,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class NoVariance:
    def random(self):
        return 0.5


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ImageProgressStore(clock=clock, rng=NoVariance())


def test_estimated_total_time():
    assert get_estimated_total_time("standard") == 12
    assert get_estimated_total_time("hd") == 22
    assert get_estimated_total_time("hd", is_edit=True) == 33
    assert get_estimated_total_time(None, is_edit=True) == 18


def test_progress_curve_within_stage_ranges():
    assert calculate_progress_from_elapsed(6, 12, "initializing", NoVariance()) == 10
    assert calculate_progress_from_elapsed(6, 12, "processing", NoVariance()) == 52
    assert calculate_progress_from_elapsed(60, 12, "finalizing", NoVariance()) == 100
    assert calculate_progress_from_elapsed(5, 12, "completed") == 100
    assert calculate_progress_from_elapsed(5, 12, "failed") == 0


def test_progress_variance_is_clamped():
    rng = random.Random(7)
    for elapsed in range(0, 20):
        value = calculate_progress_from_elapsed(elapsed, 12, "processing", rng)
        assert 20 <= value <= 85


def test_stage_messages():
    assert get_stage_message("initializing", "gpt-image-1") == "Initializing GPT-Image-1..."
    assert get_stage_message("initializing", "flux-kontext-max", is_edit=True) == (
        "Initializing Flux Kontext Max for image editing..."
    )
    assert get_stage_message("processing", progress=25) == "Analyzing prompt..."
    assert get_stage_message("processing", progress=25, is_edit=True) == "Analyzing original image..."
    assert get_stage_message("processing", progress=60) == "Rendering image details..."
    assert get_stage_message("processing", progress=80) == "Enhancing image quality..."
    assert get_stage_message("processing", progress=0) == "Finalizing generation..."
    assert get_stage_message("completed", is_edit=True) == "Image edit complete!"
    assert get_stage_message("failed") == "Generation failed"


def test_add_initializes_record(store):
    record = store.add("img_1", "a fox", quality="hd", model="flux-kontext-pro")

    assert record.status == "generating"
    assert record.stage == "initializing"
    assert record.progress == 0
    assert record.estimated_total_time == 22
    assert record.stage_message == "Initializing Flux Kontext Pro..."


def test_calculate_progress_advances_with_clock(store, clock):
    store.add("img_1", "a fox")
    store.update_stage("img_1", "processing")

    clock.advance(6)
    record = store.calculate_progress("img_1")

    assert record.elapsed_time == 6
    assert record.progress == 52
    assert record.estimated_remaining_time == 6
    assert record.stage_message == "Rendering image details..."
    assert record.last_updated == clock.now


def test_progress_capped_below_100_until_complete(store, clock):
    store.add("img_1", "a fox")
    store.update_stage("img_1", "finalizing")

    clock.advance(30)
    assert store.calculate_progress("img_1").progress == 99

    store.complete("img_1", {"url": "https://x/1.png"})
    record = store.get("img_1")
    assert record.progress == 100
    assert record.status == "completed"
    assert record.estimated_remaining_time == 0
    assert record.generated_image == {"url": "https://x/1.png"}


def test_calculate_progress_skips_when_nothing_moved(store):
    added = store.add("img_1", "a fox")
    assert store.calculate_progress("img_1") is added


def test_calculate_progress_ignores_finished_records(store, clock):
    store.add("img_1", "a fox")
    failed = store.fail("img_1", "boom")

    clock.advance(10)
    assert store.calculate_progress("img_1") is failed
    assert failed.stage_message == "Generation failed"
    assert failed.error == "boom"


def test_update_stage_with_custom_message(store):
    store.add("img_1", "a fox", original_image_id="img_0")
    record = store.update_stage("img_1", "finalizing", "Uploading result...")
    assert record.stage == "finalizing"
    assert record.stage_message == "Uploading result..."


def test_missing_records_are_noops(store):
    assert store.update_stage("nope", "processing") is None
    assert store.complete("nope", {}) is None
    assert store.fail("nope", "x") is None
    assert store.calculate_progress("nope") is None
    assert store.remove("nope") is False


def test_get_all_generating(store):
    store.add("a", "one")
    store.add("b", "two")
    store.complete("b", {"url": "u"})
    assert [r.image_id for r in store.get_all_generating()] == ["a"]


def test_eviction_prefers_finished_then_oldest(clock):
    store = ImageProgressStore(clock=clock, rng=NoVariance(), max_records=3)
    for image_id in ("a", "b", "c"):
        store.add(image_id, image_id)
        clock.advance(1)

    store.complete("b", {"url": "u"})
    store.add("d", "d")
    assert "b" not in store
    assert len(store) == 3

    clock.advance(1)
    store.add("e", "e")
    assert "a" not in store
    assert sorted(r.image_id for r in store.get_all_generating()) == ["c", "d", "e"]
