"""
Simulated progress tracking for image generations.

Progress is a UI affordance only: it is computed from elapsed wall time
against a per-quality estimate, never from anything the provider reports.
"""
import math
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import logfire

from models.progress_models import ImageGenerationProgress, ImageGenerationStage

MAX_RECORDS = 100

STAGE_RANGES = {
    "initializing": (0, 20),
    "processing": (20, 85),
    "finalizing": (85, 100),
    "completed": (100, 100),
    "failed": (0, 0),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_estimated_total_time(quality: Optional[str] = "standard", is_edit: bool = False) -> float:
    """Rough seconds a generation takes; edits run about half again as long."""
    base_time = 22 if quality == "hd" else 12
    return base_time * 1.5 if is_edit else base_time


def _display_model_name(model: Optional[str]) -> str:
    if model and "gpt-image-1" in model:
        return "GPT-Image-1"
    if model == "flux-kontext-pro":
        return "Flux Kontext Pro"
    if model == "flux-kontext-max":
        return "Flux Kontext Max"
    if model == "flux-dev-ultra-fast":
        return "WaveSpeed AI"
    return "AI model"


def get_stage_message(
    stage: ImageGenerationStage,
    model: Optional[str] = None,
    progress: Optional[int] = None,
    is_edit: bool = False,
) -> str:
    model_name = _display_model_name(model)

    if stage == "initializing":
        return f"Initializing {model_name} for image editing..." if is_edit else f"Initializing {model_name}..."
    if stage == "processing":
        # 0 counts as "no progress yet" and falls through to the last message
        if progress and progress < 30:
            return "Analyzing original image..." if is_edit else "Analyzing prompt..."
        if progress and progress < 50:
            return "Applying edits to image..." if is_edit else "Generating initial concepts..."
        if progress and progress < 70:
            return "Refining edited regions..." if is_edit else "Rendering image details..."
        if progress and progress < 85:
            return "Enhancing image quality..."
        return "Finalizing generation..."
    if stage == "finalizing":
        return "Processing final image..."
    if stage == "completed":
        return "Image edit complete!" if is_edit else "Image generation complete!"
    if stage == "failed":
        return "Generation failed"
    return "Processing..."


def calculate_progress_from_elapsed(
    elapsed_time: float,
    estimated_total: float,
    stage: ImageGenerationStage,
    rng: Optional[random.Random] = None,
) -> int:
    if stage == "completed":
        return 100
    if stage == "failed":
        return 0

    low, high = STAGE_RANGES[stage]
    time_progress = min(elapsed_time / estimated_total, 1) if estimated_total > 0 else 1
    smooth = time_progress * time_progress * (3 - 2 * time_progress)
    calculated = low + smooth * (high - low)

    variance = (rng or random).random() - 0.5
    return math.floor(max(low, min(calculated + variance, high)))


class ImageProgressStore:
    """
    Keyed progress records, one per image id.

    The store never holds more than `max_records` entries; finished records
    are evicted first, oldest first, then the oldest generating ones.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        rng: Optional[random.Random] = None,
        max_records: int = MAX_RECORDS,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self.max_records = max_records
        self._records: Dict[str, ImageGenerationProgress] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, image_id: str) -> bool:
        return image_id in self._records

    def add(
        self,
        image_id: str,
        prompt: str,
        *,
        original_image_id: Optional[str] = None,
        original_image_url: Optional[str] = None,
        quality: Optional[str] = None,
        style: Optional[str] = None,
        size: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ImageGenerationProgress:
        is_edit = bool(original_image_id)
        estimated_total = get_estimated_total_time(quality, is_edit)
        now = self._clock()

        record = ImageGenerationProgress(
            image_id=image_id,
            prompt=prompt,
            original_image_id=original_image_id,
            original_image_url=original_image_url,
            progress=0,
            stage="initializing",
            stage_message=get_stage_message("initializing", model, 0, is_edit),
            status="generating",
            elapsed_time=0,
            estimated_remaining_time=estimated_total,
            estimated_total_time=estimated_total,
            created_at=now,
            last_updated=now,
            quality=quality,
            style=style,
            size=size,
            model=model,
        )
        self._records[image_id] = record
        self._evict()
        logfire.info("Progress record added", image_id=image_id, model=model, is_edit=is_edit)
        return record

    def get(self, image_id: str) -> Optional[ImageGenerationProgress]:
        return self._records.get(image_id)

    def update(self, image_id: str, **updates: Any) -> Optional[ImageGenerationProgress]:
        current = self._records.get(image_id)
        if current is None:
            return None
        updates["last_updated"] = self._clock()
        record = current.model_copy(update=updates)
        self._records[image_id] = record
        return record

    def update_stage(
        self,
        image_id: str,
        stage: ImageGenerationStage,
        message: Optional[str] = None,
    ) -> Optional[ImageGenerationProgress]:
        current = self._records.get(image_id)
        if current is None:
            return None
        is_edit = bool(current.original_image_id)
        stage_message = message or get_stage_message(stage, current.model, current.progress, is_edit)
        return self.update(image_id, stage=stage, stage_message=stage_message)

    def complete(self, image_id: str, generated_image: Dict[str, Any]) -> Optional[ImageGenerationProgress]:
        current = self._records.get(image_id)
        if current is None:
            return None
        now = self._clock()
        return self.update(
            image_id,
            progress=100,
            status="completed",
            stage="completed",
            stage_message=get_stage_message("completed", current.model, 100, bool(current.original_image_id)),
            estimated_remaining_time=0,
            completed_at=now,
            generated_image=generated_image,
        )

    def fail(self, image_id: str, error: str) -> Optional[ImageGenerationProgress]:
        if image_id not in self._records:
            return None
        return self.update(
            image_id,
            status="failed",
            stage="failed",
            stage_message=get_stage_message("failed"),
            error=error,
            completed_at=self._clock(),
        )

    def remove(self, image_id: str) -> bool:
        return self._records.pop(image_id, None) is not None

    def calculate_progress(self, image_id: str) -> Optional[ImageGenerationProgress]:
        """Advance a generating record to the current time and return it."""
        current = self._records.get(image_id)
        if current is None or current.status != "generating":
            return current

        now = self._clock()
        elapsed = math.floor((now - current.created_at).total_seconds())
        progress = calculate_progress_from_elapsed(
            elapsed, current.estimated_total_time, current.stage, self._rng
        )
        remaining = max(0, current.estimated_total_time - elapsed)

        progress_changed = abs((current.progress or 0) - progress) >= 1
        time_changed = abs(current.elapsed_time - elapsed) >= 1
        if not (progress_changed or time_changed):
            return current

        is_edit = bool(current.original_image_id)
        record = current.model_copy(update={
            "elapsed_time": elapsed,
            "progress": min(progress, 100 if current.stage == "completed" else 99),
            "estimated_remaining_time": remaining,
            "stage_message": get_stage_message(current.stage, current.model, progress, is_edit),
            "last_updated": now,
        })
        self._records[image_id] = record
        return record

    def get_all_generating(self) -> List[ImageGenerationProgress]:
        return [r for r in self._records.values() if r.status == "generating"]

    def _evict(self):
        overflow = len(self._records) - self.max_records
        if overflow <= 0:
            return

        by_age = sorted(self._records.values(), key=lambda r: r.created_at)
        finished = [r for r in by_age if r.status != "generating"]
        victims = (finished + [r for r in by_age if r.status == "generating"])[:overflow]
        for record in victims:
            del self._records[record.image_id]
        logfire.info("Progress records evicted", count=len(victims))


# Global store instance shared by the routers
progress_store = ImageProgressStore()


def start_tracking(progress_id: Optional[str], prompt: str, **options: Any) -> Optional[str]:
    """Register a progress record when the caller supplied an id for one."""
    if not progress_id:
        return None
    progress_store.add(progress_id, prompt, **options)
    progress_store.update_stage(progress_id, "processing")
    return progress_id


def complete_tracking(progress_id: Optional[str], generated_image: Dict[str, Any]):
    if progress_id:
        progress_store.complete(progress_id, generated_image)


def fail_tracking(progress_id: Optional[str], error: str):
    if progress_id:
        progress_store.fail(progress_id, error)
