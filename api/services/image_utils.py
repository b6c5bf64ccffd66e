import random
import re
import string
import time
from typing import Dict, Optional

# UI quality (standard/hd) -> gpt-image-1 quality (low/medium/high)
GPT_QUALITY_MAP = {
    "hd": "high",
    "standard": "medium",
}

GPT_IMAGE_SIZES = ("1024x1024", "1536x1024", "1024x1536")

SIZE_TO_ASPECT_RATIO = {
    "1024x1024": "1:1",
    "1792x1024": "16:9",
    "1024x1536": "9:16",
}

PORTRAIT_SIZE = "1024x1536"
PORTRAIT_MODELS = ("flux-kontext-pro", "flux-kontext-max", "gpt-image-1")

_ID_ALPHABET = string.ascii_lowercase + string.digits

_ANALYSIS_PATTERNS = [
    re.compile(r"analyze\s+(the\s+)?upload", re.I),
    re.compile(r"provide\s+a\s+detailed\s+analysis", re.I),
    re.compile(r"reverse\s+engineering\s+analysis", re.I),
    re.compile(r"analyze\s+the\s+visual\s+content", re.I),
    re.compile(r"^please\s+provide\s+a\s+detailed\s+analysis", re.I),
    re.compile(r"images\s+\(\d+\):\s+analyze", re.I),
    re.compile(r"videos\s+\(\d+\):\s+analyze", re.I),
]

_SUBJECTS = r"(image|picture|illustration|artwork|art|photo|drawing)"
_GENERATION_PATTERNS = [
    re.compile(rf"{verb}\s+(a|an|the)?\s*\w*\s*{_SUBJECTS}", re.I)
    for verb in (r"generate", r"create", r"make", r"draw", r"design", r"show\s+me")
] + [
    re.compile(r"(image|picture|illustration|artwork|photo|drawing)\s+of\s+(?!the\s+uploaded)", re.I),
    re.compile(r"visualize", re.I),
    re.compile(r"generate:|create:|draw:|make:", re.I),
]

_PROMPT_PREFIXES = [
    re.compile(r"^(generate|create|make|draw|design|show\s+me)\s+((an|a|the)\s+)?", re.I),
    re.compile(r"^(image|picture|illustration|artwork|photo|drawing)\s+of\s*", re.I),
    re.compile(r"^visualize\s*", re.I),
]


def generate_image_id() -> str:
    """Unique id for a generated image, e.g. `img_1718000000000_k3j9x0a1b2c3`."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=13))
    return f"img_{int(time.time() * 1000)}_{suffix}"


def quality_to_gpt(quality: Optional[str]) -> str:
    return GPT_QUALITY_MAP.get(quality or "", "medium")


def map_edit_size(size: Optional[str]) -> str:
    """Map a requested size to the closest size gpt-image-1 accepts."""
    if size == "1792x1024":
        return "1536x1024"
    if size in GPT_IMAGE_SIZES:
        return size
    return "1024x1024"


def size_to_aspect_ratio(size: Optional[str]) -> str:
    return SIZE_TO_ASPECT_RATIO.get(size or "", "1:1")


def validate_portrait_generation(size: str, model: str, aspect_ratio: Optional[str] = None) -> Dict[str, object]:
    if size == PORTRAIT_SIZE:
        if model not in PORTRAIT_MODELS:
            return {"is_valid": False, "error": f"Model '{model}' does not support portrait size {PORTRAIT_SIZE}"}
        if aspect_ratio and aspect_ratio != "9:16":
            return {"is_valid": False, "error": f"Invalid aspect ratio '{aspect_ratio}' for portrait size {PORTRAIT_SIZE}"}
    return {"is_valid": True, "error": None}


def is_image_generation_request(message: str) -> bool:
    if any(p.search(message) for p in _ANALYSIS_PATTERNS):
        return False
    lower = message.lower()
    return any(p.search(lower) for p in _GENERATION_PATTERNS)


def extract_image_prompt(message: str) -> str:
    prompt = message
    for pattern in _PROMPT_PREFIXES:
        prompt = pattern.sub("", prompt)

    prompt = re.sub(r"^(image|picture|illustration|artwork|photo|drawing)\s*", "", prompt, flags=re.I)
    prompt = re.sub(r"\s+", " ", prompt).strip()

    # Stripping went too far; fall back to the message minus the verb
    if len(prompt) < 3:
        prompt = re.sub(r"^(generate|create|make|draw)\s+((an|a|the)\s+)?", "", message, flags=re.I).strip()
    return prompt


def detect_aspect_ratio(width: int, height: int) -> str:
    """Closest supported video aspect ratio for an image of the given size."""
    if not width or not height:
        return "16:9"

    ratio = width / height
    if ratio >= 1.5:
        return "16:9"
    if 0.8 <= ratio <= 1.2:
        return "1:1"
    if ratio <= 0.7:
        return "9:16"
    return "16:9" if ratio > 1 else "9:16"


def get_image_orientation(width: int, height: int) -> Dict[str, object]:
    """Orientation plus the matching OpenAI image size and video aspect ratio."""
    aspect_ratio = width / height if width and height else 1.0

    if abs(aspect_ratio - 1) < 0.1:
        orientation, image_size, video_ratio = "square", "1024x1024", "1:1"
    elif aspect_ratio > 1:
        orientation, image_size, video_ratio = "landscape", "1536x1024", "16:9"
    else:
        orientation, image_size, video_ratio = "portrait", "1024x1536", "9:16"

    return {
        "width": width,
        "height": height,
        "aspect_ratio": aspect_ratio,
        "orientation": orientation,
        "image_size": image_size,
        "video_aspect_ratio": video_ratio,
    }
