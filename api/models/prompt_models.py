from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, Field

from models import CamelModel

PromptContext = Literal["chat", "image-edit", "video", "audio", "multi-image"]


class EnhancePromptRequest(CamelModel):
    prompt: Optional[str] = None
    model: str = "gemini"  # Model the enhanced prompt is written for
    context: PromptContext = "chat"
    regenerate: bool = False


class EnhancedPrompt(BaseModel):
    """Structured output of the prompt enhancer agent."""

    enhanced_prompt: str = Field(description="The rewritten prompt, ready to send to the target model.")


class EnhancePromptResponse(CamelModel):
    success: bool = True
    enhanced_prompt: str
    model: str


@dataclass
class PromptEnhancerDeps:
    """Per-run dependencies for the enhancer agent."""

    target_model: str
    context: PromptContext
    regenerate: bool = False
