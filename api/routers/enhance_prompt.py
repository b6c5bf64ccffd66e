import logging
import os

import logfire
from fastapi import APIRouter
from pydantic_ai import Agent, RunContext

from errors import ApiError
from models.prompt_models import EnhancedPrompt, EnhancePromptRequest, EnhancePromptResponse, PromptEnhancerDeps

logger = logging.getLogger("routers.enhance_prompt")

router = APIRouter()

PROMPT_ENHANCER_MODEL = os.getenv("PROMPT_ENHANCER_MODEL", "openai:gpt-4o-mini")

CONTEXT_GUIDANCE = {
    "chat": (
        "The prompt is a chat message. Make it clear and specific, state the expected format of the answer, "
        "and keep the user's intent and tone."
    ),
    "image-edit": (
        "The prompt describes an edit to an existing image. Name exactly what should change and what must stay "
        "the same (subject, composition, lighting). Use concrete visual language."
    ),
    "video": (
        "The prompt describes a short video clip. Describe the subject, the motion, camera movement, pacing and "
        "mood in a single coherent shot."
    ),
    "audio": (
        "The prompt is text to be spoken aloud. Keep the wording natural for speech and add delivery cues "
        "(tone, pace, emphasis) only where they help."
    ),
    "multi-image": (
        "The prompt combines several input images into one. Refer to the images by position, say which elements "
        "come from which image, and describe how they should be composed."
    ),
}

enhancer_agent = Agent[PromptEnhancerDeps, EnhancedPrompt](
    PROMPT_ENHANCER_MODEL,
    deps_type=PromptEnhancerDeps,
    output_type=EnhancedPrompt,
    instructions=(
        "You rewrite user prompts so a generative model produces better results.\n"
        "Return only the improved prompt in `enhanced_prompt`: no preamble, no quotes, no explanation.\n"
        "Never change what the user is asking for; add detail, structure and precision instead."
    ),
    defer_model_check=True,
)


@enhancer_agent.instructions
def context_instructions(ctx: RunContext[PromptEnhancerDeps]) -> str:
    lines = [
        f"The enhanced prompt will be sent to: {ctx.deps.target_model}.",
        CONTEXT_GUIDANCE.get(ctx.deps.context, CONTEXT_GUIDANCE["chat"]),
    ]
    if ctx.deps.regenerate:
        lines.append("The user asked for another take: write a noticeably different variation from a typical rewrite.")
    return "\n".join(lines)


@router.post("/enhance-prompt", response_model=EnhancePromptResponse, response_model_by_alias=True)
async def enhance_prompt(request: EnhancePromptRequest):
    if not request.prompt or not request.prompt.strip():
        raise ApiError(400, "Prompt is required")

    deps = PromptEnhancerDeps(target_model=request.model, context=request.context, regenerate=request.regenerate)

    with logfire.span("enhance_prompt", target_model=request.model, context=request.context):
        try:
            result = await enhancer_agent.run(request.prompt.strip(), deps=deps)
        except Exception as e:
            logfire.error("Prompt enhancement failed", error=str(e), error_type=type(e).__name__)
            logger.exception("Prompt enhancement failed: %s", e)
            raise ApiError(500, "Failed to enhance prompt", str(e)) from e

    return EnhancePromptResponse(enhanced_prompt=result.output.enhanced_prompt.strip(), model=request.model)
