"""Story generation handler."""

from datetime import datetime, timezone

from jobscheduler.handlers.base import BaseHandler
from jobscheduler.schemas.jobs import StoryMetadata, StoryPayload, StoryResult


def build_story_prompt(payload: StoryPayload) -> str:
    """Guardrails are passed through to the model, not enforced on the output."""
    return f"""
Create an engaging {payload.style} story based on the following prompt.
Keep it under {payload.character_limit} characters and ensure it's appropriate for all audiences.
Focus on positive themes and ethical storytelling.

Prompt: {payload.prompt}

Story:"""


class StoryGenerationHandler(BaseHandler):
    """Handler for story generation jobs."""

    payload_model = StoryPayload

    async def _run(self, payload: StoryPayload) -> StoryResult:
        content = await self.chain.complete(build_story_prompt(payload))

        return StoryResult(
            content=content,
            metadata=StoryMetadata(
                character_count=len(content),
                style=payload.style,
                generated_at=datetime.now(timezone.utc),
            ),
        )
