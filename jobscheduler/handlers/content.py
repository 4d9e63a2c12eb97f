"""Content analysis handler."""

from datetime import datetime, timezone

from jobscheduler.handlers.base import BaseHandler
from jobscheduler.schemas.jobs import ContentPayload, ContentResult


class ContentAnalysisHandler(BaseHandler):
    """Handler for content analysis jobs."""

    payload_model = ContentPayload

    async def _run(self, payload: ContentPayload) -> ContentResult:
        prompt = f"""
Analyze the following content for {payload.analysis_type}.
Provide a structured analysis with key insights.

Content: {payload.content}

Analysis:"""

        analysis = await self.chain.complete(prompt)

        return ContentResult(
            analysis=analysis,
            analysis_type=payload.analysis_type,
            content_length=len(payload.content),
            analyzed_at=datetime.now(timezone.utc),
        )
