"""
Site Progress Tracker
Progress Summary Assistant.

Pipeline:
    1. Render the project's daily reports (in the order given) as text
    2. Build the analyst prompt with project name, key dates and today's date
    3. Call the LLM gateway
    4. Any failure degrades to a fixed fallback string, never an exception
"""

import logging
from datetime import date

from sitetrack.utils.helpers import format_dmy

logger = logging.getLogger(__name__)

NO_REPORTS_MESSAGE = "No reports available to generate a summary."
FALLBACK_MESSAGE = "Could not generate summary."

PROMPT_TEMPLATE = """\
As an expert construction project analyst, provide a clear and concise summary \
(around 5-7 lines or a few key bullet points) of the project's progress.

**Project Context:**
- Project Name: "{name}"
- Key Dates: Start {start}, Planned End {end}
- Today's Date: {today}

**Your Task:**
Based on the daily reports, structure your response with these sections:
1. **Overall Assessment:** briefly evaluate the status (on track, behind schedule) against the timeline.
2. **Key Recent Activities:** the most significant accomplishments from the latest reports.
3. **Risks & Points of Attention:** potential issues, blockers or items needing attention. If none, say so.

**Output Format:**
- Use Markdown (bold, headings, lists).
- The entire summary must be in {language}.

**Daily Reports Data:**
---
{reports}
---
"""


def _field(obj, wire: str, attr: str):
    if isinstance(obj, dict):
        return obj.get(wire)
    return getattr(obj, attr, None)


class ProgressSummaryAssistant:
    """Natural-language progress summary for one project."""

    def __init__(self, gateway=None, language: str = "Vietnamese", temperature: float = 0.5):
        self.gateway = gateway
        self.language = language
        self.temperature = temperature

    @staticmethod
    def render_reports(reports) -> str:
        return "\n---\n".join(
            f"Date: {_field(r, 'date', 'date')}\nTasks: {_field(r, 'tasks', 'tasks')}\n"
            for r in reports
        )

    def build_prompt(self, project, reports, today: date | None = None) -> str:
        return PROMPT_TEMPLATE.format(
            name=_field(project, "name", "name"),
            start=_field(project, "constructionStartDate", "construction_start_date"),
            end=_field(project, "plannedAcceptanceDate", "planned_acceptance_date"),
            today=format_dmy(today or date.today()),
            language=self.language,
            reports=self.render_reports(reports),
        )

    def summarize(self, project, reports, today: date | None = None) -> str:
        reports = list(reports or [])
        if not reports:
            return NO_REPORTS_MESSAGE
        if self.gateway is None:
            logger.error("Progress summary requested without an LLM gateway")
            return FALLBACK_MESSAGE

        try:
            result = self.gateway.chat(
                [{"role": "user", "content": self.build_prompt(project, reports, today)}],
                purpose="progress_summary",
                temperature=self.temperature,
            )
            content = (result.get("content") or "").strip()
        except Exception as e:
            logger.error(
                "Progress summary failed for project %s: %s", _field(project, "id", "id"), e,
                exc_info=True,
                extra={"project_id": _field(project, "id", "id"), "event_type": "ai.summary_failed"},
            )
            return FALLBACK_MESSAGE

        return content or FALLBACK_MESSAGE
