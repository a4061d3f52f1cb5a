"""
Progress summary tests — gateway routing and retries, assistant fallbacks,
and the summary endpoint.
"""

from datetime import date

import pytest

from sitetrack.ai.assistants.progress_summary import (
    FALLBACK_MESSAGE,
    NO_REPORTS_MESSAGE,
    ProgressSummaryAssistant,
)
from sitetrack.ai.gateway import LLMGateway, LLMProvider, LocalStubProvider

PROJECT = {
    "id": "p1",
    "name": "Alpha",
    "constructionStartDate": "01/01/2025",
    "plannedAcceptanceDate": "31/12/2025",
}
REPORTS = [
    {"date": "05/03/2025", "tasks": "Steel framing"},
    {"date": "01/03/2025", "tasks": "Poured foundation"},
]


class _FlakyProvider(LLMProvider):
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def chat(self, messages, model, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("quota exceeded")
        return {"content": "All good", "prompt_tokens": 1, "completion_tokens": 1, "model": model}


class _StaticGateway:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.messages = None

    def chat(self, messages, **kwargs):
        self.messages = messages
        if self.error:
            raise self.error
        return {"content": self.content}


class TestGateway:
    def test_gemini_without_key_falls_back_to_stub(self):
        gw = LLMGateway(api_key=None, default_model="gemini-2.5-flash")
        result = gw.chat([{"role": "user", "content": "Tasks: a\nTasks: b"}])
        assert result["provider"] == "local"
        assert "2 report(s)" in result["content"]

    def test_retries_then_succeeds(self):
        gw = LLMGateway(backoff_base=0)
        flaky = _FlakyProvider(failures=2)
        gw._providers["local"] = flaky
        result = gw.chat([{"role": "user", "content": "x"}], model="local-stub")
        assert result["content"] == "All good"
        assert flaky.calls == 3

    def test_gives_up_after_max_retries(self):
        gw = LLMGateway(backoff_base=0)
        gw._providers["local"] = _FlakyProvider(failures=10)
        with pytest.raises(RuntimeError, match="after 2 attempts"):
            gw.chat([{"role": "user", "content": "x"}], model="local-stub", max_retries=2)


class TestAssistant:
    def test_no_reports(self):
        assistant = ProgressSummaryAssistant(_StaticGateway("unused"))
        assert assistant.summarize(PROJECT, []) == NO_REPORTS_MESSAGE

    def test_prompt_carries_context_in_given_order(self):
        gateway = _StaticGateway("Summary text")
        assistant = ProgressSummaryAssistant(gateway, language="English")
        assert assistant.summarize(PROJECT, REPORTS, today=date(2025, 3, 10)) == "Summary text"

        prompt = gateway.messages[0]["content"]
        assert 'Project Name: "Alpha"' in prompt
        assert "Start 01/01/2025, Planned End 31/12/2025" in prompt
        assert "Today's Date: 10/03/2025" in prompt
        assert "must be in English" in prompt
        assert prompt.index("Steel framing") < prompt.index("Poured foundation")

    def test_gateway_failure_returns_fallback(self):
        assistant = ProgressSummaryAssistant(_StaticGateway(error=RuntimeError("quota")))
        assert assistant.summarize(PROJECT, REPORTS) == FALLBACK_MESSAGE

    def test_empty_content_returns_fallback(self):
        assistant = ProgressSummaryAssistant(_StaticGateway("   "))
        assert assistant.summarize(PROJECT, REPORTS) == FALLBACK_MESSAGE

    def test_missing_gateway_returns_fallback(self):
        assert ProgressSummaryAssistant(None).summarize(PROJECT, REPORTS) == FALLBACK_MESSAGE

    def test_local_stub_end_to_end(self):
        assistant = ProgressSummaryAssistant(LLMGateway(backoff_base=0))
        text = assistant.summarize(PROJECT, REPORTS)
        assert "2 report(s)" in text
        assert isinstance(LocalStubProvider().chat([], "x")["content"], str)


class TestSummaryEndpoint:
    def test_summary_for_visible_project(self, client, make_project, make_report, pm, auth_header):
        project = make_project("Alpha", managers=["pm1"])
        make_report(pm, project.id)
        res = client.post(f"/api/v1/projects/{project.id}/summary", headers=auth_header("pm1"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["projectId"] == project.id
        assert "1 report(s)" in body["summary"]

    def test_no_reports_message(self, client, make_project, admin, auth_header):
        project = make_project("Alpha")
        res = client.post(f"/api/v1/projects/{project.id}/summary", headers=auth_header("admin1"))
        assert res.get_json()["summary"] == NO_REPORTS_MESSAGE

    def test_hidden_project_is_not_found(self, client, make_project, ls, auth_header):
        project = make_project("Alpha")
        res = client.post(f"/api/v1/projects/{project.id}/summary", headers=auth_header("ls1"))
        assert res.status_code == 404
