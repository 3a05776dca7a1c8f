"""
Unit Tests for the PromptSite CLI
Tests for: argument parsing, terminal rendering
"""
import json

import pytest
from rich.console import Console

from cli.main import create_parser
from cli.renderer import SessionRenderer
from promptsite.core.exceptions import UpstreamServiceError, error_response
from promptsite.modules.orchestrator import ChatMessage, EventType, OrchestratorEvent


@pytest.fixture
def console():
    return Console(record=True, width=120, color_system=None)


class TestParser:
    def test_new_command(self):
        args = create_parser().parse_args(["new", "build a todo app", "--user-id", "7", "--chat"])

        assert args.command == "new"
        assert args.prompt == "build a todo app"
        assert args.user_id == "7"
        assert args.chat
        assert args.project_id is None

    def test_change_joins_requirement_words(self):
        args = create_parser().parse_args(["--backend", "claude", "change", "42", "add", "a", "footer"])

        assert args.backend == "claude"
        assert " ".join(args.requirement) == "add a footer"

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["--backend", "openai", "list", "7"])


class TestRenderer:
    @pytest.mark.asyncio
    async def test_status_panel(self, console, session, store):
        store.add(42)
        await session.generate("build a todo app", project_id=42)

        SessionRenderer(console).render_status(session.status())

        output = console.export_text()
        assert "ready" in output
        assert "https://preview.example/42" in output

    def test_failed_message_shows_detail_when_verbose(self, console):
        message = ChatMessage.assistant(
            "Sorry, I encountered an error while applying the changes.",
            success=False,
            error={"code": "PARSE_FAILURE", "message": "item 1 has no content"}
        )

        SessionRenderer(console, verbose=True).render_message(message)

        output = console.export_text()
        assert "Sorry, I encountered an error" in output
        assert "PARSE_FAILURE" in output

    def test_empty_project_list(self, console):
        SessionRenderer(console).render_projects([])
        assert "No projects yet." in console.export_text()

    def test_json_error_payload(self, console):
        error = UpstreamServiceError("build", "HTTP 502", status_code=502)

        SessionRenderer(console).render_json(error_response(error))

        payload = json.loads(console.export_text())
        assert payload["success"] is False
        assert payload["error"]["details"]["status_code"] == 502

    def test_event_json_line(self, console):
        event = OrchestratorEvent(type=EventType.RUN_COMPLETED, project_id="42", data={"preview_url": "https://preview.example/42"})

        SessionRenderer(console, verbose=True).render_event_json(event)

        payload = json.loads(console.export_text())
        assert payload["type"] == "run_completed"
        assert payload["data"]["preview_url"] == "https://preview.example/42"
