import json
from pathlib import Path

import pytest
from conftest import ScriptedModel, model_reply

from coach_agent.audit import AuditTrail
from coach_agent.config import load_settings
from coach_agent.models import ToolCall
from coach_agent.runner import run_goal


def _audit(engine):
    return AuditTrail(engine.settings.data_dir, engine.sessions, engine.tasks, engine.logger)


# ---------------------------------------------------------------------------
# Goal runner
# ---------------------------------------------------------------------------

def test_run_goal_stops_on_first_final(make_engine):
    engine = make_engine()

    result = run_goal(engine, "plan follow-up", steps=5)

    assert result.steps == 1
    assert result.trace[0]["out"]["final"] == "No-op"
    artifact = json.loads(Path(result.artifact).read_text(encoding="utf-8"))
    assert artifact["goal"] == "plan follow-up"
    kinds = [e.data["kind"] for e in engine.sessions.get().events]
    assert kinds == ["agent.step", "agent.run_step"]


def test_run_goal_runs_every_step_without_final(make_engine):
    model = ScriptedModel(model_reply(thoughts="still thinking"))
    engine = make_engine(model)

    result = run_goal(engine, "prepare for meeting", steps=3, max_tools=9)

    assert result.steps == 3
    assert result.max_tools == 5
    assert len(model.prompts) == 3
    assert '"step_index": 2' in model.prompts[2]


def test_run_goal_clamps_steps(make_engine):
    engine = make_engine(ScriptedModel(model_reply()))
    assert run_goal(engine, "x", steps=0).steps == 1
    assert run_goal(engine, "x", steps=99).steps == 10


def test_run_goal_requires_goal(make_engine):
    with pytest.raises(ValueError, match="missing_goal"):
        run_goal(make_engine(), "   ")


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

def test_status_without_session(make_engine):
    assert _audit(make_engine(start=False)).status() == {"active": False}


def test_status_reports_recent_events(make_engine):
    engine = make_engine()
    for i in range(60):
        engine.sessions.add_event("note", {"i": i})
    status = _audit(engine).status()
    assert status["active"] is True
    assert len(status["events"]) == 50
    assert status["events"][-1]["data"] == {"i": 59}


def test_timeline_collects_everything(make_engine):
    engine = make_engine()
    engine.registry.execute(ToolCall(name="tasks.create", args={"title": "Recap"}))
    engine.registry.execute(ToolCall(name="agent.verify_step", args={"claim": "c", "pass": True}))

    timeline = _audit(engine).timeline()

    assert timeline["session"]["id"] == engine.sessions.get().id
    assert timeline["tasks"][0]["title"] == "Recap"
    assert timeline["verifySteps"][0]["claim"] == "c"
    assert all(entry["type"] == "tool_result" for entry in timeline["logs"])


def test_report_escapes_html_and_is_listed(make_engine):
    engine = make_engine()
    engine.registry.execute(
        ToolCall(name="agent.verify_step", args={"claim": "<script>alert(1)</script>", "pass": False})
    )
    run_goal(engine, "x")

    audit = _audit(engine)
    path = audit.write_report()
    html = path.read_text(encoding="utf-8")

    assert "<script>alert(1)</script>" not in html
    assert "&lt;script&gt;" in html
    assert 'class="badge fail">FAIL' in html
    names = [a["name"] for a in audit.list_artifacts()]
    assert path.name in names
    assert any(n.startswith("run_") for n in names)


# ---------------------------------------------------------------------------
# Post-session summary
# ---------------------------------------------------------------------------

def test_session_report_local_without_model(make_engine):
    engine = make_engine()
    for i in range(7):
        engine.sessions.add_event("insight", {"action_recommendation": f"Ask question {i}"})
    engine.sessions.add_event("insight", "raw text insight")
    engine.sessions.feedback(improved=True)

    report = _audit(engine).session_report(None)

    assert report["mode"] == "local"
    assert report["risks"] == ["Potential over-talking detected", "Energy dips observed"]
    assert [a["title"] for a in report["actions"]] == [
        "Ask question 3 (#1)",
        "Ask question 4 (#2)",
        "Ask question 5 (#3)",
        "Ask question 6 (#4)",
        "Follow up (#5)",
    ]
    assert len(report["outline"]["insights"]) == 8
    assert report["outline"]["stats"] == {"falsePositives": 0, "improvements": 1}


def test_session_report_stays_local_unless_privacy_is_cloud(make_engine):
    engine = make_engine()
    model = ScriptedModel('{"summary": "s"}')

    report = _audit(engine).session_report(model, {"privacyMode": "local"})

    assert report["mode"] == "local"
    assert model.prompts == []


def test_session_report_cloud_uses_model_json(make_engine):
    engine = make_engine()
    engine.sessions.add_event("insight", {"observation": "interrupted twice"})
    engine.sessions.add_event("note", {"text": "not an insight"})
    reply = 'Here you go: {"summary": "Good call.", "risks": ["r1"], "actions": [{"title": "Send recap"}]}'
    model = ScriptedModel(reply)

    report = _audit(engine).session_report(model, {"privacyMode": "cloud"}, system_instruction="ROLE")

    assert report["mode"] == "cloud"
    assert report["summary"] == "Good call."
    assert report["actions"] == [{"title": "Send recap"}]
    assert report["outline"]["insights"] == [{"observation": "interrupted twice"}]
    assert model.prompts[0].startswith("ROLE")
    assert "interrupted twice" in model.prompts[0]
    assert "not an insight" not in model.prompts[0]


def test_session_report_rejects_reply_without_json(make_engine):
    with pytest.raises(ValueError, match="unparseable_report"):
        _audit(make_engine()).session_report(ScriptedModel("no json here"))


def test_session_report_requires_session(make_engine):
    with pytest.raises(LookupError, match="no_active_session"):
        _audit(make_engine(start=False)).session_report(None)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def test_load_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
    monkeypatch.setenv("COACH_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("COACH_MAX_TOOLS_CAP", "3")
    monkeypatch.setenv("COACH_JSON_MODE", "0")

    settings = load_settings()

    assert settings.api_key == "sk-test"
    assert settings.max_tools_cap == 3
    assert settings.json_mode is False
    assert settings.data_path("verify") == tmp_path / "data" / "verify"


def test_missing_api_key_means_demo_mode(monkeypatch):
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    assert load_settings().api_key is None
