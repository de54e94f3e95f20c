# audit.py
# Read side of the audit trail: status, timeline, HTML report, artifacts,
# and the post-session summary built from the session's insight events.

import json
from datetime import datetime
from html import escape
from pathlib import Path

from coach_agent.agent import extract_json_object
from coach_agent.llm import ModelProvider
from coach_agent.session import SessionManager
from coach_agent.tasks import TaskStore
from coach_agent.telemetry import JsonlLogger, parse_lines

STATUS_EVENTS = 50
REPORT_VERIFICATIONS = 50
REPORT_LOGS = 100
REPORT_INSIGHTS = 50
LOCAL_ACTIONS = 5
INSIGHTS_PROMPT_CHARS = 8000

LOCAL_SUMMARY = "Session concluded. Key insights captured. See actions below."
LOCAL_RISKS = ["Potential over-talking detected", "Energy dips observed"]

SUMMARY_INSTRUCTIONS = """\
Create a concise post-meeting report from recent insights. Return ONLY JSON with keys: \
summary, risks (array of strings), actions (array of {title, owner?, due?}).
Do not include any sensitive attributes. Keep total under 180 words."""

_REPORT_STYLE = """\
body{font-family:system-ui,Segoe UI,Arial,sans-serif;background:#0b0b0b;color:#e5e5e5;padding:24px}
section{margin-bottom:24px} h1{font-size:20px;margin-bottom:8px} h2{font-size:16px;margin:16px 0 8px}
.box{border:1px solid #333;border-radius:10px;padding:12px;background:#111}
.row{display:flex;gap:8px;align-items:center}
.badge{display:inline-block;padding:2px 8px;border-radius:9999px;background:#222;border:1px solid #333}
.pass{color:#16a34a}.fail{color:#ef4444}"""


class AuditTrail:
    def __init__(self, data_dir: Path, sessions: SessionManager, tasks: TaskStore, logger: JsonlLogger) -> None:
        self.verify_dir = Path(data_dir) / "verify"
        self.sessions = sessions
        self.tasks = tasks
        self.logger = logger

    def status(self) -> dict:
        session = self.sessions.get()
        if session is None:
            return {"active": False}
        data = session.to_json()
        return {
            "active": session.active,
            "id": session.id,
            "startedAt": data["startedAt"],
            "endedAt": data.get("endedAt"),
            "stats": data["stats"],
            "events": data["events"][-STATUS_EVENTS:],
        }

    def verification_steps(self) -> list:
        path = self.verify_dir / "steps.jsonl"
        if not path.exists():
            return []
        lines = [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
        return parse_lines(lines)

    def timeline(self, log_lines: int = 300) -> dict:
        session = self.sessions.get()
        return {
            "session": session.to_json() if session else None,
            "tasks": [task.to_json() for task in self.tasks.list_tasks()],
            "logs": parse_lines(self.logger.read_recent(log_lines)),
            "verifySteps": self.verification_steps(),
        }

    def list_artifacts(self) -> list[dict]:
        if not self.verify_dir.exists():
            return []
        return [
            {"name": p.name, "path": str(p)}
            for p in sorted(self.verify_dir.iterdir())
            if p.name.endswith(".html") or p.name.startswith("run_")
        ]

    def write_report(self) -> Path:
        """Render a self-contained HTML report into verify/ and return its path."""
        timeline = self.timeline(log_lines=200)

        rows = []
        for item in timeline["verifySteps"][-REPORT_VERIFICATIONS:]:
            if not isinstance(item, dict):
                continue
            stamp = datetime.fromtimestamp(item.get("ts", 0) / 1000).strftime("%Y-%m-%d %H:%M:%S")
            verdict = "pass" if item.get("pass") else "fail"
            row = (
                f'<div class="row"><span class="badge">{stamp}</span>'
                f'<span class="badge {verdict}">{verdict.upper()}</span>'
                f'<span>{escape(str(item.get("claim", "")))}</span></div>'
            )
            if item.get("evidence"):
                row += f"<pre>{escape(str(item['evidence']))}</pre>"
            rows.append(row)

        def block(title: str, value: object) -> str:
            return f'<section class="box"><h2>{title}</h2><pre>{escape(json.dumps(value, indent=2))}</pre></section>'

        html = "\n".join([
            '<!doctype html><html><head><meta charset="utf-8"/><title>Coach Agent Audit Report</title>',
            f"<style>{_REPORT_STYLE}</style>",
            "</head><body>",
            "<h1>Coach Agent Audit Report</h1>",
            block("Session", timeline["session"]),
            block("Tasks", timeline["tasks"]),
            '<section class="box"><h2>Verification Steps</h2>' + "".join(rows) + "</section>",
            block("Recent Logs", timeline["logs"][-REPORT_LOGS:]),
            "</body></html>",
        ])

        self.verify_dir.mkdir(parents=True, exist_ok=True)
        path = self.verify_dir / f"audit_{int(datetime.now().timestamp() * 1000)}.html"
        path.write_text(html, encoding="utf-8")
        return path

    # ------------------------------------------------------------------
    # Post-session summary
    # ------------------------------------------------------------------

    def session_report(
        self,
        model: ModelProvider | None,
        preferences: dict | None = None,
        system_instruction: str = "",
    ) -> dict:
        """
        Summarize the session's recent insight events.

        Without a model, or when privacyMode is anything but "cloud", a fixed
        local summary is returned and nothing leaves the machine. Otherwise
        the model is asked for {summary, risks, actions} as JSON.

        Raises LookupError when there is no session, ValueError when the
        model reply holds no JSON object. Model errors propagate.
        """
        session = self.sessions.get()
        if session is None:
            raise LookupError("no_active_session")

        data = session.to_json()
        outline = {
            "sessionId": session.id,
            "startedAt": data["startedAt"],
            "endedAt": data.get("endedAt"),
            "stats": data["stats"],
            "insights": [e.data for e in session.events if e.type == "insight"][-REPORT_INSIGHTS:],
        }

        privacy = (preferences or {}).get("privacyMode") or "cloud"
        if model is None or privacy != "cloud":
            actions = []
            for idx, insight in enumerate(outline["insights"][-LOCAL_ACTIONS:], start=1):
                recommendation = insight.get("action_recommendation") if isinstance(insight, dict) else None
                actions.append({"title": f"{recommendation or 'Follow up'} (#{idx})"})
            return {
                "mode": "local",
                "summary": LOCAL_SUMMARY,
                "risks": list(LOCAL_RISKS),
                "actions": actions,
                "outline": outline,
            }

        insights = json.dumps(outline["insights"], default=str)[:INSIGHTS_PROMPT_CHARS]
        prompt = f"{system_instruction}\n\n{SUMMARY_INSTRUCTIONS}\n\nRecent insights: {insights}"
        parsed = extract_json_object(model.generate(prompt).strip())
        if parsed is None:
            raise ValueError("unparseable_report")
        self.logger.log({"type": "session_report", "insights": len(outline["insights"])})
        return {"mode": "cloud", **parsed, "outline": outline}
