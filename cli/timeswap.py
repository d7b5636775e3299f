#!/usr/bin/env python3
"""TimeSwap TUI — terminal task dashboard powered by Textual."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.widgets import DataTable, Footer, Header, Input, Label, Static

from timeswap.accounts import find_user_by_email
from timeswap.analytics import refresh_analytics
from timeswap.chat import list_chats, send_message
from timeswap.config import Settings, configure_logging
from timeswap.dashboard import build_recommendations, build_summary
from timeswap.errors import TimeSwapError
from timeswap.ranking import energy_level_for, score_task
from timeswap.store import DocumentStore
from timeswap.tasks import list_tasks, optimize_user_tasks, toggle_task
from timeswap.workspace import is_valid_user_id, parse_timestamp


CSS = """
Screen {
    background: $surface;
}

#main-layout {
    height: 1fr;
}

#left-pane {
    width: 3fr;
    min-width: 40;
    border-right: tall $primary-background-darken-2;
    padding: 0 1;
}

#right-pane {
    width: 2fr;
    min-width: 30;
    padding: 0 1;
}

.section-title {
    text-style: bold;
    color: $accent;
    margin: 1 0 0 0;
}

#tasks-table {
    height: 1fr;
}

#analytics-panel, #recommendations {
    padding: 0 1;
}

#chat-log {
    height: 1fr;
    border: round $primary-background-darken-2;
    padding: 0 1;
}

#chat-input {
    dock: bottom;
}
"""

PRIORITY_LABELS = {"urgent": "!!!", "high": "!!", "medium": "!", "low": "·"}
# Textual owns the terminal, so the dashboard logs to a file under the data root.
TUI_LOG_FILE = "timeswap-tui.log"


def resolve_user(store: DocumentStore, ident: str) -> str | None:
    """Accept either a user id or an account email."""
    if is_valid_user_id(ident) and store.user_exists(ident):
        return ident
    profile = find_user_by_email(store, ident)
    return profile.id if profile else None


def _short_deadline(value: str | None, now: datetime) -> str:
    dt = parse_timestamp(value, now.tzinfo)
    if dt is None:
        return ""
    dt = dt.astimezone(now.tzinfo)
    if dt.date() == now.date():
        return dt.strftime("today %H:%M")
    return dt.strftime("%b %d %H:%M")


class TimeSwapApp(App):
    """TimeSwap — ranked tasks, analytics and the chat assistant in a terminal."""

    TITLE = "TimeSwap"
    CSS = CSS
    AUTO_FOCUS = "#tasks-table"

    BINDINGS = [
        Binding("x", "toggle_task", "Done/Undo"),
        Binding("o", "optimize", "AI Optimize"),
        Binding("r", "refresh", "Refresh"),
        Binding("c", "focus_chat", "Chat"),
        Binding("escape", "blur_focus", "Back"),
        Binding("q", "quit_app", "Quit"),
    ]

    def __init__(self, settings: Settings, store: DocumentStore, user_id: str) -> None:
        super().__init__()
        self.settings = settings
        self.store = store
        self.user_id = user_id

    def now(self) -> datetime:
        return datetime.now(self.settings.tzinfo())

    def compose(self) -> ComposeResult:
        yield Header()
        yield Horizontal(
            Vertical(
                Label("Tasks", classes="section-title"),
                DataTable(id="tasks-table", cursor_type="row"),
                id="left-pane",
            ),
            Vertical(
                Label("Today", classes="section-title"),
                Static(id="analytics-panel"),
                Label("Suggestions", classes="section-title"),
                Static(id="recommendations"),
                Label("Assistant", classes="section-title"),
                VerticalScroll(Static(id="chat-text"), id="chat-log"),
                Input(placeholder="Ask about focus, schedule, tasks…", id="chat-input"),
                id="right-pane",
            ),
            id="main-layout",
        )
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#tasks-table", DataTable)
        table.add_columns("", "Title", "Pri", "Energy", "Deadline", "Score")
        self._load_data()

    # ── Rendering ──────────────────────────────────────────────

    def _load_data(self) -> None:
        now = self.now()
        tasks = list_tasks(self.store, self.user_id)
        energy = energy_level_for(now)

        table = self.query_one("#tasks-table", DataTable)
        table.clear()
        for t in tasks:
            table.add_row(
                "✓" if t.completed else " ",
                t.title,
                PRIORITY_LABELS.get(t.priority, t.priority),
                t.energy_required or "",
                _short_deadline(t.deadline, now),
                "" if t.completed else f"{score_task(t, now, energy):g}",
                key=t.id,
            )

        analytics = refresh_analytics(self.store, self.user_id, now)
        summary = build_summary(tasks, analytics, now)
        trends = summary["trends"]
        self.query_one("#analytics-panel", Static).update(
            "\n".join([
                f"Active tasks:    {summary['totalTasks']}  ({trends['totalTasks']:+d}%)",
                f"Completed today: {summary['completedToday']}  ({trends['completed']:+d}%)",
                f"Focus time:      {summary['focusTime']}h  ({trends['focus']:+d}%)",
                f"Deadlines ahead: {summary['upcomingDeadlines']}",
                f"Energy:          {summary['energyLevel']} ({summary['energyPercentage']}%)",
            ])
        )

        recs = build_recommendations(tasks, now)
        self.query_one("#recommendations", Static).update(
            "\n".join(f"• {r['text']}" for r in recs) or "Add some tasks for suggestions."
        )
        self._render_chats()
        self.sub_title = f"{self.user_id}  [{energy} energy]"

    def _render_chats(self) -> None:
        chats = list_chats(self.store, self.user_id)[-10:]
        lines = []
        for c in chats:
            lines.append(f"[b]You:[/b] {c.message}")
            lines.append(f"[b]AI:[/b] {c.response}\n")
        self.query_one("#chat-text", Static).update("\n".join(lines) or "[dim](no messages yet)[/dim]")
        self.query_one("#chat-log", VerticalScroll).scroll_end(animate=False)

    # ── Actions ────────────────────────────────────────────────

    def _selected_task_id(self) -> str | None:
        table = self.query_one("#tasks-table", DataTable)
        if table.row_count == 0:
            return None
        cell = table.coordinate_to_cell_key(table.cursor_coordinate)
        return cell.row_key.value

    def action_toggle_task(self) -> None:
        task_id = self._selected_task_id()
        if task_id is None:
            return
        try:
            task = toggle_task(self.store, self.user_id, task_id, self.now())
        except TimeSwapError as e:
            self.notify(e.message, title="Error", severity="error")
            return
        state = "completed" if task.completed else "reopened"
        self.notify(f'"{task.title}" {state}', severity="information")
        self._load_data()

    def action_optimize(self) -> None:
        self._do_optimize()

    @work(thread=True)
    def _do_optimize(self) -> None:
        """Run AI optimize in a worker thread."""
        try:
            tasks = optimize_user_tasks(self.store, self.user_id, self.now())
        except TimeSwapError as e:
            self.call_from_thread(self.notify, e.message, title="Optimize Failed", severity="error")
            return
        active = sum(1 for t in tasks if not t.completed)
        self.call_from_thread(self.notify,
            f"Reordered {active} active tasks", title="AI Optimize", severity="information")
        self.call_from_thread(self._load_data)

    def action_refresh(self) -> None:
        self._load_data()

    def action_focus_chat(self) -> None:
        self.query_one("#chat-input", Input).focus()

    def action_blur_focus(self) -> None:
        self.query_one("#tasks-table", DataTable).focus()

    def action_quit_app(self) -> None:
        self.exit()

    @on(Input.Submitted, "#chat-input")
    def _on_chat_submit(self, event: Input.Submitted) -> None:
        message = event.value.strip()
        if not message:
            return
        event.input.value = ""
        self._do_send(message)

    @work(thread=True)
    def _do_send(self, message: str) -> None:
        try:
            send_message(
                self.store,
                self.user_id,
                message,
                self.now(),
                daily_limit=self.settings.chat_daily_limit,
                history_limit=self.settings.chat_history_limit,
            )
        except TimeSwapError as e:
            self.call_from_thread(self.notify, e.message, title="Assistant", severity="warning")
            return
        self.call_from_thread(self._load_data)


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(description="TimeSwap terminal dashboard")
    parser.add_argument("--user", required=True, help="account email or user id")
    args = parser.parse_args()

    settings = Settings.load()
    configure_logging("WARNING", log_file=settings.data_root / TUI_LOG_FILE)
    store = DocumentStore(settings.data_root)

    user_id = resolve_user(store, args.user)
    if user_id is None:
        print(f"No account found for {args.user} under {settings.data_root}")
        sys.exit(1)

    app = TimeSwapApp(settings, store, user_id)
    app.run()


if __name__ == "__main__":
    main()
