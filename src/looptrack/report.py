"""Usage reports over the aggregated view of all machines."""

from dataclasses import dataclass, field

from looptrack.storage.models import UNKNOWN_PROJECT_NAME, project_name
from looptrack.sync.engine import AggregateView


@dataclass
class UsageSummary:
    """Totals across every machine."""
    total_sessions: int = 0
    total_cost: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    projects: list[str] = field(default_factory=list)
    machines: list[str] = field(default_factory=list)
    last_sync: str | None = None

    def to_dict(self) -> dict:
        return {
            "totalSessions": self.total_sessions,
            "totalCost": self.total_cost,
            "totalInputTokens": self.total_input_tokens,
            "totalOutputTokens": self.total_output_tokens,
            "projects": self.projects,
            "machines": self.machines,
            "lastSync": self.last_sync,
        }


@dataclass
class ProjectUsage:
    name: str
    path: str
    cost: float = 0.0
    sessions: int = 0


@dataclass
class DailyUsage:
    """Usage for one calendar day."""
    date: str
    sessions: int = 0
    total_cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    projects: dict[str, ProjectUsage] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "sessions": self.sessions,
            "totalCost": self.total_cost,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "projects": {
                key: {"name": p.name, "path": p.path, "cost": p.cost, "sessions": p.sessions}
                for key, p in self.projects.items()
            },
        }


@dataclass
class MachineUsage:
    machine_id: str
    sessions: int = 0
    total_cost: float = 0.0
    total_tokens: int = 0


def summarize(view: AggregateView) -> UsageSummary:
    summary = UsageSummary(machines=list(view.machines), last_sync=view.last_sync)
    projects: set[str] = set()

    for owned in view.records.values():
        record = owned.record
        summary.total_sessions += 1
        summary.total_cost += record.total_cost
        summary.total_input_tokens += record.input_tokens
        summary.total_output_tokens += record.output_tokens
        if record.project_path:
            projects.add(record.project_path)

    summary.projects = sorted(projects)
    return summary


def daily_breakdown(view: AggregateView) -> list[DailyUsage]:
    """Per-day usage, newest day first. Records without a date are skipped."""
    days: dict[str, DailyUsage] = {}

    for owned in view.records.values():
        record = owned.record
        date = record.activity_date
        if not date:
            continue

        day = days.setdefault(date, DailyUsage(date=date))
        day.sessions += 1
        day.total_cost += record.total_cost
        day.input_tokens += record.input_tokens
        day.output_tokens += record.output_tokens

        path = record.project_path or UNKNOWN_PROJECT_NAME
        project = day.projects.setdefault(
            path, ProjectUsage(name=project_name(record.project_path), path=path)
        )
        project.cost += record.total_cost
        project.sessions += 1

    return sorted(days.values(), key=lambda d: d.date, reverse=True)


def machine_breakdown(view: AggregateView) -> list[MachineUsage]:
    """Sessions and cost per owning machine, in machine id order."""
    usage = {machine_id: MachineUsage(machine_id=machine_id) for machine_id in view.machines}

    for owned in view.records.values():
        entry = usage.setdefault(owned.machine_id, MachineUsage(machine_id=owned.machine_id))
        entry.sessions += 1
        entry.total_cost += owned.record.total_cost
        entry.total_tokens += owned.record.total_tokens

    return [usage[m] for m in sorted(usage)]
