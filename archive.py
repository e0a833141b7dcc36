import os
from datetime import datetime, timezone

import config
from models import OrchestrationResult, RunRecord


def save_run_report(
    result: OrchestrationResult,
    runs: list[RunRecord],
    output_dir: str | None = None,
    now: datetime | None = None,
) -> str:
    """Write a pass report as markdown. Returns the filename."""
    output_dir = output_dir or config.REPORTS_DIR
    os.makedirs(output_dir, exist_ok=True)
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%d-%H%M%S")
    filename = os.path.join(output_dir, f"{stamp}.md")

    lines = [f"# Scraping Pass - {now.strftime('%Y-%m-%d %H:%M')} UTC\n"]

    lines.append(
        f"**{result.runs_executed} runs** | {result.total_jobs_scraped} scraped | "
        f"{result.total_jobs_processed} saved | {len(result.errors)} errors | "
        f"{_format_duration(result.execution_time_ms)}"
    )
    if result.cancelled:
        lines.append("\n**Pass was cancelled before all sources finished.**")
    lines.append("")

    if not runs:
        lines.append("No sources were due this pass.\n")
    else:
        lines.append("## Runs\n")
        lines.append("| Source | Type | Status | Found | Pages | Saved | Errors |")
        lines.append("|---|---|---|---|---|---|---|")
        for run in runs:
            lines.append(
                f"| {run.source_id} | {run.run_type} | {run.status} | {run.jobs_found} | "
                f"{run.pages_scraped} | {run.jobs_saved} | {run.errors_count} |"
            )
        lines.append("")

    if result.robots_compliance_summary:
        lines.append("## Robots Compliance\n")
        for entry in result.robots_compliance_summary:
            lines.extend(_render_compliance(entry))

    if result.errors:
        lines.append("## Errors\n")
        for error in result.errors:
            lines.append(f"- {error}")
        lines.append("")

    with open(filename, "w") as f:
        f.write("\n".join(lines))

    return filename


def _render_compliance(entry: dict) -> list[str]:
    compliance = entry.get("compliance", {})
    status = "allowed" if compliance.get("allowed") else "blocked"
    lines = [f"### {entry.get('source', 'Unknown')}"]
    lines.append(f"**Status:** {status} | **Crawl delay:** {compliance.get('crawl_delay_ms', 0)}ms")
    if compliance.get("reason"):
        lines.append(f"{compliance['reason']}")
    lines.append("")
    return lines


def _format_duration(ms: int) -> str:
    """Format milliseconds as a short human-readable duration."""
    if ms < 1000:
        return f"{ms}ms"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"
