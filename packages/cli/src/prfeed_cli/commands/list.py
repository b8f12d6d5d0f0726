"""list command: list pull requests matching the given criteria."""

from __future__ import annotations

import asyncio
import time

import click
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from prfeed_core.errors import PRFeedError, ValidationError
from prfeed_core.models import PullRequest, State, User
from prfeed_core.query import (
    Filter,
    ListRequest,
    Pagination,
    Query,
    Sort,
    SortBy,
    SortOrder,
    TriState,
    validate_query,
)

console = Console()

_SORT_BY = {"created": SortBy.CREATED_AT, "updated": SortBy.UPDATED_AT, "title": SortBy.TITLE}

_STATE_STYLE = {
    State.DRAFT: "dim",
    State.OPEN: "green",
    State.CLOSED: "red",
    State.MERGED: "magenta",
}


def build_query(
    state: str | None = None,
    labels=(),
    exclude_labels=(),
    authors=(),
    exclude_authors=(),
    projects=(),
    exclude_projects=(),
    approved_by_me: str | None = None,
    without_my_unresolved_threads: bool = False,
    not_enough_approvals: str | None = None,
    sort_by: str | None = None,
    order: str | None = None,
    page: int = 0,
    per_page: int = 0,
) -> Query:
    """Map command-line options onto a Query."""
    return Query(
        request=ListRequest(
            state=State(state) if state else None,
            labels=Filter.of(labels, exclude_labels),
            sort=Sort(by=_SORT_BY.get(sort_by), order=SortOrder(order) if order else None),
            pagination=Pagination(page=page, per_page=per_page),
        ),
        approved_by_me=TriState.parse(approved_by_me),
        without_my_unresolved_threads=without_my_unresolved_threads,
        # "not enough approvals" is the negation of "satisfies approval rules".
        satisfies_approval_rules=TriState.parse(not_enough_approvals).negate(),
        authors=Filter.of(authors, exclude_authors),
        project_paths=Filter.of(projects, exclude_projects),
    )


def _approvals_cell(pr: PullRequest, me: User) -> Text:
    approvals = pr.approvals
    text = Text(f"{len(approvals.by)}/{approvals.required}", style="green" if approvals.satisfies_rules else "yellow")
    if approvals.approved_by(me):
        text.append(" ✓", style="bold green")
    elif approvals.requested(me):
        text.append(" !", style="bold yellow")
    return text


def build_table(prs: list[PullRequest], me: User) -> Table:
    table = Table(title=f"Pull requests ({len(prs)})", show_header=True, header_style="bold cyan")
    table.add_column("Project", style="bold", max_width=30)
    table.add_column("#", justify="right", width=6)
    table.add_column("Title", max_width=50)
    table.add_column("Author", width=16)
    table.add_column("Approvals", justify="right", width=10)
    table.add_column("Threads", justify="right", width=8)
    table.add_column("State", width=8)
    table.add_column("URL", style="dim")

    for pr in prs:
        unresolved = len(pr.unresolved_threads)
        style = _STATE_STYLE.get(pr.state, "white")
        table.add_row(
            pr.project.full_path or pr.project.id,
            str(pr.number),
            pr.title,
            pr.author.username,
            _approvals_cell(pr, me),
            Text(f"{unresolved}/{len(pr.threads)}", style="yellow" if unresolved else ""),
            f"[{style}]{pr.state.value}[/{style}]",
            pr.url,
        )

    return table


def _watch(service, query: Query, timeout: float | None, poll_interval: float) -> None:
    if poll_interval <= 0:
        raise ValueError(f"poll_interval must be positive, got {poll_interval!r}")
    with Live(console=console, auto_refresh=False) as live:
        while True:
            try:
                prs = asyncio.run(service.list_pull_requests(query, timeout=timeout))
                renderable = build_table(prs, service.me)
            except PRFeedError as e:
                renderable = Text(f"Refresh failed: {e}", style="red")
            live.update(renderable, refresh=True)
            time.sleep(poll_interval)


@click.command("list")
@click.option(
    "--state",
    type=click.Choice([s.value for s in State]),
    default=None,
    help="List only pull requests in this state. Drafts are only listed with --state draft.",
)
@click.option("--label", "labels", multiple=True, help="Require this label. Repeatable.")
@click.option("--exclude-label", "exclude_labels", multiple=True, help="Skip pull requests with this label.")
@click.option("--author", "authors", multiple=True, help="List only pull requests by this author. Repeatable.")
@click.option("--exclude-author", "exclude_authors", multiple=True, help="Skip pull requests by this author.")
@click.option("--project", "projects", multiple=True, help="List only this repository (owner/name). Repeatable.")
@click.option("--exclude-project", "exclude_projects", multiple=True, help="Skip this repository (owner/name).")
@click.option(
    "--approved-by-me",
    type=click.Choice(["true", "false"]),
    default=None,
    help="List only pull requests I have (true) or have not (false) approved.",
)
@click.option(
    "--without-my-unresolved-threads",
    is_flag=True,
    help="Hide pull requests with my unresolved threads, unless someone replied since.",
)
@click.option(
    "--not-enough-approvals",
    type=click.Choice(["true", "false"]),
    default=None,
    help="List only pull requests lacking (true) or having (false) enough approvals. "
    "Pull requests awaiting my review always count as lacking approvals.",
)
@click.option("--sort-by", type=click.Choice(list(_SORT_BY)), default="created", show_default=True)
@click.option("--order", type=click.Choice([o.value for o in SortOrder]), default="desc", show_default=True)
@click.option("--page", type=int, default=0, help="Page number. Omit pagination to list everything.")
@click.option("--per-page", type=int, default=0, help="Number of pull requests per page.")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds one listing may take. Overrides config file.",
)
@click.option("--watch", "-w", is_flag=True, help="Keep the table open and refresh it periodically.")
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Seconds between refreshes. Overrides config file.",
)
@click.pass_context
def list_cmd(
    ctx,
    state: str | None,
    labels: tuple[str, ...],
    exclude_labels: tuple[str, ...],
    authors: tuple[str, ...],
    exclude_authors: tuple[str, ...],
    projects: tuple[str, ...],
    exclude_projects: tuple[str, ...],
    approved_by_me: str | None,
    without_my_unresolved_threads: bool,
    not_enough_approvals: str | None,
    sort_by: str,
    order: str,
    page: int,
    per_page: int,
    timeout: float | None,
    watch: bool,
    poll_interval: float | None,
):
    """List pull requests that need attention.

    At least one of --state, --label/--exclude-label, --author/--exclude-author
    or both --page and --per-page is required, so a query never scans every
    pull request in scope.

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
    """
    from prfeed_cli.auth import resolve_github_token
    from prfeed_core.config import load_config
    from prfeed_core.engines.github import GitHubEngine
    from prfeed_core.service import Service

    config_path = ctx.obj["config_path"] if ctx.obj else "~/.prfeed.yml"
    config = load_config(config_path, cli_overrides={"timeout": timeout, "poll_interval": poll_interval})

    query = build_query(
        state=state,
        labels=labels,
        exclude_labels=exclude_labels,
        authors=authors,
        exclude_authors=exclude_authors,
        projects=projects,
        exclude_projects=exclude_projects,
        approved_by_me=approved_by_me,
        without_my_unresolved_threads=without_my_unresolved_threads,
        not_enough_approvals=not_enough_approvals,
        sort_by=sort_by,
        order=order,
        page=page,
        per_page=per_page,
    )

    # Validate before anything touches the network.
    try:
        validate_query(query)
    except ValidationError as e:
        raise click.UsageError(str(e))

    token = resolve_github_token(config)
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )

    timeout = config.get("timeout")
    poll_interval = config.get("poll_interval")
    if watch and not (poll_interval and poll_interval > 0):
        raise click.UsageError(f"poll_interval must be a positive number of seconds, got {poll_interval!r}")

    engine = GitHubEngine(token, base_url=config.get("base_url"), scope=config.get("scope", ""))
    ctx.call_on_close(engine.close)

    try:
        service = asyncio.run(Service.create(engine))
        if watch:
            _watch(service, query, timeout, poll_interval)
            return
        prs = asyncio.run(service.list_pull_requests(query, timeout=timeout))
    except KeyboardInterrupt:
        return
    except PRFeedError as e:
        raise click.ClickException(str(e))

    if not prs:
        console.print("[yellow]No pull requests found.[/yellow]")
        return
    console.print(build_table(prs, service.me))
