"""Command-line interface for gamevault.

Built with Typer for commands and Rich for beautiful output.
"""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .challenges import ChallengeManager, ChallengeStatus
from .config import get_config
from .db import get_db
from .errors import GameVaultError
from .logging_setup import configure_logging
from .profiles import ProfileCreate, ProfileManager, ProfileResponse, UserStatsUpdate

# Create the main app
app = typer.Typer(
    name="gamevault",
    help="Track games and run community challenges.",
    no_args_is_help=True,
)

# Create sub-apps for command groups
profile_app = typer.Typer(help="Manage profiles and gameplay statistics.")
app.add_typer(profile_app, name="profile")

challenge_app = typer.Typer(help="Create, join and track community challenges.")
app.add_typer(challenge_app, name="challenge")

# Rich console for pretty output
console = Console()


@app.callback()
def _setup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    config = get_config()
    configure_logging("DEBUG" if verbose else config.log_level, config.env)


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[dim]{message}[/dim]")


def fail(exc: GameVaultError) -> None:
    """Print an application error with its details and exit."""
    print_error(exc.message)
    details = exc.details
    if isinstance(details, list):
        for item in details:
            if isinstance(item, dict) and "field" in item:
                console.print(f"  [red]-[/red] {item['field']}: {item['message']}")
            else:
                console.print(f"  [red]-[/red] {item}")
    elif isinstance(details, dict):
        for key, value in details.items():
            if isinstance(value, list):
                for v in value:
                    console.print(f"  [red]-[/red] {v}")
            else:
                console.print(f"  [red]-[/red] {key}: {value}")
    raise typer.Exit(1)


def resolve_user(username: str) -> ProfileResponse:
    """Look up a profile by username or exit."""
    profile = ProfileManager(get_db()).get_by_username(username)
    if not profile:
        print_error(f"Profile not found: {username}")
        print_info("Create one with 'gamevault profile create <username>'")
        raise typer.Exit(1)
    return profile


def progress_bar(percent: float, width: int = 20) -> str:
    filled = int((percent / 100) * width)
    return "[green]" + "#" * filled + "[/green]" + "-" * (width - filled)


STATUS_STYLES = {
    ChallengeStatus.UPCOMING: "[cyan]upcoming[/cyan]",
    ChallengeStatus.ACTIVE: "[yellow]active[/yellow]",
    ChallengeStatus.COMPLETED: "[dim]completed[/dim]",
}


# ============================================================================
# Profile Commands
# ============================================================================


@profile_app.command("create")
def profile_create(
    username: str = typer.Argument(..., help="Username (letters, digits, _ and -)"),
    avatar: Optional[str] = typer.Option(None, "--avatar", "-a", help="Avatar URL"),
) -> None:
    """Create a new profile."""
    from pydantic import ValidationError

    try:
        data = ProfileCreate(username=username, avatar_url=avatar)
    except ValidationError as e:
        print_error(f"Invalid profile: {e.errors()[0]['msg']}")
        raise typer.Exit(1)

    try:
        profile = ProfileManager(get_db()).create_profile(data)
    except GameVaultError as e:
        fail(e)

    print_success(f"Profile created: {profile.username}")
    print_info(f"ID: {profile.id}")


@profile_app.command("stats")
def profile_stats(
    username: str = typer.Argument(..., help="Username"),
) -> None:
    """Show a profile's statistics snapshot."""
    profile = resolve_user(username)
    stats = profile.stats

    table = Table(title=f"{profile.username} statistics", show_header=True, header_style="bold magenta")
    table.add_column("Statistic", style="cyan")
    table.add_column("Value", justify="right")

    for label, value in (
        ("Completed games", stats.completed_games),
        ("Achievements", stats.achievements),
        ("Playtime (hours)", stats.playtime),
        ("Level", stats.level),
        ("Score", stats.score),
    ):
        table.add_row(label, "-" if value is None else f"{value:g}")

    console.print(table)


@profile_app.command("set-stats")
def profile_set_stats(
    username: str = typer.Argument(..., help="Username"),
    completed_games: Optional[float] = typer.Option(None, "--completed-games", "-c"),
    achievements: Optional[float] = typer.Option(None, "--achievements", "-a"),
    playtime: Optional[float] = typer.Option(None, "--playtime", "-p", help="Hours played"),
    level: Optional[float] = typer.Option(None, "--level", "-l"),
    score: Optional[float] = typer.Option(None, "--score", "-s"),
) -> None:
    """Update a profile's statistics snapshot."""
    from pydantic import ValidationError

    profile = resolve_user(username)
    values = {
        "completed_games": completed_games,
        "achievements": achievements,
        "playtime": playtime,
        "level": level,
        "score": score,
    }
    values = {k: v for k, v in values.items() if v is not None}
    if not values:
        print_error("Nothing to update. Pass at least one statistic option.")
        raise typer.Exit(1)

    try:
        data = UserStatsUpdate(**values)
    except ValidationError as e:
        print_error(f"Invalid statistics: {e.errors()[0]['msg']}")
        raise typer.Exit(1)

    try:
        ProfileManager(get_db()).update_stats(profile.id, data)
    except GameVaultError as e:
        fail(e)

    print_success(f"Updated statistics for {profile.username}")


# ============================================================================
# Challenge Commands
# ============================================================================


@challenge_app.command("create")
def challenge_create(
    payload_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON challenge definition"),
    user: str = typer.Option(..., "--user", "-u", help="Creator username"),
) -> None:
    """Create a challenge from a JSON file."""
    profile = resolve_user(user)

    try:
        payload = json.loads(payload_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print_error(f"Invalid JSON in {payload_file}: {e}")
        raise typer.Exit(1)

    try:
        challenge = ChallengeManager(get_db()).create_challenge(profile.id, payload)
    except GameVaultError as e:
        fail(e)

    print_success(f"Challenge created: {challenge.title}")
    print_info(f"ID: {challenge.id}")
    print_info(f"Period: {challenge.start_date:%Y-%m-%d %H:%M} to {challenge.end_date:%Y-%m-%d %H:%M}")


@challenge_app.command("list")
def challenge_list(
    status: Optional[ChallengeStatus] = typer.Option(None, "--status", "-s", help="Filter by status"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only challenges this user joined"),
) -> None:
    """List challenges."""
    user_id = resolve_user(user).id if user else None
    manager = ChallengeManager(get_db(), leaderboard_limit=get_config().leaderboard_limit)
    challenges = manager.list_challenges(status=status, user_id=user_id)

    if not challenges:
        print_info("No challenges found. Create one with 'challenge create'")
        return

    table = Table(title="Challenges", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title", style="cyan")
    table.add_column("Type")
    table.add_column("Goals", justify="right")
    table.add_column("Players", justify="right")
    table.add_column("Ends", justify="right")
    table.add_column("Status")

    for ch in challenges:
        players = str(ch.participant_count)
        if ch.max_participants:
            players = f"{players}/{ch.max_participants}"
        table.add_row(
            ch.id[:8],
            ch.title,
            ch.type.value,
            str(ch.goal_count),
            players,
            f"{ch.end_date:%Y-%m-%d}",
            STATUS_STYLES[ch.status],
        )

    console.print(table)


@challenge_app.command("show")
def challenge_show(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
) -> None:
    """Show a challenge with goals, rewards, rules and participants."""
    challenge = ChallengeManager(get_db()).get_challenge(challenge_id)
    if not challenge:
        print_error(f"Challenge not found: {challenge_id}")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold]{challenge.title}[/bold]\n"
        f"{challenge.description}\n"
        f"{challenge.type.value} | {STATUS_STYLES[challenge.status]}\n"
        f"[dim]{challenge.start_date:%Y-%m-%d %H:%M} to {challenge.end_date:%Y-%m-%d %H:%M}[/dim]",
        style="cyan",
    ))

    console.print("\n  [bold]Goals:[/bold]")
    for i, goal in enumerate(challenge.goals, 1):
        label = goal.description or goal.type.value.replace("_", " ")
        console.print(f"    {i}. {label} (target {goal.target:g}) [dim]{goal.id}[/dim]")

    if challenge.rewards:
        console.print("\n  [bold]Rewards:[/bold]")
        for reward in challenge.rewards:
            console.print(f"    - {reward.name} ({reward.type.value}): {reward.description} [dim]{reward.id}[/dim]")

    if challenge.rules:
        console.print("\n  [bold]Rules:[/bold]")
        for rule in challenge.rules:
            console.print(f"    - {rule}")

    console.print(f"\n  [bold]Participants ({len(challenge.participants)}):[/bold]")
    for p in challenge.participants:
        done = " [green]DONE[/green]" if p.completed else ""
        console.print(f"    {p.username or p.user_id}: [{progress_bar(p.progress)}] {p.progress}%{done}")


@challenge_app.command("join")
def challenge_join(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Join a challenge."""
    profile = resolve_user(user)
    try:
        ChallengeManager(get_db()).join_challenge(challenge_id, profile.id)
    except GameVaultError as e:
        fail(e)
    print_success(f"{profile.username} joined the challenge")


@challenge_app.command("leave")
def challenge_leave(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Leave a challenge."""
    profile = resolve_user(user)
    try:
        ChallengeManager(get_db()).leave_challenge(challenge_id, profile.id)
    except GameVaultError as e:
        fail(e)
    print_success(f"{profile.username} left the challenge")


@challenge_app.command("goals")
def challenge_goals(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Show goals with a user's progress."""
    profile = resolve_user(user)
    try:
        goals = ChallengeManager(get_db()).get_goals_with_progress(challenge_id, profile.id)
    except GameVaultError as e:
        fail(e)

    table = Table(title="Goals", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Goal", style="cyan")
    table.add_column("Progress", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("", no_wrap=True)

    for goal in goals:
        table.add_row(
            goal.id,
            goal.description or goal.type.value.replace("_", " "),
            f"{goal.progress:g}",
            f"{goal.target:g}",
            f"[{progress_bar(goal.percent, 10)}] {goal.percent:.0f}%",
        )

    console.print(table)


@challenge_app.command("progress")
def challenge_progress(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    goal_id: str = typer.Argument(..., help="Goal ID"),
    value: float = typer.Argument(..., help="Current accumulated value"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Record progress on a goal."""
    profile = resolve_user(user)
    try:
        participant = ChallengeManager(get_db()).update_goal_progress(
            challenge_id, profile.id, goal_id, value
        )
    except GameVaultError as e:
        fail(e)

    print_success(f"Progress recorded: [{progress_bar(participant.progress)}] {participant.progress}%")
    if participant.completed:
        console.print("[bold green]Challenge complete! Rewards can now be claimed.[/bold green]")


@challenge_app.command("leaderboard")
def challenge_leaderboard(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of entries"),
) -> None:
    """Show the challenge leaderboard."""
    manager = ChallengeManager(get_db(), leaderboard_limit=get_config().leaderboard_limit)
    try:
        board = manager.get_leaderboard(challenge_id, limit=limit)
    except GameVaultError as e:
        fail(e)

    if not board.rankings:
        print_info("No participants yet")
        return

    table = Table(title="Leaderboard", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Player", style="cyan")
    table.add_column("Progress", justify="right")
    table.add_column("Done", justify="center")

    for entry in board.rankings:
        table.add_row(
            str(entry.rank),
            entry.username or entry.user_id,
            f"{entry.progress}%",
            "[green]yes[/green]" if entry.completed else "-",
        )

    console.print(table)


@challenge_app.command("teams")
def challenge_teams(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
) -> None:
    """Show the teams of a collaborative challenge, best first."""
    try:
        board = ChallengeManager(get_db()).get_team_leaderboard(challenge_id)
    except GameVaultError as e:
        fail(e)

    if not board.rankings:
        print_info("No teams yet")
        return

    table = Table(title="Teams", show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("ID", style="dim", overflow="fold")
    table.add_column("Team", style="cyan", no_wrap=True)
    table.add_column("Members", justify="right")
    table.add_column("Progress", no_wrap=True)

    for entry in board.rankings:
        table.add_row(
            str(entry.rank),
            entry.team_id,
            entry.name,
            str(entry.member_count),
            f"[{progress_bar(entry.progress, 10)}] {entry.progress}%",
        )

    console.print(table)


@challenge_app.command("create-team")
def challenge_create_team(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    name: str = typer.Argument(..., help="Team name"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Create a team and join it."""
    profile = resolve_user(user)
    try:
        team = ChallengeManager(get_db()).create_team(challenge_id, profile.id, {"name": name})
    except GameVaultError as e:
        fail(e)
    print_success(f"Created team '{team.name}'")
    print_info(f"ID: {team.id}")


@challenge_app.command("join-team")
def challenge_join_team(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    team_id: str = typer.Argument(..., help="Team ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Join a team."""
    profile = resolve_user(user)
    try:
        team = ChallengeManager(get_db()).join_team(challenge_id, profile.id, team_id)
    except GameVaultError as e:
        fail(e)
    print_success(f"{profile.username} joined team '{team.name}'")


@challenge_app.command("leave-team")
def challenge_leave_team(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Leave your current team."""
    profile = resolve_user(user)
    try:
        ChallengeManager(get_db()).leave_team(challenge_id, profile.id)
    except GameVaultError as e:
        fail(e)
    print_success(f"{profile.username} left the team")


@challenge_app.command("history")
def challenge_history(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
    goal_id: Optional[str] = typer.Option(None, "--goal", "-g", help="Only this goal"),
) -> None:
    """Show a user's progress reports, oldest first."""
    profile = resolve_user(user)
    try:
        history = ChallengeManager(get_db()).get_progress_history(
            challenge_id, profile.id, goal_id=goal_id
        )
    except GameVaultError as e:
        fail(e)

    if not history:
        print_info("No progress recorded yet")
        return

    table = Table(title="Progress History", show_header=True, header_style="bold magenta")
    table.add_column("When", style="dim")
    table.add_column("Goal", style="dim", overflow="fold")
    table.add_column("Value", justify="right")
    table.add_column("Challenge", justify="right")
    table.add_column("Milestone", style="green", no_wrap=True)

    for entry in history:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.goal_id,
            f"{entry.value:g}",
            f"{entry.progress}%",
            entry.milestone or "",
        )

    console.print(table)


@challenge_app.command("claim")
def challenge_claim(
    challenge_id: str = typer.Argument(..., help="Challenge ID"),
    reward_id: str = typer.Argument(..., help="Reward ID"),
    user: str = typer.Option(..., "--user", "-u", help="Username"),
) -> None:
    """Claim a reward of a completed challenge."""
    profile = resolve_user(user)
    try:
        ChallengeManager(get_db()).claim_reward(challenge_id, profile.id, reward_id)
    except GameVaultError as e:
        fail(e)
    print_success("Reward claimed")


@challenge_app.command("refresh")
def challenge_refresh() -> None:
    """Recompute challenge statuses from their dates."""
    changed = ChallengeManager(get_db()).refresh_statuses()
    print_success(f"Refreshed {changed} challenge(s)")


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Bind address"),
    port: int = typer.Option(5000, "--port", "-p", help="Port"),
    debug: bool = typer.Option(False, "--debug", help="Enable the Flask debugger and reloader"),
) -> None:
    """Run the HTTP API."""
    from .app import create_app

    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    console.print(f"\n[bold]Game Vault API[/bold] running at http://{host}:{port}{config.api_prefix}")
    console.print("   Press Ctrl+C to stop\n")
    create_app(config=config).run(host=host, port=port, debug=debug)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__

    console.print(f"gamevault version {__version__}")


# ============================================================================
# Main Entry Point
# ============================================================================


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
