import sys
import os
import click
from rich import print
from rich.console import Console

from datetime import date, datetime, timedelta
from pathlib import Path

from thunderprint import __version__
from thunderprint.expander import EventCalendar
from thunderprint.lanes import month_layout
from thunderprint.models import Occurrence, ThunderprintError
from thunderprint.shared import format_time_range, format_week_label, wrap_or_truncate
from thunderprint.store import CalendarStore
from thunderprint.tp_env import ThunderprintEnvironment

WEEKDAYS = {"monday": 0, "sunday": 6}


class _MonthParam(click.ParamType):
    name = "month"

    def convert(self, value, param, ctx):
        if value is None:
            return None
        if isinstance(value, date):
            return value.replace(day=1)
        s = str(value).strip().lower()
        if s in ("today", "now"):
            return date.today().replace(day=1)
        try:
            return datetime.strptime(s, "%Y-%m").date()
        except ValueError:
            self.fail("Expected YYYY-MM or 'today'", param, ctx)


_MONTH = _MonthParam()


def source_options(f):
    f = click.option(
        "--prefs",
        type=click.Path(exists=True, dir_okay=False),
        help="prefs.js holding the calendar names.",
    )(f)
    f = click.option(
        "--db",
        type=click.Path(dir_okay=False),
        help="Path to the calendar storage database (local.sqlite).",
    )(f)
    f = click.option(
        "--profile",
        type=click.Path(file_okay=False),
        help="Thunderbird profile directory.",
    )(f)
    return f


def open_store(ctx, profile, db, prefs) -> CalendarStore:
    config = ctx.obj["CONFIG"]
    if db:
        return CalendarStore(db, prefs)
    profile = profile or config.source.profile
    if not profile:
        print("[red]✘ No calendar source. Use --profile or --db.[/red]")
        sys.exit(1)
    store = CalendarStore.from_profile(profile)
    if prefs:
        store.prefs_path = Path(prefs)
    return store


def format_timed(occurrence: Occurrence, tasks_calendar: str, ampm: bool) -> str:
    event = occurrence.event
    if event.calendar_name == tasks_calendar:
        time_str = format_time_range(occurrence.start, None, ampm)
    else:
        time_str = format_time_range(occurrence.start, occurrence.end, ampm)
    return f"{time_str} {event.title}"


@click.group()
@click.version_option(
    __version__, prog_name="thunderprint", message="%(prog)s version %(version)s"
)
@click.option(
    "--home",
    help="Override the workspace directory (equivalent to setting $THUNDERPRINT_HOME).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, home, verbose):
    """Thunderprint – lay out your Thunderbird calendars month by month."""
    if home:
        os.environ["THUNDERPRINT_HOME"] = (
            home  # Must be set before ThunderprintEnvironment is instantiated
        )

    env = ThunderprintEnvironment()
    env.ensure(init_config=True)
    config = env.load_config()

    ctx.ensure_object(dict)
    ctx.obj["ENV"] = env
    ctx.obj["CONFIG"] = config
    ctx.obj["VERBOSE"] = verbose


@cli.command()
@source_options
@click.pass_context
def events(ctx, profile, db, prefs):
    """List the assembled events and any problems found while reading."""
    verbose = ctx.obj["VERBOSE"]
    store = open_store(ctx, profile, db, prefs)

    console = Console(highlight=False)
    count = 0
    try:
        for event in store.events():
            count += 1
            flags = []
            if event.all_day:
                flags.append("all-day")
            if event.rules:
                flags.append(f"{len(event.rules)} rule(s)")
            if event.exceptions:
                flags.append(f"{len(event.exceptions)} exception(s)")
            if event.is_override:
                flags.append(f"overrides {event.recurrence_id:%Y-%m-%d %H:%M}")
            extra = f" ({', '.join(flags)})" if flags else ""
            console.print(
                f"{event.start:%Y-%m-%d %H:%M} {event.title} [{event.calendar_name}]{extra}",
                markup=False,
            )
            if verbose:
                for rule in event.rules:
                    console.print(f"    {rule.text}", markup=False)
    except ThunderprintError as e:
        print(f"[red]✘ {e}[/red]")
        sys.exit(1)

    print(f"[green]✔ {count} event{'' if count == 1 else 's'}[/green]")
    if store.diagnostics:
        print("\n=== Diagnostics ===\n")
        for diagnostic in store.diagnostics:
            console.print(str(diagnostic), markup=False)


@cli.command()
@source_options
@click.pass_context
def check(ctx, profile, db, prefs):
    """Read every event and report whether the data can be laid out."""
    store = open_store(ctx, profile, db, prefs)
    try:
        count = sum(1 for _ in store.events())
    except ThunderprintError as e:
        print(f"[red]✘ {e}[/red]")
        sys.exit(1)

    problems = len(store.diagnostics)
    print(
        f"[green]✔ {count} event{'' if count == 1 else 's'} read, "
        f"{problems} recoverable problem{'' if problems == 1 else 's'}.[/green]"
    )


@cli.command()
@source_options
@click.option(
    "--start",
    "start_month",
    type=_MONTH,
    help="First month (YYYY-MM) or 'today'. Defaults to the current month.",
)
@click.option(
    "--count",
    type=click.IntRange(1, 24),
    help="Number of months. Defaults to layout.months from config.toml.",
)
@click.option(
    "--width",
    type=click.IntRange(10, 200),
    default=40,
    help="Maximum line width (good for small screens).",
)
@click.option(
    "--rich",
    is_flag=True,
    help="Use Rich colors/styling (default output is plain).",
)
@click.pass_context
def month(ctx, profile, db, prefs, start_month, count, width, rich):
    """
    Print months week-row by week-row: each day lists its all-day lanes,
    then its timed events.

    Examples:
      thunderprint month --profile ~/.thunderbird/abcd.default
      thunderprint month --db local.sqlite --start 2024-01 --count 2
    """
    config = ctx.obj["CONFIG"]
    layout = config.layout
    week_start = WEEKDAYS[config.ui.week_start]
    store = open_store(ctx, profile, db, prefs)

    try:
        calendar = EventCalendar(store.events())
    except ThunderprintError as e:
        print(f"[red]✘ {e}[/red]")
        sys.exit(1)

    if ctx.obj["VERBOSE"]:
        print(f"[blue]Got {len(calendar)} events.[/blue]")

    is_tty = sys.stdout.isatty()
    console = Console(
        force_terminal=rich and is_tty,
        no_color=not rich,
        markup=False,
        highlight=False,
    )

    today = date.today()
    current = start_month or today.replace(day=1)
    for i in range(count or layout.months):
        if i > 0:
            console.print()
        console.print(f"{current:%B %Y}".upper(), style="bold" if rich else None)

        for day_layout in month_layout(
            calendar,
            current,
            week_start,
            layout.filler,
            layout.left_mark,
            layout.right_mark,
        ):
            d = day_layout.day
            if d.weekday() == week_start or d.day == 1:
                last = min(
                    d + timedelta(days=(week_start - d.weekday() - 1) % 7),
                    (current.replace(day=28) + timedelta(days=4)).replace(day=1)
                    - timedelta(days=1),
                )
                console.print(
                    format_week_label(d, last),
                    style="bold deep_sky_blue1" if rich else None,
                )
            if not day_layout.lanes and not day_layout.timed:
                continue

            flag = " (today)" if d == today else ""
            style = "strike" if rich and d < today else None
            console.print(f" {d:%a, %b %-d}{flag}", style=style)
            for label in day_layout.labels:
                console.print(wrap_or_truncate(f"   {label}", width), style=style)
            for occurrence in day_layout.timed:
                text = format_timed(occurrence, config.calendars.tasks, config.ui.ampm)
                console.print(wrap_or_truncate(f"   {text}", width), style=style)

        current = (current.replace(day=28) + timedelta(days=4)).replace(day=1)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
