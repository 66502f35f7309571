import inspect
import textwrap
import shutil
import os
from datetime import date, datetime, timedelta
from pathlib import Path

from thunderprint.tp_env import ThunderprintEnvironment

ELLIPSIS_CHAR = "…"

EPOCH = datetime(1970, 1, 1)


def datetime_from_micro_epoch(value: int) -> datetime:
    """
    Storage instants are microseconds since the Unix epoch. Sub-second
    precision is dropped (truncated toward zero) before the seconds are
    added to the epoch.
    """
    micros = int(value)
    seconds = abs(micros) // 1_000_000
    return EPOCH + timedelta(seconds=seconds if micros >= 0 else -seconds)


def format_hours_mins(dt: datetime, ampm: bool = False) -> str:
    if ampm:
        return dt.strftime("%-I:%M%p").lower().replace(":00", "")
    return dt.strftime("%H:%M")


def format_time_range(
    start_dt: datetime, end_dt: datetime | None, ampm: bool = False
) -> str:
    """Format a time range respecting the AM/PM preference."""
    if end_dt is None or end_dt == start_dt:
        return format_hours_mins(start_dt, ampm)

    if ampm:
        start_fmt = "%-I:%M%p" if start_dt.hour < 12 <= end_dt.hour else "%-I:%M"
        start_str = start_dt.strftime(start_fmt).lower().replace(":00", "")
        end_str = end_dt.strftime("%-I:%M%p").lower().replace(":00", "")
        return f"{start_str}-{end_str}"

    return f"{start_dt:%H:%M}-{end_dt:%H:%M}"


def format_week_label(first_day: date, last_day: date) -> str:
    """
    Label a week-row without repeating the month unless the row spans two
    months, e.g. 'Jan 1 - 7, 2024 #1'.
    """
    iso_yr, iso_wk, _ = first_day.isocalendar()
    yr_wk = f"{iso_yr} #{iso_wk}"
    if first_day.month == last_day.month:
        return f"{first_day.strftime('%b %-d')} - {last_day.strftime('%-d')}, {yr_wk}"
    return f"{first_day.strftime('%b %-d')} - {last_day.strftime('%b %-d')}, {yr_wk}"


def wrap_or_truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: max(0, width - 1)] + ELLIPSIS_CHAR


def _get_runtime_home() -> Path:
    override = os.environ.get("THUNDERPRINT_HOME")
    if override:
        return Path(override).expanduser()
    return ThunderprintEnvironment().home


def _resolve_log_file_path(file_path: str | Path) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return _get_runtime_home() / path


def _default_log_relative_path(kind: str) -> Path:
    """Return logs/log_<YYMMDD>.md style paths under the runtime home."""
    suffix = datetime.now().strftime("%y%m%d")
    return Path("logs") / f"{kind}_{suffix}.md"


def _caller_name(frame) -> str:
    func_name = frame.f_code.co_name
    if "self" in frame.f_locals:  # instance method
        return f"{frame.f_locals['self'].__class__.__name__}.{func_name}"
    if "cls" in frame.f_locals:  # classmethod
        return f"{frame.f_locals['cls'].__name__}.{func_name}"
    return func_name


def _write_msg(
    kind: str,
    caller_name: str,
    msg: str,
    file_path: str | Path | None,
    print_output: bool,
):
    lines = [
        f"- {datetime.now().strftime('%H:%M:%S')} {kind}_msg ({caller_name}):  ",
    ]
    lines.extend(
        [
            f"\n{x}"
            for x in textwrap.wrap(
                msg.strip(),
                width=max(20, shutil.get_terminal_size()[0] - 6),
                initial_indent="   ",
                subsequent_indent="   ",
            )
        ]
    )
    lines.append("\n\n")

    # Best-effort file logging; fall back to console when the file is unwritable.
    if file_path is None:
        file_path = _default_log_relative_path(kind)
    log_path = _resolve_log_file_path(file_path)

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        print_output = True

    if print_output:
        print("".join(lines))


def log_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Log a message and save it directly to a file.

    Args:
        msg (str): The message to log.
        file_path (str | Path | None, optional): Overrides the default path when
            provided. Defaults to ``None`` which writes to ``logs/log_<YYMMDD>.md``.
        print_output (bool, optional): If True, also print to console.
    """
    frame = inspect.stack()[1].frame
    _write_msg("log", _caller_name(frame), msg, file_path, print_output)

