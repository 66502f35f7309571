from pathlib import Path
import os
import tomllib
from pydantic import BaseModel, Field, ValidationError
from typing import Optional
from jinja2 import Template


# ─── Config Schema ─────────────────────────────────────────────────
class UIConfig(BaseModel):
    ampm: bool = False
    week_start: str = Field("monday", pattern="^(monday|sunday)$")


class LayoutConfig(BaseModel):
    filler: str = "-"
    left_mark: str = "< "
    right_mark: str = " >"
    months: int = Field(6, ge=1, le=24)


class CalendarsConfig(BaseModel):
    tasks: str = "Tasks"


class SourceConfig(BaseModel):
    profile: str = ""


class ThunderprintConfig(BaseModel):
    title: str = "Thunderprint Configuration"
    ui: UIConfig = UIConfig()
    layout: LayoutConfig = LayoutConfig()
    calendars: CalendarsConfig = CalendarsConfig()
    source: SourceConfig = SourceConfig()


# ─── Commented Template ────────────────────────────────────
CONFIG_TEMPLATE = """\
title = "{{ title }}"

[ui]
# ampm: bool = true | false
ampm = {{ ui.ampm | lower }}

# week_start: str = 'monday' | 'sunday'
# the first day of every week-row in the month layout
week_start = "{{ ui.week_start }}"

[layout]
# filler: str
# printed for an empty lane so that the all-day events below it
# keep their row
filler = "{{ layout.filler }}"

# left_mark, right_mark: str
# decorations for an all-day event that continues from the previous
# day (left) or into the next day (right)
left_mark = "{{ layout.left_mark }}"
right_mark = "{{ layout.right_mark }}"

# months: int
# the number of months printed by "thunderprint month"
months = {{ layout.months }}

[calendars]
# tasks: str
# timed items from the calendar with this display name show their
# start time only
tasks = "{{ calendars.tasks }}"

[source]
# profile: str
# the Thunderbird profile directory used when neither --profile nor
# --db is given on the command line
profile = "{{ source.profile }}"
"""

# ─── Save Config with Comments ───────────────────────────────


def render_config(config: ThunderprintConfig) -> str:
    template = Template(CONFIG_TEMPLATE)
    return template.render(**config.model_dump()).strip() + "\n"


def save_config_from_template(config: ThunderprintConfig, path: Path):
    path.write_text(render_config(config), encoding="utf-8")
    print(f"✅ Config with comments written to: {path}")


# ─── Main Environment Class ───────────────────────────────


class ThunderprintEnvironment:
    def __init__(self):
        self._home = self._resolve_home()
        self._config: Optional[ThunderprintConfig] = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def config_path(self) -> Path:
        return self.home / "config.toml"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    def ensure(self, init_config: bool = True):
        self.home.mkdir(parents=True, exist_ok=True)

        if init_config and not self.config_path.exists():
            save_config_from_template(ThunderprintConfig(), self.config_path)

    def load_config(self) -> ThunderprintConfig:
        # Step 1: Create the file if it doesn't exist
        if not self.config_path.exists():
            config = ThunderprintConfig()
            self.home.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(render_config(config), encoding="utf-8")
            print(f"✅ Created new config file at {self.config_path}")
            self._config = config
            return config

        # Step 2: Try to load and validate the config
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
            config = ThunderprintConfig.model_validate(data)
        except (ValidationError, tomllib.TOMLDecodeError) as e:
            print(f"⚠️ Config error in {self.config_path}: {e}\nUsing defaults.")
            config = ThunderprintConfig()

        # Step 3: Always regenerate the canonical version
        rendered = render_config(config)
        current_text = self.config_path.read_text(encoding="utf-8")

        if rendered != current_text:
            self.config_path.write_text(rendered, encoding="utf-8")
            print(f"✅ Updated {self.config_path} with any missing defaults.")

        self._config = config
        return config

    @property
    def config(self) -> ThunderprintConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def _resolve_home(self) -> Path:
        cwd = Path.cwd()
        if (cwd / "config.toml").exists() and (cwd / "logs").is_dir():
            return cwd

        env_home = os.getenv("THUNDERPRINT_HOME")
        if env_home:
            return Path(env_home).expanduser()

        xdg_home = os.getenv("XDG_CONFIG_HOME")
        if xdg_home:
            return Path(xdg_home).expanduser() / "thunderprint"
        else:
            return Path.home() / ".config" / "thunderprint"
