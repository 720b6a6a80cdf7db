"""Configuration management for Slotwise."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .core.calendar import EnergyBlock, EnergyLevel, validate_energy_blocks
from .core.matching import MatchSettings, SlotPreference

logger = logging.getLogger(__name__)

SLOTWISE_HOME = Path(os.environ.get("SLOTWISE_HOME", Path.home() / "slotwise"))
CONFIG_FILE = SLOTWISE_HOME / "config" / "slotwise.conf"
DATA_DIR = SLOTWISE_HOME / "data"

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def parse_clock(value: str) -> int:
    """'HH:MM' -> seconds from midnight."""
    hours, _, minutes = value.strip().partition(":")
    h, m = int(hours), int(minutes or 0)
    if not (0 <= h <= 24 and 0 <= m < 60) or (h == 24 and m):
        raise ValueError(f"Invalid time of day: {value!r}")
    return h * 3600 + m * 60


def parse_range(value: str) -> tuple[int, int]:
    """'HH:MM-HH:MM' -> (start, end) seconds from midnight."""
    start, _, end = value.partition("-")
    return parse_clock(start), parse_clock(end)


def format_clock(seconds: int) -> str:
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}"


def _default_energy_levels() -> list[EnergyBlock]:
    return [
        EnergyBlock(9 * 3600, 11 * 3600, EnergyLevel.HIGH),
        EnergyBlock(11 * 3600, 12 * 3600, EnergyLevel.MEDIUM),
        EnergyBlock(13 * 3600, 14 * 3600, EnergyLevel.LOW),
        EnergyBlock(14 * 3600, 16 * 3600, EnergyLevel.MEDIUM),
        EnergyBlock(16 * 3600, 18 * 3600, EnergyLevel.LOW),
    ]


@dataclass
class Config:
    """Slotwise configuration."""

    work_start: int = 8 * 3600
    work_end: int = 18 * 3600
    working_days: set[int] = field(default_factory=lambda: {0, 1, 2, 3, 4})
    buffer_between_blocks: int = 10
    minimum_slot_size: int = 15
    default_task_duration: int = 30
    max_suggestions_per_day: int = 10
    match_energy_to_tasks: bool = True
    preferred_slot_times: SlotPreference = SlotPreference.MORNING_FIRST
    energy_levels: list[EnergyBlock] = field(default_factory=_default_energy_levels)
    focus_time_blocks: list[tuple[int, int]] = field(default_factory=list)
    list_energy_defaults: dict[str, EnergyLevel] = field(default_factory=dict)
    min_learned_samples: int = 3
    morning_scan_time: int = 7 * 3600 + 30 * 60
    reconcile_interval: int = 60
    timezone: str = "America/Toronto"
    calendar_snapshot: str = ""
    task_snapshot: str = ""
    data_dir: str = ""

    @property
    def working_hours(self) -> str:
        return f"{format_clock(self.work_start)}-{format_clock(self.work_end)}"

    def match_settings(self) -> MatchSettings:
        return MatchSettings(
            max_suggestions_per_day=self.max_suggestions_per_day,
            match_energy_to_tasks=self.match_energy_to_tasks,
            preferred_slot_times=self.preferred_slot_times,
            minimum_slot_minutes=self.minimum_slot_size,
            buffer_minutes=self.buffer_between_blocks,
        )

    def _data_path(self) -> Path:
        return Path(self.data_dir).expanduser() if self.data_dir else DATA_DIR

    def calendar_snapshot_path(self) -> Path:
        if self.calendar_snapshot:
            return Path(self.calendar_snapshot).expanduser()
        return self._data_path() / "calendar.json"

    def task_snapshot_path(self) -> Path:
        if self.task_snapshot:
            return Path(self.task_snapshot).expanduser()
        return self._data_path() / "tasks.json"


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean: {value!r}")


def _parse_weekdays(value: str) -> set[int]:
    days = set()
    for name in value.split(","):
        name = name.strip().lower()[:3]
        if name:
            days.add(WEEKDAYS.index(name))
    return days


def _parse_energy_levels(value: str) -> list[EnergyBlock]:
    # "09:00-11:00=high,11:00-12:00=medium"
    blocks = []
    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        span, _, level = entry.partition("=")
        start, end = parse_range(span)
        blocks.append(EnergyBlock(start, end, EnergyLevel.parse(level)))
    return validate_energy_blocks(blocks)


def _strip_value(value: str) -> str:
    """Handle quoted values with inline comments: "value" # comment"""
    if value.startswith('"') or value.startswith("'"):
        quote = value[0]
        end_quote = value.find(quote, 1)
        return value[1:end_quote] if end_quote != -1 else value[1:]
    # Unquoted: strip inline comments
    if "#" in value:
        value = value.split("#")[0].strip()
    return value


def _apply(config: Config, key: str, value: str) -> None:
    match key:
        case "working_hours":
            config.work_start, config.work_end = parse_range(value)
        case "working_days":
            config.working_days = _parse_weekdays(value)
        case "buffer_between_blocks":
            config.buffer_between_blocks = int(value)
        case "minimum_slot_size":
            config.minimum_slot_size = int(value)
        case "default_task_duration":
            config.default_task_duration = int(value)
        case "max_suggestions_per_day":
            config.max_suggestions_per_day = int(value)
        case "match_energy_to_tasks":
            config.match_energy_to_tasks = _parse_bool(value)
        case "preferred_slot_times":
            config.preferred_slot_times = SlotPreference(value.strip().lower())
        case "energy_levels":
            config.energy_levels = _parse_energy_levels(value)
        case "focus_time_blocks":
            config.focus_time_blocks = [parse_range(b) for b in value.split(",") if b.strip()]
        case "list_energy_defaults":
            # JSON format: {"Work": "high", "Errands": "low"}
            data = json.loads(value)
            config.list_energy_defaults = {k: EnergyLevel.parse(v) for k, v in data.items()}
        case "min_learned_samples":
            config.min_learned_samples = int(value)
        case "morning_scan_time":
            config.morning_scan_time = parse_clock(value)
        case "reconcile_interval":
            config.reconcile_interval = int(value)
        case "timezone":
            config.timezone = value
        case "calendar_snapshot":
            config.calendar_snapshot = value
        case "task_snapshot":
            config.task_snapshot = value
        case "data_dir":
            config.data_dir = value
        case _:
            logger.debug(f"Ignoring unknown config key {key!r}")


def parse_config(text: str) -> Config:
    """Parse slotwise.conf contents. Bad values are logged and the default kept."""
    config = Config()

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = _strip_value(value.strip())

        try:
            _apply(config, key, value)
        except (ValueError, json.JSONDecodeError, AttributeError) as e:
            logger.warning(f"Invalid value for {key.upper()}: {e}")

    return config


def load_config(path: Path | None = None) -> Config:
    """Load configuration from slotwise.conf file."""
    path = path or CONFIG_FILE
    if not path.exists():
        return Config()
    return parse_config(path.read_text())
