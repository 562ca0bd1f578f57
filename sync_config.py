"""
Configuration for a sync run.

Settings come from ``calendar_config.json`` and the ``SLACK_WEBHOOK_URL``
environment variable. They are loaded once at startup into an immutable
SyncConfig that is passed to the reconciler.
"""
import enum
import json
import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta

from copy_markers import DEFAULT_COPIED_DESC_PREFIX, DEFAULT_COPIED_DESC_SUFFIX, DEFAULT_COPIED_PREFIX
from errors import ConfigError

logger = logging.getLogger(__name__)

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_FILE = os.path.join(SCRIPT_DIR, 'calendar_config.json')
DEFAULT_DAYS_TO_SYNC = 30
WEBHOOK_ENV_VAR = 'SLACK_WEBHOOK_URL'


class StatusConflictPolicy(enum.Enum):
    """
    What to do when the source owner and the guest disagree on their RSVP.

    KEEP_OWNER treats only a decided, differing owner status as a conflict and
    copies the guest's answer otherwise. LEGACY_ANY_DIFFERENCE reproduces an
    older predicate that also counts any difference as a conflict, so in
    practice it never writes.
    """
    KEEP_OWNER = 'keep_owner'
    LEGACY_ANY_DIFFERENCE = 'legacy_any_difference'


@dataclass(frozen=True)
class CalendarPair:
    source: str
    guest: str


@dataclass(frozen=True)
class SyncConfig:
    calendar_pairs: tuple
    slack_webhook_url: str
    days_to_sync: int = DEFAULT_DAYS_TO_SYNC
    copied_prefix: str = DEFAULT_COPIED_PREFIX
    copied_desc_prefix: str = DEFAULT_COPIED_DESC_PREFIX
    copied_desc_suffix: str = DEFAULT_COPIED_DESC_SUFFIX
    status_conflict_policy: StatusConflictPolicy = StatusConflictPolicy.KEEP_OWNER
    notify_on_failure: bool = False
    notify_on_conflict: bool = False
    dry_run: bool = False

    def window(self, now):
        """Return the (start, end) interval scanned in one run."""
        return now, now + timedelta(days=self.days_to_sync)

    def only_source(self, source_id):
        """Return a copy of this config restricted to pairs whose source is ``source_id``."""
        pairs = tuple(pair for pair in self.calendar_pairs if pair.source == source_id)
        if not pairs:
            raise ConfigError(f"No calendar pair with source '{source_id}' in configuration")
        return replace(self, calendar_pairs=pairs)

    def with_dry_run(self, dry_run=True):
        return replace(self, dry_run=dry_run)


def _parse_pairs(raw_pairs):
    if not isinstance(raw_pairs, list) or not raw_pairs:
        raise ConfigError("'calendarIds' must be a non-empty list of [source, guest] pairs")
    pairs = []
    for raw in raw_pairs:
        if isinstance(raw, dict):
            raw = [raw.get('source'), raw.get('guest')]
        if (not isinstance(raw, (list, tuple)) or len(raw) != 2
                or not all(isinstance(value, str) and value for value in raw)):
            raise ConfigError(f"Invalid calendar pair: {raw!r}")
        pairs.append(CalendarPair(source=raw[0], guest=raw[1]))
    return tuple(pairs)


def _parse_policy(value):
    try:
        return StatusConflictPolicy(value)
    except ValueError:
        choices = ', '.join(policy.value for policy in StatusConflictPolicy)
        raise ConfigError(f"Unknown statusConflictPolicy '{value}' (expected one of: {choices})")


def config_from_dict(data, environ=None):
    """Build a SyncConfig from decoded JSON, taking the webhook URL from ``environ`` first."""
    environ = os.environ if environ is None else environ

    webhook_url = environ.get(WEBHOOK_ENV_VAR) or data.get('slackWebhookUrl')
    if not webhook_url:
        raise ConfigError(
            f"You should set the {WEBHOOK_ENV_VAR} environment variable "
            "(or 'slackWebhookUrl' in the config file)"
        )

    days = data.get('daysToSync', DEFAULT_DAYS_TO_SYNC)
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ConfigError(f"'daysToSync' must be a positive integer, got {days!r}")

    copied_prefix = data.get('copiedPrefix', DEFAULT_COPIED_PREFIX)
    if not copied_prefix:
        raise ConfigError("'copiedPrefix' must not be empty")

    return SyncConfig(
        calendar_pairs=_parse_pairs(data.get('calendarIds')),
        slack_webhook_url=webhook_url,
        days_to_sync=days,
        copied_prefix=copied_prefix,
        copied_desc_prefix=data.get('copiedDescPrefix', DEFAULT_COPIED_DESC_PREFIX),
        copied_desc_suffix=data.get('copiedDescSuffix', DEFAULT_COPIED_DESC_SUFFIX),
        status_conflict_policy=_parse_policy(data.get('statusConflictPolicy', StatusConflictPolicy.KEEP_OWNER.value)),
        notify_on_failure=bool(data.get('notifyOnFailure', False)),
        notify_on_conflict=bool(data.get('notifyOnConflict', False)),
    )


def load_config(config_file=DEFAULT_CONFIG_FILE, environ=None):
    """Load calendar configuration from a JSON file."""
    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {config_file}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Failed to parse {config_file}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"{config_file} must contain a JSON object")

    config = config_from_dict(data, environ)
    logger.info(f"Loaded {len(config.calendar_pairs)} calendar pair(s) from {config_file}")
    return config
