"""Environment-driven configuration for service package synchronization."""
import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional, Tuple

from processor.errors import ConfigurationError, MissingCredential

API_KEY_VARIABLE = 'CALCOM_API_KEY'


class SyncMode(str, Enum):
    """Reconciliation mode."""
    SYNC = 'sync'
    FULL_SYNC = 'full-sync'
    DELETE = 'delete'


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one reconciliation run."""
    api_key: str = ''
    api_base_url: str = 'https://api.cal.com/v1'
    catalog_source: str = 'packages.json'
    deletion_manifest: str = 'packages-delete.json'
    mode: SyncMode = SyncMode.SYNC
    owner_id: Optional[str] = None
    page_size: int = 100
    max_pages: int = 1000
    include_hidden: bool = True
    slug_fallback: bool = True
    max_retries: int = 3
    retry_base_delay: float = 5.0
    max_retry_delay: float = 60.0
    request_delay: float = 1.0
    timeout_seconds: int = 30
    update_method: str = 'PUT'
    credential_placement: Tuple[str, ...] = ('bearer',)
    api_key_header: str = 'X-Calcom-Api-Key'
    api_key_param: str = 'apiKey'
    currency: str = 'cad'
    default_location: str = 'Toronto, ON'
    log_level: str = 'INFO'
    audit_log_path: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        require_credential: bool = True
    ) -> 'SyncConfig':
        """
        Build the configuration from environment variables.

        Args:
            environ: Variables to read (default: os.environ)
            require_credential: Raise if the API key is missing

        Returns:
            SyncConfig instance

        Raises:
            MissingCredential: If the API key is required but blank
            ConfigurationError: If a value cannot be interpreted
        """
        env = os.environ if environ is None else environ
        api_key = env.get(API_KEY_VARIABLE, '').strip()
        if require_credential and not api_key:
            raise MissingCredential(
                f"{API_KEY_VARIABLE} environment variable is not set or empty"
            )

        defaults = cls()
        placement = tuple(
            part.strip().lower()
            for part in env.get('CREDENTIAL_PLACEMENT', 'bearer').split(',')
            if part.strip()
        )
        return cls(
            api_key=api_key,
            api_base_url=env.get('API_BASE_URL', defaults.api_base_url),
            catalog_source=env.get('CATALOG_SOURCE', defaults.catalog_source),
            deletion_manifest=env.get('DELETION_MANIFEST', defaults.deletion_manifest),
            mode=parse_mode(env.get('SYNC_MODE', defaults.mode.value)),
            owner_id=env.get('OWNER_ID', '').strip() or None,
            page_size=_integer(env, 'PAGE_SIZE', defaults.page_size),
            max_pages=_integer(env, 'MAX_PAGES', defaults.max_pages),
            include_hidden=_boolean(env, 'INCLUDE_HIDDEN', defaults.include_hidden),
            slug_fallback=_boolean(env, 'SLUG_FALLBACK', defaults.slug_fallback),
            max_retries=_integer(env, 'MAX_RETRIES', defaults.max_retries, minimum=0),
            retry_base_delay=_number(env, 'RETRY_BASE_DELAY', defaults.retry_base_delay),
            max_retry_delay=_number(env, 'MAX_RETRY_DELAY', defaults.max_retry_delay),
            request_delay=_number(env, 'REQUEST_DELAY', defaults.request_delay),
            timeout_seconds=_integer(env, 'TIMEOUT_SECONDS', defaults.timeout_seconds),
            update_method=env.get('UPDATE_METHOD', defaults.update_method).upper(),
            credential_placement=placement,
            api_key_header=env.get('API_KEY_HEADER', defaults.api_key_header),
            api_key_param=env.get('API_KEY_PARAM', defaults.api_key_param),
            currency=env.get('CURRENCY', defaults.currency),
            default_location=env.get('DEFAULT_LOCATION', defaults.default_location),
            log_level=env.get('LOG_LEVEL', defaults.log_level),
            audit_log_path=env.get('AUDIT_LOG_PATH') or None
        )

    def with_overrides(self, **changes) -> 'SyncConfig':
        """Return a copy with the non-None changes applied."""
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def parse_mode(value: str) -> SyncMode:
    try:
        return SyncMode(value.strip().lower())
    except ValueError as e:
        choices = ', '.join(mode.value for mode in SyncMode)
        raise ConfigurationError(f"SYNC_MODE must be one of {choices}, got {value!r}") from e


def _integer(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {value}")
    return value


def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _boolean(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in ('1', 'true', 'yes', 'y'):
        return True
    if value in ('0', 'false', 'no', 'n'):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")
