import os
import re

from dotenv import find_dotenv, load_dotenv

from payment_categorizer.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "ML_ACCEPT_THRESHOLD",
    "ML_SUGGESTION_THRESHOLD",
    "ML_SMOOTHING_ALPHA",
    "PAYEE_FUZZY_THRESHOLD",
    "BATCH_WORKERS",
    "TRAINING_PAGE_SIZE",
    "USE_DEFAULT_RULES",
    "USE_DEFAULT_SAMPLES",
)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


# KEY: value, optional quotes around the value, optional trailing "# comment".
_CONFIG_LINE_RE = re.compile(
    r"""^(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*:\s*
        (?:"(?P<double>[^"]*)"|'(?P<single>[^']*)'|(?P<bare>[^#]*?))
        \s*(?:\#.*)?$""",
    re.VERBOSE,
)


def _config_dir_candidates(filename: str) -> list[str]:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return [os.path.join(config_dir, filename)]
    cwd = os.getcwd()
    return [os.path.join(cwd, "config", filename), os.path.join(cwd, filename)]


def _dotenv_path() -> str | None:
    for candidate in _config_dir_candidates(".env"):
        if os.path.exists(candidate):
            return candidate
    return find_dotenv(usecwd=True) or None


def _config_file_path() -> str:
    candidates = _config_dir_candidates(CONFIG_FILENAME)
    existing = [candidate for candidate in candidates if os.path.exists(candidate)]
    return existing[0] if existing else candidates[-1]


def read_config_file(path: str | None) -> dict[str, str]:
    """Parse a flat ``KEY: value`` file. Nested YAML is ignored."""
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            match = _CONFIG_LINE_RE.match(line.strip())
            if not match:
                continue
            value = next((group for group in match.group("double", "single", "bare") if group), None)
            if value:
                values[match.group("key")] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    _EXTERNAL_ENV_KEYS = set(os.environ)

    _CONFIG_FILE_PATH = _config_file_path()
    file_values = read_config_file(_CONFIG_FILE_PATH)
    # Real environment variables (and .env) beat config.yaml.
    for key in _CONFIG_KEYS:
        if key in file_values:
            os.environ.setdefault(key, file_values[key])


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dirs(*paths: str | None) -> None:
    for path in paths:
        if path and path not in {".", "./"}:
            os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_float(
    name: str,
    default: float = 0.0,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if (min_value is not None and value < min_value) or (max_value is not None and value > max_value):
        logger.warning(
            "[ENV] %s='%s' outside [%s, %s], using default %s.",
            name,
            raw,
            min_value,
            max_value,
            default,
        )
        return default
    return value


def get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
    return default


_SENSITIVE_ENV_KEYS = ("KEY", "TOKEN", "SECRET", "PASSWORD", "PASS", "AUTH", "PRIVATE")


def _mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not any(marker in name.upper() for marker in _SENSITIVE_ENV_KEYS):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def log_environment() -> None:
    logger.info("[ENV] Effective configuration (config file: %s).", _CONFIG_FILE_PATH or "<none>")
    for key in _CONFIG_KEYS:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else _mask_env_value(key, raw_value)
        source = "env" if is_env_override(key) else "file/default"
        logger.info("[ENV] %s=%s (%s)", key, value, source)


DEFAULT_ML_ACCEPT_THRESHOLD = 0.7
DEFAULT_TRAINING_PAGE_SIZE = 50

# SSE headers to reduce proxy buffering and keep connections alive.
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")
CONFIG_DIR = os.getenv("CONFIG_DIR")

ensure_dirs(DATA_DIR, LOG_DIR, CONFIG_DIR)


def ml_accept_threshold() -> float:
    return get_env_float("ML_ACCEPT_THRESHOLD", DEFAULT_ML_ACCEPT_THRESHOLD, min_value=0.0, max_value=1.0)


def ml_suggestion_threshold() -> float:
    return get_env_float("ML_SUGGESTION_THRESHOLD", 0.0, min_value=0.0, max_value=1.0)


def ml_smoothing_alpha() -> float:
    alpha = get_env_float("ML_SMOOTHING_ALPHA", 1.0, min_value=0.0)
    if alpha <= 0:
        logger.warning("[ENV] ML_SMOOTHING_ALPHA must be positive, using 1.0.")
        return 1.0
    return alpha


def payee_fuzzy_threshold() -> float:
    return get_env_float("PAYEE_FUZZY_THRESHOLD", 0.0, min_value=0.0, max_value=100.0)


def batch_workers() -> int:
    return get_env_int("BATCH_WORKERS", 1, min_value=1)


def use_default_rules() -> bool:
    return get_env_bool("USE_DEFAULT_RULES", True)


def use_default_samples() -> bool:
    return get_env_bool("USE_DEFAULT_SAMPLES", True)


TRAINING_PAGE_SIZE = get_env_int(
    "TRAINING_PAGE_SIZE",
    DEFAULT_TRAINING_PAGE_SIZE,
    min_value=1,
)
