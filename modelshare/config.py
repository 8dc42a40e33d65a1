"""Application configuration for the model host, caches and HTTP service.

Settings come from environment variables prefixed with ``MODELSHARE_``.
The manager process inherits the environment, so hosted objects read the
same values as the web process that started them.
"""

import os
from pathlib import Path
from typing import Any, Optional, Tuple

ENV_PREFIX = "MODELSHARE_"

DEFAULT_MODEL_FACTORY = "modelshare.inference.hf_classifier:HFImageClassifier"
DEFAULT_MODEL_ID = "google/vit-base-patch16-224"
DEFAULT_INPUT_SHAPE = (224, 224, 3)


def _env_name(key: str) -> str:
    return f"{ENV_PREFIX}{key.upper()}"


def get_setting(key: str, default: Any = None) -> Optional[str]:
    """
    Get a setting value by key.

    Args:
        key: Setting key, e.g. ``call_timeout_seconds`` for
             ``MODELSHARE_CALL_TIMEOUT_SECONDS``
        default: Default value if setting not found or empty

    Returns:
        Setting value as string, or default if not found
    """
    value = os.getenv(_env_name(key))
    if value is None or value.strip() == "":
        return default
    return value.strip()


def get_setting_int(key: str, default: int = 0) -> int:
    """
    Get a setting value as integer.

    Args:
        key: Setting key
        default: Default value if setting not found or invalid

    Returns:
        Setting value as integer
    """
    value = get_setting(key)
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def get_setting_float(key: str, default: float = 0.0) -> float:
    """Get a setting value as float, falling back to default when invalid."""
    value = get_setting(key)
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def get_app_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


def get_data_dir() -> Path:
    """
    Get the data directory for model storage.

    Checks MODELSHARE_DATA_DIR first, then falls back to {project_root}/data.
    """
    if env_data_dir := get_setting("data_dir"):
        return Path(env_data_dir)
    return get_app_root() / "data"


def get_model_cache_dir() -> Path:
    """Get the HuggingFace cache directory (HF_HOME or {data_dir}/models)."""
    return Path(os.getenv("HF_HOME", get_data_dir() / "models"))


def get_model_factory() -> str:
    """Import string of the callable that builds the hosted model."""
    return get_setting("model_factory", DEFAULT_MODEL_FACTORY)


def get_model_id() -> str:
    return get_setting("model_id", DEFAULT_MODEL_ID)


def get_device() -> Optional[str]:
    """Preferred inference device ('cpu' or 'cuda'), or None for auto."""
    return get_setting("device")


def get_input_shape() -> Tuple[int, ...]:
    """
    Get the fixed input shape the model handle accepts.

    Parsed from a comma separated list, e.g. ``224,224,3``.
    """
    raw = get_setting("input_shape")
    if raw is None:
        return DEFAULT_INPUT_SHAPE
    try:
        shape = tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        return DEFAULT_INPUT_SHAPE
    if not shape or any(dim <= 0 for dim in shape):
        return DEFAULT_INPUT_SHAPE
    return shape


def get_labels_path() -> Optional[Path]:
    """Path of the label map JSON file, if one is configured."""
    path = get_setting("labels_path")
    return Path(path) if path else None


def get_manager_address() -> Optional[Tuple[str, int]]:
    """
    Address the manager process listens on.

    None lets multiprocessing pick its default local transport (a unix
    socket on POSIX, a named pipe on Windows). TCP is used only when
    MODELSHARE_MANAGER_HOST or MODELSHARE_MANAGER_PORT is set; port 0 picks
    a free port. Over TCP, replies larger than 16KiB are sent as a separate
    header and body and stall on delayed ACKs.
    """
    host = get_setting("manager_host")
    port = get_setting("manager_port")
    if host is None and port is None:
        return None
    return (host or "127.0.0.1", get_setting_int("manager_port", 0))


def get_manager_authkey() -> Optional[bytes]:
    """
    Authentication key for manager connections.

    None means the current process authkey, which pool workers inherit.
    """
    key = get_setting("manager_authkey")
    return key.encode() if key else None


def get_start_method() -> str:
    return get_setting("start_method", "spawn")


def get_call_timeout() -> Optional[float]:
    """
    Seconds a single remote call may take before it is abandoned.

    Returns None when the timeout is disabled (setting <= 0).
    """
    timeout = get_setting_float("call_timeout_seconds", 30.0)
    return timeout if timeout > 0 else None


def get_startup_timeout() -> Optional[float]:
    """
    Seconds the model may take to load when the service starts.

    Returns None when the timeout is disabled (setting <= 0).
    """
    timeout = get_setting_float("startup_timeout_seconds", 120.0)
    return timeout if timeout > 0 else None


def get_hf_endpoint() -> str:
    """HuggingFace endpoint URL (HF_ENDPOINT or the public hub)."""
    return os.getenv("HF_ENDPOINT") or "https://huggingface.co"


def get_hf_token() -> Optional[str]:
    """HuggingFace API token for gated models, if configured."""
    return os.getenv("HF_TOKEN") or None
