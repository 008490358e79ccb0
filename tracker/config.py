import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    data_dir: Path = Path(".tracker_data")
    remote_latency: float = 1.5
    sync_timeout: Optional[float] = 30.0
    retry_interval: Optional[float] = 60.0
    probe_host: Optional[str] = "8.8.8.8"
    probe_port: int = 53
    log_level: str = "INFO"


def _number(env: Mapping[str, str], name: str, default, cast=float):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from the environment (and a ``.env`` file, if present)."""
    if env is None:
        load_dotenv()
        env = os.environ

    timeout = _number(env, "TRACKER_SYNC_TIMEOUT", 30.0)
    retry = _number(env, "TRACKER_RETRY_INTERVAL", 60.0)
    return Settings(
        data_dir=Path(env.get("TRACKER_DATA_DIR", ".tracker_data")),
        remote_latency=_number(env, "TRACKER_REMOTE_LATENCY", 1.5),
        sync_timeout=timeout if timeout > 0 else None,
        retry_interval=retry if retry > 0 else None,
        probe_host=env.get("TRACKER_PROBE_HOST", "8.8.8.8") or None,
        probe_port=_number(env, "TRACKER_PROBE_PORT", 53, int),
        log_level=env.get("TRACKER_LOG_LEVEL", "INFO").upper(),
    )
