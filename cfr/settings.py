from __future__ import annotations

import os
import re
from dataclasses import dataclass


_CANONICAL_PREFIX_RE = re.compile(r"[a-z0-9][a-z0-9 _]*")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _default_socket() -> str:
    # systemd hands us a runtime directory when RuntimeDirectory= is set.
    explicit = os.getenv("CFR_SOCKET")
    if explicit:
        return explicit
    runtime_dir = os.getenv("RUNTIME_DIRECTORY")
    if runtime_dir:
        return os.path.join(runtime_dir, "cfr.sock")
    return "cfr.sock"


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("CFR_DB_PATH", "cfr.db")
    enable_journal: bool = _env_bool("CFR_ENABLE_JOURNAL", True)
    log_level: str = os.getenv("CFR_LOG_LEVEL", "INFO")
    socket_path: str = _default_socket()

    # Scheduling
    apply_interval_s: int = _env_int("CFR_APPLY_INTERVAL_S", 300)
    binding_interval_s: int = _env_int("CFR_BINDING_INTERVAL_S", 60)
    watch_poll_s: int = _env_int("CFR_WATCH_POLL_S", 1)
    event_queue_size: int = _env_int("CFR_EVENT_QUEUE_SIZE", 30)

    # Units
    definition_ext: str = os.getenv("CFR_DEFINITION_EXT", ".yaml")
    name_prefix: str = os.getenv("CFR_NAME_PREFIX", "cfr_")
    volume_namespace: str = os.getenv("CFR_VOLUME_NAMESPACE", "cfr")

    # Bindings
    label_prefix: str = os.getenv("CFR_LABEL_PREFIX", "org.cfr")

    # External binaries
    docker_bin: str = os.getenv("CFR_DOCKER_BIN", "docker")
    service_bin: str = os.getenv("CFR_SERVICE_BIN", "/usr/sbin/service")

    def __post_init__(self) -> None:
        # A prefix that needs normalizing itself would make name normalization unstable.
        if self.name_prefix and not _CANONICAL_PREFIX_RE.fullmatch(self.name_prefix):
            raise ValueError(
                f"CFR_NAME_PREFIX must be lowercase [a-z0-9 _] starting with a letter or digit, got {self.name_prefix!r}"
            )


settings = Settings()
