from pathlib import Path
from dataclasses import dataclass, fields
from pydantic import BaseModel, Field
from loguru import logger
import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[1]

class DeploymentSettings(BaseModel):
    hostname: str = "localhost"
    production_hostname: str = "result.mahmedraza.fun"
    port: int = 5000

    @property
    def is_production(self) -> bool:
        return self.hostname == self.production_hostname

    @property
    def api_base_url(self) -> str:
        """
        Base URL the batch client prefixes to /api/... paths.

        In production the API is served from the same origin as the
        frontend, so the base is empty and paths stay relative.
        Everywhere else the API is reached on the local dev server.
        """
        if self.is_production:
            return ""
        return f"http://{self.hostname}:{self.port}"


class RunRequest(BaseModel):
    """Bounds the search form enforces on a user-requested run."""

    start_id: int = Field(default=409360, ge=400000, le=500000)
    total: int = Field(default=100, ge=1, le=500)
    batch_size: int = Field(default=10, ge=1, le=50)


@dataclass
class ResultConfig:
    """
    Central configuration for fetching, serving and batching.

    Values can be overridden via result_config.yaml at the project root.
    The retry/timeout numbers were tuned against one upstream site's
    rate limiting, treat them as deployment defaults.
    """

    # Upstream
    upstream_url_template: str = "https://bisefsd.edu.pk/results/{roll}.html"
    relay_url_template: str = "https://corsproxy.io/?{url}"
    referer: str = "https://bisefsd.edu.pk/"
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/116.0.0.0 Safari/537.36"
    )

    # HTTP client tuning
    request_timeout_s: float = 10.0
    max_redirects: int = 5

    # HTTP retries
    max_retries: int = 3
    retry_delay_s: float = 1.0

    # Server
    host: str = "0.0.0.0"
    port: int = 5000
    static_dir: str = "dist"

    # Batch defaults
    batch_size: int = 10
    default_start_id: int = 409360
    default_total: int = 100

    @property
    def static_path(self) -> Path:
        p = Path(self.static_dir)
        return p if p.is_absolute() else PROJECT_ROOT / p

def load_result_config(path: str | Path | None = None) -> ResultConfig:
    """
    Load ResultConfig from YAML if present; otherwise use defaults.

    By default, looks for `result_config.yaml` at the project root.
    """

    if path is None:
        path = PROJECT_ROOT / "result_config.yaml"

    path = Path(path)

    if not path.exists():
        logger.debug(f"[config] YAML not found at {path}, using defaults")
        return ResultConfig()

    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}

    if not isinstance(data, dict):
        logger.warning(f"[config] Expected mapping in {path}, got {type(data)}, using defaults")
        return ResultConfig()

    allowed_keys = {f.name for f in fields(ResultConfig)}
    ignored = sorted(set(data) - allowed_keys)
    if ignored:
        logger.warning(f"[config] Ignoring unknown keys in {path}: {', '.join(map(str, ignored))}")
    filtered = {k: v for k, v in data.items() if k in allowed_keys}

    return ResultConfig(**filtered)

DEFAULT_RESULT_CONFIG = load_result_config()
