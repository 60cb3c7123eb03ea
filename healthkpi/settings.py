import os


def get_env(name: str, default: str | None = None) -> str:
    v = os.getenv(name, default)
    if v is None:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def _optional_float(name: str) -> float | None:
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return float(v)


PROVIDER_API_URL = get_env("PROVIDER_API_URL", "https://api.lonvital.com/v1/health").rstrip("/")
PROVIDER_API_KEY = os.getenv("PROVIDER_API_KEY")  # optional; requests go out unauthenticated without it
PROVIDER_TIMEOUT_S = float(os.getenv("PROVIDER_TIMEOUT_S", "10"))
PROVIDER_PAGE_SIZE = int(os.getenv("PROVIDER_PAGE_SIZE", "100"))
PROVIDER_RETRY_ATTEMPTS = int(os.getenv("PROVIDER_RETRY_ATTEMPTS", "2"))

# Placeholder step averages used when a period has no step records. Unset = disabled.
STEPS_FALLBACK_CURRENT = _optional_float("STEPS_FALLBACK_CURRENT")
STEPS_FALLBACK_PREVIOUS = _optional_float("STEPS_FALLBACK_PREVIOUS")

LOG_DEBUG = os.getenv("LOG_DEBUG", "false").lower() in ("1", "true", "yes", "y")
