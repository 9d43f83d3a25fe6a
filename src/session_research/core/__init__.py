"""Core module initialization - loads environment variables."""

from pathlib import Path

from dotenv import load_dotenv

# Load the nearest .env so thresholds and model settings are visible to core.config
_env_loaded = False
if not _env_loaded:
    for path in [Path.cwd() / ".env"] + [p / ".env" for p in Path.cwd().parents]:
        if path.exists():
            load_dotenv(path, override=False)
            _env_loaded = True
            break
