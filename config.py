"""Runtime settings for the form overlay service.

Everything is read from the environment (optionally via a ``.env`` file) so the
same modules work from the CLI scripts and from the FastAPI app.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Settings:
    def __init__(self) -> None:
        self.data_dir = Path(os.getenv("DATA_DIR", "/tmp/form_overlay")).resolve()
        self.profile_path = Path(os.getenv("PROFILE_PATH", str(self.data_dir / "company_profile.json")))

        # Zoom factor of the interactive editor canvas. Every coordinate
        # conversion receives it explicitly.
        self.editor_scale = float(os.getenv("EDITOR_SCALE", "1.5"))

        self.vault_ttl_hours = int(os.getenv("VAULT_TTL_HOURS", "3"))
        self.vault_secret = os.getenv("VAULT_SECRET", "insecure-default-secret-key-for-dev-only")
        self.max_upload_bytes = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
        self.low_confidence_threshold = float(os.getenv("LOW_CONFIDENCE_THRESHOLD", "80"))
        self.default_form_type = os.getenv("DEFAULT_FORM_TYPE", "SBD4")

        # AWS Textract
        self.aws_region = os.getenv("AWS_REGION", "")
        self.aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID", "")
        self.aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY", "")

        self.log_level = os.getenv("LOG_LEVEL", "INFO")

    @property
    def templates_dir(self) -> Path:
        return self.data_dir / "templates"

    @property
    def vault_dir(self) -> Path:
        return self.data_dir / "vault"

    @property
    def analysis_dir(self) -> Path:
        return self.data_dir / "analysis"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
