"""
heatdash package
~~~~~~~~~~~~~~~~
Flask application factory + service wiring.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from flask import Flask

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults - override through the environment (or a .env file).
# ---------------------------------------------------------------------------
DEFAULT_CONFIG = {
    "FINNHUB_API_KEY":          None,
    "COINGECKO_API_KEY":        None,
    "HEATDASH_STORAGE":         "file",        # file | dynamodb | memory
    "HEATDASH_CACHE_DIR":       str(Path(__file__).parent.parent / "cache"),
    "HEATDASH_DDB_TABLE":       "heatdash-snapshots",
    "AWS_REGION":               "us-east-1",
    "HEATDASH_WARMER_INTERVAL": 300,           # seconds between background refresh passes
}


@dataclass
class Services:
    sp500:    object
    sectors:  object
    crypto:   object
    earnings: object
    profiles: object

    def heatmaps(self) -> dict:
        return {"sp500": self.sp500, "sectors": self.sectors, "crypto": self.crypto}


def _load_secrets_from_ssm() -> None:
    """Fetch API keys from AWS SSM Parameter Store into os.environ.

    Only runs when boto3 is available and credentials exist.
    Falls back silently so local dev (plain env vars) is unaffected.
    """
    try:
        import boto3
        from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
    except ImportError:
        return  # boto3 not installed - skip

    ssm_params = {
        "/heatdash/FINNHUB_API_KEY":   "FINNHUB_API_KEY",
        "/heatdash/COINGECKO_API_KEY": "COINGECKO_API_KEY",
    }
    if all(os.environ.get(k) for k in ssm_params.values()):
        return

    try:
        ssm = boto3.client("ssm", region_name=os.environ.get("AWS_REGION", "us-east-1"))
        for param_name, env_key in ssm_params.items():
            if os.environ.get(env_key):
                continue  # already set locally - don't overwrite
            try:
                resp = ssm.get_parameter(Name=param_name, WithDecryption=True)
                os.environ[env_key] = resp["Parameter"]["Value"]
                log.info("SSM: loaded %s -> %s", param_name, env_key)
            except ClientError as e:
                if e.response["Error"]["Code"] != "ParameterNotFound":
                    log.warning("SSM: could not fetch %s: %s", param_name, e)
    except NoCredentialsError:
        pass  # not on AWS - skip silently
    except BotoCoreError as exc:
        log.warning("SSM: unexpected error: %s", exc)


def _config_from_env() -> dict:
    cfg = dict(DEFAULT_CONFIG)
    for key in cfg:
        if os.environ.get(key):
            cfg[key] = os.environ[key]
    cfg["HEATDASH_WARMER_INTERVAL"] = int(cfg["HEATDASH_WARMER_INTERVAL"])
    return cfg


def build_services(config: dict) -> Services:
    """Wire storage, provider client and the per-domain services."""
    from heatdash.cache import make_storage
    from heatdash.data import ApiClient
    from heatdash.earnings import EarningsService
    from heatdash.markets import CryptoService, SectorService, Sp500Service
    from heatdash.profiles import ProfileService

    storage = make_storage(
        config["HEATDASH_STORAGE"],
        cache_dir=config["HEATDASH_CACHE_DIR"],
        table_name=config["HEATDASH_DDB_TABLE"],
        region=config["AWS_REGION"],
    )
    client   = ApiClient(config["FINNHUB_API_KEY"], config["COINGECKO_API_KEY"])
    profiles = ProfileService(client, storage)
    return Services(
        sp500=Sp500Service(storage, profiles),
        sectors=SectorService(storage),
        crypto=CryptoService(storage, client),
        earnings=EarningsService(storage, client, profiles),
        profiles=profiles,
    )


def create_app(config: Optional[dict] = None, services: Optional[Services] = None,
               start_threads: bool = True) -> Flask:
    """Create and configure the Flask application."""
    # Load .env from the project root so API keys are available even when
    # the server is started outside an interactive shell.
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except ImportError:
        pass

    # Configure logging so INFO messages appear in the terminal
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if services is None:
        _load_secrets_from_ssm()

    app = Flask(__name__)
    app.secret_key = os.environ.get("HEATDASH_SECRET_KEY", "heatdash-dev-secret")  # flash messages
    app.config.update(_config_from_env())
    app.config.update(config or {})

    app.extensions["heatdash"] = services or build_services(app.config)

    from heatdash.routes import bp, start_background_thread
    app.register_blueprint(bp)

    from heatdash.timeutil import format_est_time

    @app.template_filter("esttime")
    def esttime(iso):
        return format_est_time(iso) or "--"

    # Background warmer keeps every domain fresh on its own cadence.
    if start_threads:
        start_background_thread(app.extensions["heatdash"], app.config["HEATDASH_WARMER_INTERVAL"])

    return app
