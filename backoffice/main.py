#!/usr/bin/env python3
"""
Fleet Backoffice

Main entry point. Opens the local stores, starts the shared HTTP session
used for every backend and Keycloak call, and serves the web GUI until
SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal
from pathlib import Path

import aiohttp

from backoffice.activity import activity
from backoffice.api.client import HalClient
from backoffice.api.registration import RegistrationApi
from backoffice.auth.oauth import KeycloakClient
from backoffice.config import Config
from backoffice.journal import ActionJournal
from backoffice.settings_store import SettingsStore
from backoffice.web.server import WebServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("backoffice")

DISPLAY_SECTION = "display"


async def load_display(config: Config, settings_store: SettingsStore) -> dict:
    """YAML display defaults with the saved preference overrides on top."""
    display = {
        "currency": config.display.currency,
        "locale": config.display.locale,
        "page_size": config.display.page_size,
    }
    overrides = await settings_store.get_section(DISPLAY_SECTION)
    display.update({k: v for k, v in overrides.items() if k in display})
    return display


async def main() -> None:
    """Main application entry point."""
    logger.info("=" * 50)
    logger.info("Fleet Backoffice starting...")
    logger.info("=" * 50)

    activity_log_file = Path(__file__).parent.parent / "logs" / "activity.log"
    activity.configure(log_file=activity_log_file, console=True)

    config = Config.load()
    app_name = config.app_name
    activity.start(app_name)

    if config.session.secret == "change-me-to-a-long-random-secret":
        logger.warning("SESSION_SECRET not set - using the built-in default. Set it in .env!")
    if not config.keycloak.client_secret:
        logger.warning("KEYCLOAK_CLIENT_SECRET not set - token exchange will fail")

    # Local SQLite stores (share one DB file)
    settings_store = SettingsStore()
    await settings_store.open(config.db_path)

    journal = ActionJournal(config.db_path)
    await journal.open()

    display = await load_display(config, settings_store)
    logger.info(f"Display: {display['currency']} / {display['locale']} / {display['page_size']} rows")

    # One HTTP session for the backend, the registration host and Keycloak
    http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=config.backend.timeout))

    hal = HalClient(config.backend.api_base_url, session=http, timeout=config.backend.timeout)
    registration = RegistrationApi(
        HalClient(config.backend.registration_url, session=http, timeout=config.backend.timeout),
    )
    keycloak = KeycloakClient(
        config.keycloak,
        app_base_url=config.web.app_base_url,
        backend_url=config.backend.api_base_url,
        session=http,
    )
    logger.info(f"Backend: {config.backend.api_base_url}")
    logger.info(f"Keycloak: {config.keycloak.issuer} (client {config.keycloak.client_id})")

    web_server = WebServer(
        config=config,
        hal=hal,
        keycloak=keycloak,
        registration=registration,
        journal=journal,
        settings_store=settings_store,
        display=display,
    )

    shutdown_event = asyncio.Event()

    try:
        await hal.start()
        await keycloak.start()
        await web_server.start()

        logger.info(f"{app_name} is running at {config.web.app_base_url}")

        def handle_shutdown(sig: signal.Signals) -> None:
            logger.info(f"Received {sig.name}, initiating shutdown...")
            shutdown_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_shutdown, sig)

        await shutdown_event.wait()

    except Exception as e:
        logger.exception(f"Error running {app_name}: {e}")
        activity.error(str(e))
    finally:
        async def _cleanup() -> None:
            """Shut down all services in reverse order."""
            await web_server.stop()
            await keycloak.stop()
            await hal.stop()
            await http.close()
            await journal.close()
            await settings_store.close()

        try:
            await asyncio.wait_for(_cleanup(), timeout=8.0)
        except asyncio.TimeoutError:
            logger.warning("Cleanup timed out after 8s, exiting anyway")
        except Exception:
            logger.exception("Error during cleanup")

        activity.stop(app_name)
        logger.info(f"{app_name} stopped.")


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
