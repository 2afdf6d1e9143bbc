#!/usr/bin/env python3

"""Example script to exercise the async pynetatmo library."""

import asyncio
import json  # To pretty-print JSON output
import logging
import os  # Import os module to access environment variables
import sys

from pynetatmo import ApiError, AuthError, NetatmoClient, ValidationError

# --- Configuration ---
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)

# Read credentials from environment variables
CLIENT_ID = os.getenv("NETATMO_CLIENT_ID")
CLIENT_SECRET = os.getenv("NETATMO_CLIENT_SECRET")
USERNAME = os.getenv("NETATMO_USERNAME")
PASSWORD = os.getenv("NETATMO_PASSWORD")
ACCESS_TOKEN = os.getenv("NETATMO_ACCESS_TOKEN")

if not ACCESS_TOKEN and not (CLIENT_ID and CLIENT_SECRET and USERNAME and PASSWORD):
    logging.error(
        "Set NETATMO_ACCESS_TOKEN, or NETATMO_CLIENT_ID, NETATMO_CLIENT_SECRET, "
        "NETATMO_USERNAME and NETATMO_PASSWORD."
    )
    sys.exit(1)


def on_warning(error: ApiError) -> None:
    """Log recoverable errors reported by the client."""
    logging.warning("Client warning (%s): %s", error.kind.value, error)


# --- Main Async Function ---
async def main() -> None:
    """Run the example using the async library."""
    logging.info("Starting async pynetatmo example script...")
    client = NetatmoClient(
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        username=USERNAME,
        password=PASSWORD,
        access_token=ACCESS_TOKEN,
    )
    client.on("warning", on_warning)
    client.on("authenticated", lambda: logging.info("Authenticated."))

    try:
        async with client:
            # Both calls are issued before authentication completed and run
            # once the token is available.
            stations, homes = await asyncio.gather(
                client.get_stations_data(),
                client.homes_data(),
            )
            logging.info("Found %d weather stations.", len(stations.get("devices", [])))
            for home in homes.get("homes", []):
                logging.info("  Home '%s' (%s)", home.get("name"), home.get("id"))

            if homes.get("homes"):
                home_id = homes["homes"][0]["id"]
                logging.info("Fetching status for home ID: %s...", home_id)
                status = await client.home_status({"home_id": home_id})
                print(json.dumps(status, indent=2))
    except AuthError as e:
        logging.error("Authentication Error: %s", e)
    except ValidationError as e:
        logging.error("Invalid options: %s", e)
    except ApiError as e:
        logging.error("API Error: Status=%s, Message=%s", e.status_code, e.message)


if __name__ == "__main__":
    # Run the async main function
    asyncio.run(main())
