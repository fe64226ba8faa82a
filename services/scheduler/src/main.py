import os
import time
from threading import Thread

import requests
import schedule
import uvicorn
from fastapi import FastAPI
from tenacity import RetryError, retry, stop_after_attempt, wait_fixed

from shared.app_logging.logger import setup_logging
from shared.utils.health import create_scheduler_health_checker

# Setup logging
logger = setup_logging("scheduler")

# Get service URLs from environment variables
ENGAGEMENT_URL = os.getenv("ENGAGEMENT_URL", "http://engagement:8000")

REQUEST_TIMEOUT = float(os.getenv("SCHEDULER_HTTP_TIMEOUT", "30"))
CLEANUP_AT = os.getenv("SCHEDULER_CLEANUP_AT", "03:30")
CLEANUP_MAX_ATTEMPTS = int(os.getenv("SCHEDULER_CLEANUP_MAX_ATTEMPTS", "3"))

health_checker = create_scheduler_health_checker(ENGAGEMENT_URL)


@retry(stop=stop_after_attempt(CLEANUP_MAX_ATTEMPTS), wait=wait_fixed(5))
def trigger_cleanup():
    """Ask the engagement service to delete stale, unfavorited articles."""
    url = f"{ENGAGEMENT_URL}/maintenance/cleanup"
    logger.info(f"Triggering article cleanup at {url}")
    response = requests.post(url, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    result = response.json()
    logger.info(f"🧹 Cleanup removed {result.get('removed', 0)} articles")
    return result


def daily_job():
    """The job to be run daily."""
    logger.info("Starting daily cleanup job...")

    try:
        trigger_cleanup()
    except RetryError:
        logger.warning("Cleanup failed after %s attempts; deferring to next schedule", CLEANUP_MAX_ATTEMPTS)
        return

    logger.info("Daily job completed successfully.")


def run_schedule():
    """Run the scheduler."""
    schedule.every().day.at(CLEANUP_AT).do(daily_job)

    while True:
        schedule.run_pending()
        time.sleep(1)


# FastAPI app for health checks
app = FastAPI()


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/health/ready")
def readiness_check():
    return health_checker.readiness()


def run_fastapi():
    """Run the FastAPI app."""
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("SCHEDULER_PORT", "8005")))


if __name__ == "__main__":
    # Run the scheduler in a separate thread
    scheduler_thread = Thread(target=run_schedule, daemon=True)
    scheduler_thread.start()

    # Run the FastAPI app in the main thread
    run_fastapi()
