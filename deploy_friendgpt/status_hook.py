import os
import time
from datetime import datetime, timezone

import requests

from .console import print_info, print_warn, print_error


def hook_url_from_env():
    return os.environ.get("DEPLOY_HOOK_URL", "")


def post_status_update(hook_url, status_data, max_retries=3, retry_delay=2, sleep=time.sleep):
    """Send status update to webhook with retry logic"""
    if not hook_url:
        return {"success": True, "status_url": ""}

    step = status_data.get("details", {}).get("step", "unknown")
    print_info(f"Sending status update for step: {step}")

    error_msg = "Unknown error"
    for attempt in range(1, max_retries + 1):
        try:
            response = requests.post(hook_url, json=status_data, timeout=30)
            if response.status_code == 200:
                try:
                    data = response.json()
                except ValueError:
                    data = {}
                return {
                    "success": True,
                    "status_url": data.get("status_url", "") if isinstance(data, dict) else "",
                    "response": data
                }
            error_msg = f"HTTP {response.status_code}"
        except requests.RequestException as e:
            error_msg = str(e)

        if attempt < max_retries:
            print_warn(f"Status update failed (attempt {attempt}/{max_retries}): {error_msg}")
            sleep(retry_delay * attempt)

    print_error(f"Status update failed after {max_retries} attempts: {error_msg}")
    return {"success": False, "error": error_msg, "status_url": ""}


def notify(hook_url, config, status, step, message):
    # config is None when collecting it was what failed
    return post_status_update(
        hook_url=hook_url,
        status_data={
            "instance": config.instance if config else "",
            "status": status,
            "domain": config.domain if config else "",
            "details": {
                "step": step,
                "message": message,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )
