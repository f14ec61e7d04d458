import os
import sys
import time
from datetime import datetime, timezone

import requests

# CONFIGURATION
API_URL = os.environ.get("SWAPTRACK_API_URL", "http://localhost:8000")
SLACK_WEBHOOK_URL = os.environ.get("SLACK_WEBHOOK_URL")
POLL_INTERVAL_SECONDS = 60     # Check every minute
ALERT_COOLDOWN_SECONDS = 900   # 15 minutes between same-type alerts
PENDING_QUEUE_THRESHOLD = 500  # Enrichment backlog worth a page
REQUEST_TIMEOUT_SECONDS = 5

# ANSI colors
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RESET = "\033[0m"


class Monitor:
    """
    Polls the operator API and alerts on a stopped tracker, a stalled stream,
    a growing enrichment backlog or dropped side effects.
    """

    def __init__(self, api_url: str = API_URL, session=None):
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self.last_alerts = {}
        self.last_slot = None
        self.last_dropped = 0
        self.alerts_sent = []

    def send_alert(self, title, message):
        """
        Sends alert if not in cooldown.
        """
        now = time.time()
        last_time = self.last_alerts.get(title, 0)

        if now - last_time < ALERT_COOLDOWN_SECONDS:
            print(f"{YELLOW}[SKIP] Alert '{title}' suppressed (cooldown){RESET}")
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        print(f"{RED}ALERT: [{timestamp}] {title}: {message}{RESET}", file=sys.stderr)

        if SLACK_WEBHOOK_URL:
            try:
                self.session.post(
                    SLACK_WEBHOOK_URL,
                    json={"text": f"*{title}*\n{message}\nTime: {timestamp}"},
                    timeout=REQUEST_TIMEOUT_SECONDS,
                )
            except requests.RequestException as e:
                print(f"{YELLOW}Failed to send Slack alert: {e}{RESET}", file=sys.stderr)

        self.last_alerts[title] = now
        self.alerts_sent.append(title)

    def _get(self, path):
        resp = self.session.get(f"{self.api_url}{path}", timeout=REQUEST_TIMEOUT_SECONDS)
        resp.raise_for_status()
        return resp.json()

    def check(self):
        try:
            status = self._get("/api/status")
            queue = self._get("/api/queue")
        except requests.RequestException as e:
            self.send_alert("API Unreachable", f"{self.api_url}: {e}")
            return

        # 1. Tracker down while wallets are configured
        if status.get("addresses") and not status.get("is_running"):
            self.send_alert(
                "Tracker Stopped",
                f"{len(status['addresses'])} wallets configured but the stream is not running.",
            )
            return

        # 2. Stream stalled (slot not advancing between polls)
        slot = status.get("last_slot")
        if status.get("is_running") and slot is not None and slot == self.last_slot:
            self.send_alert("Stream Stalled", f"Slot stuck at {slot} for {POLL_INTERVAL_SECONDS}s.")
        self.last_slot = slot

        # 3. Enrichment backlog
        pending = queue.get("token_queue", {}).get("queue_size", 0)
        if pending > PENDING_QUEUE_THRESHOLD:
            self.send_alert("Enrichment Backlog", f"{pending} tokens waiting for enrichment.")

        # 4. Side effects dropped since the last poll
        dropped = queue.get("side_effects", {}).get("dropped", 0)
        if dropped > self.last_dropped:
            self.send_alert("Side Effects Dropped", f"{dropped - self.last_dropped} writes dropped (queue full).")
        self.last_dropped = dropped

        print(f"{GREEN}[OK] slot={slot} pending={pending} dropped={dropped}{RESET}")


if __name__ == "__main__":
    monitor = Monitor()
    print(f"Starting Monitor against {API_URL}...")
    while True:
        monitor.check()
        time.sleep(POLL_INTERVAL_SECONDS)
