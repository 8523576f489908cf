"""
DevPilot Agent - Announce Manager
===================================
Owns the lifecycle of the background announce thread.

The announce loop runs in a separate daemon thread so the HTTP server
stays responsive.  The FastAPI lifespan hook calls start() when the app
starts serving and stop() on shutdown; stopping is explicit (event set +
thread join), never left to interpreter exit.

States:
    - "disabled" : No announce URL configured
    - "idle"     : Configured but not started, or stopped
    - "running"  : Loop thread alive

Usage:
    manager = AnnounceManager(agent_id, public_url, registry, announce_cfg, secret, logger)
    manager.start()
    manager.stop()
"""

import threading
from typing import Any

from agent.announce import run_announce_loop
from agent.registry import ProjectRegistry


class AnnounceManager:
    """
    Controls the announce thread.

    Attributes:
        agent_id:   This agent's identity.
        public_url: Address advertised to the controller.
        registry:   Projects advertised.
        url:        Controller heartbeat endpoint ("" disables announcing).
        interval:   Seconds between announces.
        timeout:    Per-request timeout in seconds.
        secret:     Shared secret for the X-Agent-Secret header.
        public:     Omit roots and allowlists from announces.
        attempts:   Announces attempted by the last finished loop.
    """

    def __init__(
        self,
        agent_id: str,
        public_url: str,
        registry: ProjectRegistry,
        announce_config: dict | None = None,
        secret: str | None = None,
        logger: Any = None,
        public: bool = False,
    ):
        cfg = announce_config or {}
        self.agent_id = agent_id
        self.public_url = public_url
        self.registry = registry
        self.url: str = cfg.get("url") or ""
        self.interval: float = float(cfg.get("interval", 30))
        self.timeout: float = float(cfg.get("timeout", 10))
        self.secret = secret
        self.logger = logger
        self.public = public
        self.attempts = 0

        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def state(self) -> str:
        if not self.enabled:
            return "disabled"
        return "running" if self.is_running else "idle"

    def _run(self) -> None:
        """Thread target: runs the announce loop until stopped."""
        try:
            self.attempts = run_announce_loop(
                agent_id=self.agent_id,
                public_url=self.public_url,
                registry=self.registry,
                url=self.url,
                secret=self.secret,
                interval=self.interval,
                timeout=self.timeout,
                stop_event=self._stop_event,
                logger=self.logger,
                public=self.public,
            )
        except Exception as e:
            if self.logger:
                self.logger.info(f"[FATAL] Announce loop error: {type(e).__name__}: {e}")

    def start(self) -> bool:
        """
        Start the announce loop in a background thread.

        Returns:
            True if a thread was started; False when announcing is
            disabled or the loop is already running.
        """
        if not self.enabled:
            if self.logger:
                self.logger.info("[ANNOUNCE] Disabled (no announce.url configured)")
            return False
        if self.is_running:
            return False

        if not self.secret and self.logger:
            self.logger.info("[WARN] No announce secret configured; sending without X-Agent-Secret")

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="devpilot-announce",
        )
        self._thread.start()
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the announce loop and wait for the thread to exit.

        An in-flight request finishes (bounded by the request timeout)
        before the thread exits.
        """
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=max(timeout, self.timeout))
        self._thread = None
