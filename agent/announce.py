"""
DevPilot Agent - Announce Loop
================================
Periodically tells the remote controller that this agent is alive, where
it can be reached, and which projects it serves.

This module runs in a background thread (launched by server/manager.py)
and is independent of request handling.  It only reads the project
registry, which never changes after startup.

Protocol:
    POST <announce url>
    X-Agent-Secret: <shared secret>
    Content-Type: application/json

    {"agentId": "node-1", "url": "http://host:port", "projects": [...]}

Cycle:
    1. Send one announce immediately
    2. Wait ``interval`` seconds (or until stop_event is set)
    3. Repeat until stop_event is set

Failures (network errors, non-2xx responses) are logged and the loop
carries on with the next cycle; the controller is expected to tolerate
missed heartbeats.
"""

import threading
from typing import Any

import httpx

from agent.registry import ProjectRegistry


SECRET_HEADER = "X-Agent-Secret"


def build_announce_payload(
    agent_id: str,
    public_url: str,
    registry: ProjectRegistry,
    public: bool = False,
) -> dict[str, Any]:
    """
    Build the JSON body sent to the controller.

    Args:
        agent_id:   This agent's identity from the configuration.
        public_url: URL the controller should use to reach this agent.
        registry:   Projects served by this agent.
        public:     If True, omit project roots and allowlists.
    """
    return {
        "agentId": agent_id,
        "url": public_url,
        "projects": registry.describe(public=public),
    }


def send_announce(
    client: httpx.Client,
    url: str,
    payload: dict[str, Any],
    secret: str | None,
    logger: Any = None,
) -> bool:
    """
    Send one announce request.

    Returns:
        True if the controller answered with a 2xx status.
    """
    headers = {"Content-Type": "application/json"}
    if secret:
        headers[SECRET_HEADER] = secret

    try:
        response = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        if logger:
            logger.info(f"[ANNOUNCE] Heartbeat failed: {type(e).__name__}: {e}")
        return False

    if logger:
        logger.info(f"[ANNOUNCE] Heartbeat sent to {url}. Status: {response.status_code}")
    return response.is_success


def run_announce_loop(
    agent_id: str,
    public_url: str,
    registry: ProjectRegistry,
    url: str,
    secret: str | None = None,
    interval: float = 30,
    timeout: float = 10,
    stop_event: threading.Event | None = None,
    logger: Any = None,
    public: bool = False,
    client: httpx.Client | None = None,
) -> int:
    """
    Main announce loop. Runs in a background thread.

    Blocks until stop_event is set.

    Args:
        agent_id:   This agent's identity.
        public_url: Address advertised to the controller.
        registry:   Projects to advertise.
        url:        Controller heartbeat endpoint.
        secret:     Shared secret sent in the X-Agent-Secret header.
        interval:   Seconds between announces.
        timeout:    Per-request timeout in seconds.
        stop_event: Threading event to signal shutdown.
        logger:     Object with an ``info(text)`` method (AuditLogger).
        public:     Omit project roots and allowlists from the payload.
        client:     Optional pre-built httpx client (used by tests).

    Returns:
        Number of announces attempted.
    """
    if stop_event is None:
        stop_event = threading.Event()

    payload = build_announce_payload(agent_id, public_url, registry, public=public)
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout)

    if logger:
        logger.info(f"[ANNOUNCE] Started | Target: {url} | Interval: {interval}s")

    attempts = 0
    try:
        while not stop_event.is_set():
            send_announce(client, url, payload, secret, logger)
            attempts += 1
            # stop_event.wait() returns early as soon as stop() is called
            stop_event.wait(timeout=interval)
    finally:
        if owns_client:
            client.close()

    if logger:
        logger.info("[ANNOUNCE] Stopped")
    return attempts
