"""
Dashboard Bridge - pushes console state changes to the web dashboard.

Events (Socket.IO):
    mapping_updated: {"mapping": [...], "sequence": n}
    geofence_updated: {"vertices": [[x, y], ...], "altitude_ceiling": h, "sequence": n}
    computation_failed: {"computation": name, "error": message, "error_type": cls, "sequence": n}
    status: periodic console status while the bridge is started
    command_failed: {"error": message, "error_type": cls} for a rejected command

Commands (Socket.IO, from the dashboard):
    telemetry: [{"id": ..., "position": [...], "status": ...}, ...]
    recalculate_mapping, augment_mapping
    geofence_settings: {"horizontalMargin": ..., "verticalMargin": ...,
                        "simplify": ..., "maxVertexCount": ...}

Usage:
    >>> app, socketio, bridge = create_dashboard_server(console)
    >>> console.set_dashboard_bridge(bridge)
    >>> bridge.start()
    >>> socketio.run(app, host="0.0.0.0", port=8085)
"""

import logging
import threading
import time
from typing import Optional

from flask import Flask
from flask_socketio import SocketIO, emit

from .config import (
    DASHBOARD_STATUS_INTERVAL_SEC,
    FLASK_SECRET_KEY,
    SOCKETIO_CORS_ORIGINS,
    SOCKETIO_PING_INTERVAL,
    SOCKETIO_PING_TIMEOUT,
)
from .errors import ShowConsoleError
from .scheduler import ComputationOutcome

logger = logging.getLogger(__name__)


class DashboardBridge:
    """Bridge between the show console and the web dashboard"""

    def __init__(self, console, socketio: SocketIO, status_interval: float = 1.0):
        self.console = console
        self.socketio = socketio
        self.status_interval = status_interval
        self._stop_event = threading.Event()
        self.update_thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.update_thread is not None and self.update_thread.is_alive()

    def start(self):
        """Start streaming console status to the dashboard"""
        self._stop_event.clear()
        self.update_thread = threading.Thread(target=self._update_loop, daemon=True)
        self.update_thread.start()
        logger.info("Dashboard bridge started")

    def stop(self):
        self._stop_event.set()
        if self.update_thread:
            self.update_thread.join()
        self.update_thread = None
        logger.info("Dashboard bridge stopped")

    def _update_loop(self):
        while not self._stop_event.is_set():
            try:
                self.socketio.emit("status", self.console.get_status())
            except Exception as e:
                logger.error(f"Dashboard update error: {e}")

            self._stop_event.wait(self.status_interval)

    def notify_mapping_updated(self, mapping, sequence: Optional[int] = None):
        self.socketio.emit("mapping_updated", {
            "mapping": list(mapping),
            "sequence": sequence,
            "timestamp": time.time(),
        })

    def notify_geofence_updated(self, geofence, sequence: Optional[int] = None):
        event_data = geofence.to_dict()
        event_data["sequence"] = sequence
        event_data["timestamp"] = time.time()
        self.socketio.emit("geofence_updated", event_data)

    def notify_computation_failed(self, outcome: ComputationOutcome):
        """
        Report a failed computation.

        The dashboard keeps showing the previous mapping/geofence; this event
        only explains why it was not replaced.
        """
        self.socketio.emit("computation_failed", {
            "computation": outcome.name,
            "error": str(outcome.error),
            "error_type": type(outcome.error).__name__,
            "sequence": outcome.sequence,
            "timestamp": time.time(),
        })


def create_dashboard_server(console, status_interval: float = DASHBOARD_STATUS_INTERVAL_SEC):
    """
    Build the Flask/Socket.IO server for a console.

    Returns:
        (app, socketio, bridge); the caller wires the bridge into the console
        and runs the server.
    """
    app = Flask(__name__)
    app.config["SECRET_KEY"] = FLASK_SECRET_KEY
    socketio = SocketIO(
        app,
        cors_allowed_origins=SOCKETIO_CORS_ORIGINS,
        ping_timeout=SOCKETIO_PING_TIMEOUT,
        ping_interval=SOCKETIO_PING_INTERVAL,
    )
    bridge = DashboardBridge(console, socketio, status_interval=status_interval)

    def run_command(command, *args):
        try:
            command(*args)
        except ShowConsoleError as e:
            logger.warning(f"Dashboard command failed: {e}")
            emit("command_failed", {"error": str(e), "error_type": type(e).__name__})

    @socketio.on("connect")
    def handle_connect():
        logger.info("Dashboard client connected")
        emit("status", console.get_status())

    @socketio.on("telemetry")
    def handle_telemetry(batch):
        run_command(console.ingest_telemetry, batch)

    @socketio.on("recalculate_mapping")
    def handle_recalculate():
        run_command(console.recalculate_mapping)

    @socketio.on("augment_mapping")
    def handle_augment():
        run_command(console.augment_mapping)

    @socketio.on("geofence_settings")
    def handle_geofence_settings(settings):
        run_command(console.set_geofence_settings, settings)

    @socketio.on_error_default
    def default_error_handler(e):
        logger.error(f"SocketIO error: {e}")

    return app, socketio, bridge
