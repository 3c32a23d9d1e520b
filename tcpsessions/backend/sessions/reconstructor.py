"""
sessions/reconstructor.py

SessionReconstructor — rebuilds TCP sessions from a packet sequence.

Algorithm (single pass, arrival order, no look-ahead):
  - SYN: look up the packet's forward key; open a Session on first sight
    (start = packet time) and add the packet. A repeated SYN on a known key
    adds the packet again but never resets the start time.
  - FIN: look up the packet's *reverse* key (the opening side's view). If a
    Session exists, close it (first FIN wins) and add the packet.
  - Every packet is then added to every Session that already exists,
    whether or not it belongs to that flow. Sessions therefore accumulate
    all traffic observed after they were opened.

A packet is added at most once per Session per step, so a SYN or FIN that
both matches a key and falls under the global rule is stored once.

State lives in one instance only. Use a fresh instance (or
find_tcp_sessions()) per capture; never share one across threads.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..models import Packet
from .models import FlowKey, Session

logger = logging.getLogger(__name__)


class SessionReconstructor:
    """
    Tracks sessions keyed on directional FlowKeys for one reconstruction run.

    Thread safety: NOT thread-safe. Packet order drives the result, so one
    instance must only ever be fed from a single thread.
    """

    def __init__(self) -> None:
        self._sessions: dict[FlowKey, Session] = {}
        self.stats: dict[str, int] = {
            "packets_processed": 0,
            "sessions_opened": 0,
            "sessions_closed": 0,
            "repeated_syns": 0,
            "unmatched_fins": 0,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update(self, packet: Packet) -> None:
        """Apply one packet to the session table."""
        flags = packet.tcp_layer.flags
        touched: set[FlowKey] = set()

        if flags.syn:
            key = FlowKey.forward(packet)
            session = self._sessions.get(key)
            if session is None:
                session = Session(key=key, start_timestamp=packet.timestamp)
                self._sessions[key] = session
                self.stats["sessions_opened"] += 1
                logger.debug("Session opened: %r (total: %d)", key, len(self._sessions))
            else:
                self.stats["repeated_syns"] += 1
            session.add(packet)
            touched.add(key)

        if flags.fin:
            key = FlowKey.reverse(packet)
            session = self._sessions.get(key)
            if session is None:
                self.stats["unmatched_fins"] += 1
                logger.debug(
                    "FIN without a matching session: %r [%s]", key, ",".join(flags.names())
                )
            else:
                if session.close(packet.timestamp):
                    self.stats["sessions_closed"] += 1
                    logger.debug("Session closed: %r", key)
                if key not in touched:
                    session.add(packet)
                    touched.add(key)

        for key, session in self._sessions.items():
            if key not in touched:
                session.add(packet)

        self.stats["packets_processed"] += 1

    def feed(self, packets: Iterable[Packet]) -> None:
        for packet in packets:
            self.update(packet)

    def sessions(self) -> list[Session]:
        """Every session seen so far, in insertion order."""
        return list(self._sessions.values())

    def get(self, key: FlowKey) -> Session | None:
        return self._sessions.get(key)

    @property
    def session_count(self) -> int:
        return len(self._sessions)


def find_tcp_sessions(packets: Iterable[Packet]) -> list[Session]:
    """
    Reconstruct sessions from packets in arrival order.

    Pure with respect to its input: each call works on its own
    SessionReconstructor. An empty input yields an empty list.
    """
    reconstructor = SessionReconstructor()
    reconstructor.feed(packets)
    logger.info(
        "Reconstructed %d sessions from %d packets (closed=%d unmatched_fins=%d)",
        reconstructor.session_count,
        reconstructor.stats["packets_processed"],
        reconstructor.stats["sessions_closed"],
        reconstructor.stats["unmatched_fins"],
    )
    return reconstructor.sessions()
