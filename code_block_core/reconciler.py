"""
Connector reconciliation for code block output ports.

Before a block replaces its output ports, the remote endpoints wired to
each old port are captured. Once the new ports exist, the endpoints are
linked back in four phases:

1. capture, keyed by tooltip (placeholder tooltips get their index appended
   when several ports share them);
2. exact match on the key;
3. positional fallback, old port ``i`` to new port ``i``;
4. leftover pool, remaining captures paired in order with remaining ports.

Phase 4 is best effort: a wire may land on an unrelated port, and captures
left over once the ports run out are dropped.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from .config import CodeBlockConfig, DEFAULT_CONFIG

E = TypeVar('E')

LinkFn = Callable[[int, Any], None]


def match_keys(tooltips: Sequence[str], placeholder: str) -> List[str]:
    """Reconnection keys for an ordered list of port tooltips."""
    shared = sum(1 for tooltip in tooltips if tooltip == placeholder) > 1
    return [
        f"{tooltip}{i}" if shared and tooltip == placeholder else tooltip
        for i, tooltip in enumerate(tooltips)
    ]


@dataclass
class CapturedConnections(Generic[E]):
    """Endpoints that were wired to one old output port."""
    key: str
    index: int
    endpoints: List[E] = field(default_factory=list)
    consumed: bool = False


@dataclass
class ConnectionSnapshot(Generic[E]):
    """Ordered captures of every old output port."""
    entries: List[CapturedConnections[E]] = field(default_factory=list)

    def find(self, key: str) -> Optional[CapturedConnections[E]]:
        for entry in self.entries:
            if entry.key == key and not entry.consumed:
                return entry
        return None

    def at(self, index: int) -> Optional[CapturedConnections[E]]:
        if 0 <= index < len(self.entries):
            return self.entries[index]
        return None

    @property
    def endpoint_count(self) -> int:
        return sum(len(entry.endpoints) for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class ReconcileReport(Generic[E]):
    """Links made in each phase as ``(new port index, endpoint)`` pairs."""
    exact: List[Tuple[int, E]] = field(default_factory=list)
    positional: List[Tuple[int, E]] = field(default_factory=list)
    leftover: List[Tuple[int, E]] = field(default_factory=list)
    dropped: List[E] = field(default_factory=list)

    @property
    def links(self) -> List[Tuple[int, E]]:
        return self.exact + self.positional + self.leftover


class ConnectorReconciler:
    """Restores output connections across a port rebuild."""

    def __init__(self, config: CodeBlockConfig = DEFAULT_CONFIG,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def capture(self, old_ports: Sequence[Any],
                endpoints_of: Callable[[Any], Sequence[E]]) -> ConnectionSnapshot[E]:
        """Record the remote endpoints of every old output port."""
        keys = match_keys([port.tooltip for port in old_ports], self.config.placeholder_label)
        snapshot: ConnectionSnapshot[E] = ConnectionSnapshot()
        for i, (key, port) in enumerate(zip(keys, old_ports)):
            snapshot.entries.append(CapturedConnections(key=key, index=i,
                                                        endpoints=list(endpoints_of(port))))
        return snapshot

    def restore(self, snapshot: ConnectionSnapshot[E], new_ports: Sequence[Any],
                link: LinkFn) -> ReconcileReport[E]:
        """Relink captured endpoints onto the new ports."""
        report: ReconcileReport[E] = ReconcileReport()
        keys = match_keys([port.tooltip for port in new_ports], self.config.placeholder_label)
        matched = [False] * len(new_ports)

        # Phase 2: exact key match
        for i, key in enumerate(keys):
            entry = snapshot.find(key)
            if entry is None:
                continue
            self._relink(entry, i, link, report.exact)
            # A port whose old namesake had no wires stays open to later phases
            matched[i] = bool(entry.endpoints)

        # Phase 3: same position
        for i in range(len(new_ports)):
            if matched[i]:
                continue
            entry = snapshot.at(i)
            if entry is None or entry.consumed or not entry.endpoints:
                continue
            self._relink(entry, i, link, report.positional)
            matched[i] = True

        # Phase 4: leftover pool
        unmatched = [i for i in range(len(new_ports)) if not matched[i]]
        leftovers = [e for e in snapshot.entries if not e.consumed and e.endpoints]
        for i, entry in zip(unmatched, leftovers):
            self.logger.warning(
                f"Reconnecting wires of old port '{entry.key}' to unrelated port {i}"
            )
            self._relink(entry, i, link, report.leftover)
            matched[i] = True

        for entry in leftovers[len(unmatched):]:
            self.logger.warning(
                f"Dropping {len(entry.endpoints)} wire(s) of old port '{entry.key}'"
            )
            report.dropped.extend(entry.endpoints)
            entry.consumed = True

        self.logger.debug(
            f"Reconnected {len(report.exact)} exact, {len(report.positional)} positional, "
            f"{len(report.leftover)} leftover; dropped {len(report.dropped)}"
        )
        return report

    def reconcile(self, old_ports: Sequence[Any], new_ports: Sequence[Any],
                  capture_fn: Callable[[Any], Sequence[E]], link_fn: LinkFn) -> ReconcileReport[E]:
        """Capture and restore in one step, for callers that hold both port lists."""
        snapshot = self.capture(old_ports, capture_fn)
        return self.restore(snapshot, new_ports, link_fn)

    def _relink(self, entry: CapturedConnections[E], port_index: int, link: LinkFn,
                log: List[Tuple[int, E]]):
        for endpoint in entry.endpoints:
            link(port_index, endpoint)
            log.append((port_index, endpoint))
        entry.consumed = True
