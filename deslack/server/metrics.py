from prometheus_client import CollectorRegistry, Counter, Gauge


class ServerMetrics:
    """Prometheus metrics for one server engine."""

    def __init__(self, registry: CollectorRegistry = None):
        # Each engine gets its own registry so several can live in one process
        self.registry = registry or CollectorRegistry()

        self.connected_peers = Gauge(
            'deslack_connected_peers',
            'Number of peers currently connected',
            registry=self.registry
        )
        self.sessions = Gauge(
            'deslack_sessions',
            'Sessions by authentication state',
            ['state'],
            registry=self.registry
        )
        self.messages_committed = Counter(
            'deslack_messages_committed_total',
            'Messages committed to a channel',
            registry=self.registry
        )
        self.messages_broadcast = Counter(
            'deslack_broadcast_sends_total',
            'Outbound sends performed by channel broadcasts',
            registry=self.registry
        )
        self.rejections = Counter(
            'deslack_policy_rejections_total',
            'Requests dropped by server policy',
            ['reason'],
            registry=self.registry
        )
        self.decode_errors = Counter(
            'deslack_decode_errors_total',
            'Inbound payloads that could not be decoded',
            registry=self.registry
        )

    def update_connected_peers(self, count: int):
        """Update the number of connected peers."""
        self.connected_peers.set(count)

    def update_sessions(self, counts):
        """Update the session gauges from a state -> count mapping."""
        for state, count in counts.items():
            self.sessions.labels(state=state).set(count)

    def record_rejection(self, reason: str):
        self.rejections.labels(reason=reason).inc()
