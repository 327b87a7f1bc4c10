"""Event bus listeners wired up by the server lifespan.

Example:
    >>> audit = FlowAuditListener()
    >>> audit.attach(get_global_event_bus())
    >>> # every flow event now leaves an audit log line
"""

from dataclasses import asdict

from lnurlbridge.core.events.base import BaseEvent, GlobalEventBus
from lnurlbridge.domain.events import WithdrawPaymentFailed
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)


class FlowAuditListener:
    """Writes one audit log line per flow event.

    Failed withdraw payments are logged at warning level, since nobody is
    waiting on the HTTP side to hear about them.
    """

    def __init__(self) -> None:
        self._bus: GlobalEventBus | None = None

    def attach(self, bus: GlobalEventBus) -> None:
        self._bus = bus
        bus.subscribe(BaseEvent, self.on_event)

    def detach(self) -> None:
        if self._bus is not None:
            self._bus.unsubscribe(BaseEvent, self.on_event)
            self._bus = None

    def on_event(self, event: BaseEvent) -> None:
        fields = asdict(event)
        fields.pop("context", None)
        fields["event_id"] = str(event.event_id)
        fields["occurred_at"] = event.occurred_at.isoformat()

        if isinstance(event, WithdrawPaymentFailed):
            logger.warning("flow_event_withdraw_failed", **fields)
        else:
            logger.info("flow_event", event_type=type(event).__name__, **fields)
