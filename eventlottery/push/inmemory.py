"""In-memory push gateway."""

from eventlottery.push.base import MulticastResult, PushMessage


class InMemoryPushGateway:
    """Records every multicast instead of delivering it.

    Tokens listed in `failing_tokens` count as failed deliveries.
    """

    def __init__(self, failing_tokens: set[str] | None = None) -> None:
        self.failing_tokens = set(failing_tokens or ())
        self.sent: list[PushMessage] = []

    async def send_multicast(self, message: PushMessage) -> MulticastResult:
        self.sent.append(message)
        failures = sum(1 for token in message.tokens if token in self.failing_tokens)
        return MulticastResult(
            success_count=len(message.tokens) - failures, failure_count=failures
        )

    def delivered_to(self, token: str) -> list[PushMessage]:
        return [
            message
            for message in self.sent
            if token in message.tokens and token not in self.failing_tokens
        ]
