from typing import Any, Awaitable, Callable, Optional

from qlbot.logging_config import get_logger
from qlbot.services.action_codec import Action, ResourceKind, Verb, decode

logger = get_logger("dispatcher")

Handler = Callable[..., Awaitable[Any]]


class Dispatcher:
    """Routes decoded button actions to handlers by (verb, resource kind).

    Decoding already resolved the action to a closed variant, so lookup is an
    exact table hit and registration order has no effect on routing.
    """

    def __init__(self):
        self._routes: dict[tuple[Verb, ResourceKind], Handler] = {}

    def route(self, verb: Verb, kind: ResourceKind):
        def decorator(handler: Handler) -> Handler:
            self.register(verb, kind, handler)
            return handler

        return decorator

    def register(self, verb: Verb, kind: ResourceKind, handler: Handler) -> None:
        key = (verb, kind)
        if key in self._routes:
            raise ValueError(f"Handler already registered for {verb.value} {kind.value}")
        self._routes[key] = handler

    def resolve(self, action: Action) -> Optional[Handler]:
        return self._routes.get((action.verb, action.kind))

    @property
    def routes(self) -> dict[tuple[Verb, ResourceKind], Handler]:
        return dict(self._routes)

    async def dispatch(self, raw: Optional[str], *args: Any) -> bool:
        """Decode raw callback data and invoke its handler.

        Returns False when nothing was invoked (noop or unmatched input).
        """
        action = decode(raw)
        if action.is_noop:
            if raw != "noop":
                logger.info(f"Unhandled callback: {raw}")
            return False

        handler = self.resolve(action)
        if handler is None:
            logger.warning(f"No handler for {action.verb.value} {action.kind.value}: {raw}")
            return False

        logger.debug(f"Dispatching {raw} -> {handler.__name__}")
        await handler(*args, action)
        return True
