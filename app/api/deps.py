from app.config.settings import config
from app.core.state import state
from app.services.relay import Relay, build_relay


def get_relay() -> Relay:
    """Relay core shared by all handlers, built on first use"""
    if state.relay is None:
        state.relay = build_relay(config)
    return state.relay


async def close_relay() -> None:
    if state.relay is not None:
        await state.relay.aclose()
        state.relay = None
