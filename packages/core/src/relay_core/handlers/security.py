"""Security alert events: Dependabot, secret scanning and code scanning."""

from __future__ import annotations

from typing import TYPE_CHECKING

from relay_core.embeds import (
    build_code_scanning_alert_embed,
    build_dependabot_alert_embed,
    build_secret_scanning_alert_embed,
)
from relay_core.messages import channel_for

if TYPE_CHECKING:
    from relay_core.context import HandlerContext

# event name → (actions worth a notification, embed builder)
_ALERTS = {
    "dependabot_alert": (("created",), build_dependabot_alert_embed),
    "secret_scanning_alert": (("created",), build_secret_scanning_alert_embed),
    "code_scanning_alert": (("created", "appeared_in_branch"), build_code_scanning_alert_embed),
}


def skip_reason(event_name: str, payload: dict) -> str | None:
    actions, _ = _ALERTS[event_name]
    action = payload.get("action")
    if action not in actions:
        return f"{event_name}: action '{action}' not handled"
    return None


async def _handle_alert(ctx: HandlerContext, event_name: str, payload: dict) -> None:
    if skip_reason(event_name, payload):
        return
    repo = payload["repository"]["full_name"]
    ctx.store.append_audit_log(repo, payload["alert"]["number"], f"{event_name}.{payload['action']}", payload)

    _, build = _ALERTS[event_name]
    embed = build(payload)
    channel = await channel_for(ctx, "security")
    await ctx.retry(lambda: channel.send(embed=embed))


async def handle_dependabot_alert(ctx: HandlerContext, payload: dict) -> None:
    await _handle_alert(ctx, "dependabot_alert", payload)


async def handle_secret_scanning_alert(ctx: HandlerContext, payload: dict) -> None:
    await _handle_alert(ctx, "secret_scanning_alert", payload)


async def handle_code_scanning_alert(ctx: HandlerContext, payload: dict) -> None:
    await _handle_alert(ctx, "code_scanning_alert", payload)
