"""Socket.IO namespace for match updates."""

from __future__ import annotations

from gigmatch.infra.sockets import PartyNamespace

_namespace: "MatchesNamespace" | None = None


class MatchesNamespace(PartyNamespace):
	ack_event = "matches:ack"

	def __init__(self) -> None:
		super().__init__("/matches")


def set_namespace(ns: MatchesNamespace | None) -> None:
	global _namespace
	_namespace = ns


async def emit_match_event(party_id: str, event: str, payload: dict) -> None:
	if _namespace is None:
		return
	await _namespace.emit_to_party(party_id, event, payload)
