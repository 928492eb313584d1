"""Audit helpers for friendship and block transitions."""

from __future__ import annotations

from typing import Dict

from feedgraph.obs import metrics as obs_metrics
from feedgraph.obs.logging import get_logger

audit_logger = get_logger("feedgraph.audit.social")


def log_friend_event(event: str, fields: Dict[str, str]) -> None:
	audit_logger.info("friendship.%s", event, extra={"event": f"friendship.{event}", **fields})


def log_block_event(event: str, fields: Dict[str, str]) -> None:
	audit_logger.info("block.%s", event, extra={"event": f"block.{event}", **fields})


def inc_transition(action: str, result: str = "ok") -> None:
	obs_metrics.inc_friendship(action, result)


def inc_block(action: str) -> None:
	obs_metrics.inc_block(action)
