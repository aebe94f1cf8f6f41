#!/usr/bin/env python3
"""Validate runtime configuration for pre-production/production deploys.

Unlike the start-up guardrails, which stop at the first problem, this
reports every failure at once.

Examples:
  python backend/scripts/validate_runtime_config.py
  python backend/scripts/validate_runtime_config.py --require-model --pretty
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Settings
from integrations.base import HistorySourceType


def _is_local_env(raw_env: str) -> bool:
    env = raw_env.strip().lower()
    return env in {"", "local", "dev", "development", "test"}


def validate_settings(settings: Settings, *, require_model: bool) -> tuple[list[str], dict[str, Any]]:
    local_env = _is_local_env(settings.app_env)
    failures: list[str] = []

    if not 0.0 <= settings.anomaly_detection_threshold <= 1.0:
        failures.append("ANOMALY_DETECTION_THRESHOLD must be within [0, 1]")
    if settings.history_source not in {t.value for t in HistorySourceType}:
        failures.append(f"HISTORY_SOURCE must be one of: {', '.join(t.value for t in HistorySourceType)}")
    if settings.chunk_cache_max_messages < 1:
        failures.append("CHUNK_CACHE_MAX_MESSAGES must be at least 1")
    if not settings.mirror_node_url:
        failures.append(f"LEDGER_NETWORK {settings.ledger_network!r} has no known mirror; set LEDGER_MIRROR_NODE_URL")

    if not local_env:
        if settings.debug:
            failures.append("DEBUG=true is not allowed outside local/dev/test")
        if settings.history_source == HistorySourceType.MIRROR_NODE.value and not settings.ledger_topic_id.strip():
            failures.append("LEDGER_TOPIC_ID is required outside local/dev/test")
        if settings.history_source == HistorySourceType.IN_MEMORY.value:
            failures.append("HISTORY_SOURCE=in_memory is not allowed outside local/dev/test")

    if require_model:
        if not settings.enable_ai_monitoring:
            failures.append("ENABLE_AI_MONITORING must be true when --require-model is set")
        if not settings.anomaly_model_path.strip():
            failures.append("ANOMALY_MODEL_PATH is required when --require-model is set")
        elif not os.path.exists(settings.anomaly_model_path):
            failures.append(f"ANOMALY_MODEL_PATH does not exist: {settings.anomaly_model_path}")

    summary = {
        "status": "success" if not failures else "failed",
        "app_env": settings.app_env,
        "local_env": local_env,
        "history_source": settings.history_source,
        "mirror_node_url": settings.mirror_node_url,
        "require_model": bool(require_model),
        "failures": failures,
    }
    return failures, summary


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate deployment runtime config")
    parser.add_argument(
        "--require-model",
        action="store_true",
        help="Require a trained anomaly model for this deploy target",
    )
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args(argv)

    try:
        failures, summary = validate_settings(Settings(), require_model=bool(args.require_model))
    except Exception as exc:  # noqa: BLE001
        summary = {
            "status": "failed",
            "error": str(exc),
            "require_model": bool(args.require_model),
        }
        failures = [str(exc)]

    if args.pretty:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print(json.dumps(summary))

    return 0 if not failures else 1


if __name__ == "__main__":
    raise SystemExit(main())
