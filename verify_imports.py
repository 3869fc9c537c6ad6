#!/usr/bin/env python
"""Smoke-check that every package imports and the defaults are sane."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, List, Tuple

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["DRY_RUN"] = "true"
os.environ["ENVIRONMENT"] = "local"

sys.path.insert(0, str(Path(__file__).parent / "src"))


def check_core() -> None:
    from core.config import get_settings  # noqa: F401
    from core.db import get_session_factory, init_db  # noqa: F401
    from core.exceptions import LockAcquisitionError, RenewalEngineError, StoreError  # noqa: F401
    from core.models import Listing, PhoneLock, RenewalConversation, SmsAdminConfig, SmsMessage  # noqa: F401
    from core.types import Outbox, ProcessingResult, parse_conversation_metadata  # noqa: F401


def check_services() -> None:
    from outreach import TwilioClient, normalize_phone_e164  # noqa: F401
    from services import ConversationRouter, RenewalSmsEngine, StateMachine, run_sweep  # noqa: F401


def check_api() -> None:
    from api.app import create_app

    paths = {route.path for route in create_app().routes}
    assert {"/health", "/sms/inbound", "/sms/status"} <= paths, f"routes: {sorted(paths)}"


def check_config_defaults() -> None:
    from core.config import reload_settings

    settings = reload_settings()
    assert settings.dry_run is True, "DRY_RUN should be honored"
    assert settings.renewal_window_days == 14, "RENEWAL_WINDOW_DAYS should default to 14"
    assert settings.can_send_sms() is True, "dry run can always 'send'"


def check_classification() -> None:
    from services.intent_classifier import Intent, classify_intent

    assert classify_intent("YES", "awaiting_availability").intent == Intent.AFFIRMATIVE
    assert classify_intent("rented", None).intent == Intent.DEACTIVATION


CHECKS: List[Tuple[str, Callable[[], None]]] = [
    ("core", check_core),
    ("services", check_services),
    ("api", check_api),
    ("config defaults", check_config_defaults),
    ("intent classification", check_classification),
]


def main() -> int:
    print("=" * 60)
    print("Listing Renewal SMS Engine - Import Verification")
    print("=" * 60)

    errors = []
    for index, (name, check) in enumerate(CHECKS, start=1):
        print(f"\n[{index}/{len(CHECKS)}] {name}...")
        try:
            check()
        except Exception as e:
            errors.append(f"{name}: {e}")
            print(f"  ✗ FAILED: {e}")
        else:
            print("  ✓ OK")

    print("\n" + "=" * 60)
    if errors:
        print(f"VERIFICATION FAILED - {len(errors)} error(s):")
        for error in errors:
            print(f"  - {error}")
        return 1

    print("ALL IMPORTS VERIFIED SUCCESSFULLY")
    print("\n  cd src && python cli.py --help")
    print("  pytest -v")
    return 0


if __name__ == "__main__":
    sys.exit(main())
