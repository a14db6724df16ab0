"""Startup orchestration: schema init, catalog seed and admin bootstrap."""

from dataclasses import dataclass
from typing import Literal, Tuple

import auth
from services import document_catalog

StartupStatus = Literal["CONTINUE", "STOP"]


@dataclass(frozen=True)
class StartupResult:
    """Result contract for startup/bootstrap orchestration."""

    status: StartupStatus
    planned_steps: Tuple[str, ...]


def run_startup() -> StartupResult:
    """Run idempotent startup side-effects. Safe to call on every rerun."""
    executed_steps = []

    auth.init_databases()
    executed_steps.append("init_databases")

    # Catalog must exist before anyone can submit
    document_catalog.seed_document_types(auth.get_record_store())
    executed_steps.append("seed_document_types")

    if auth.bootstrap_admin():
        executed_steps.append("bootstrap_admin_created")
    else:
        executed_steps.append("bootstrap_admin_skipped")

    return StartupResult(status="CONTINUE", planned_steps=tuple(executed_steps))
