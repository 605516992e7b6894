#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Set dummy env vars so the config loads without a .env
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import appwiz.main
    print("Import appwiz.main: OK")

    from appwiz.core.deposit_steps import DEPOSIT_WIZARD
    from appwiz.core.loan_steps import LOAN_WIZARD
    for wiz in (DEPOSIT_WIZARD, LOAN_WIZARD):
        print(f"Wizard {wiz.name}: {' -> '.join(wiz.step_ids)} -> review (draft key {wiz.draft_key})")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
