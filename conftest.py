from __future__ import annotations

import importlib.util

# Both services validate addresses with pydantic's EmailStr, which needs the
# optional email-validator package. Skip collecting them when it is missing.
if importlib.util.find_spec("email_validator") is None:
    collect_ignore_glob = [
        "services/careers/tests/*",
        "services/emailer/tests/*",
        "tests/bdd/*",
        "tests/test_smoke_harness.py",
    ]
