#!/usr/bin/env python3
"""
migrate.py  –  bring an old browser copy of the site into the store.

• Expects a JSON file holding the browser's localStorage, e.g. the output of
      copy(JSON.stringify(localStorage))
  pasted from the devtools console into ``localstorage.json``.

• Every known key is copied as-is (values are already JSON text). Keys the
  site never used are skipped. Afterwards the blog and gallery are
  normalised so legacy records without an id get one.

Usage:
      python migrate.py localstorage.json [path/to/folio.sqlite3]
"""

import json
import os
import sys
from pathlib import Path

from folio import seed
from folio.auth import ACCOUNT_KEY, SESSION_KEY
from folio.store import PersistentStore, SQLiteBackend

KNOWN_KEYS = {
    SESSION_KEY,
    ACCOUNT_KEY,
    seed.POSTS_KEY,
    seed.GALLERY_KEY,
    "profile:summary",
    "profile:plans",
    "profile:photo",
    "activeTab",
}


def import_dump(store: PersistentStore, dump: dict) -> dict[str, str]:
    """Copy *dump* into *store*; returns {key: what happened}."""
    report: dict[str, str] = {}
    for key, raw in dump.items():
        if key not in KNOWN_KEYS:
            report[key] = "skipped"
            continue
        if not isinstance(raw, str):
            raw = json.dumps(raw)
        if key == "activeTab":
            # stored raw ("Blog"), not as JSON
            try:
                tab = json.loads(raw)
            except ValueError:
                tab = raw
            raw = json.dumps(str(tab).strip().lower())
        store.write_raw(key, raw)
        report[key] = "copied"

    for col in (seed.posts(store), seed.gallery(store)):
        n = len(col.ensure_seeded())
        report.setdefault(col.key, "seeded")
        report[col.key] += f" ({n} records)"
    return report


def main(argv: list[str]) -> int:
    if not argv:
        print(__doc__)
        return 2
    src = Path(argv[0])
    if not src.exists():
        sys.exit(f"❌  {src} not found – aborting.")
    default = os.environ.get("FOLIO_DB", Path(__file__).parent / "folio" / "folio.sqlite3")
    target = Path(argv[1]) if len(argv) > 1 else Path(default)

    try:
        dump = json.loads(src.read_text())
    except ValueError as exc:
        sys.exit(f"❌  {src} is not valid JSON: {exc}")
    if not isinstance(dump, dict):
        sys.exit(f"❌  {src} must hold a JSON object of key → value.")

    backend = SQLiteBackend(target)
    backend.init_schema()
    report = import_dump(PersistentStore(backend), dump)

    print(f"→ importing into {target}")
    for key, what in sorted(report.items()):
        print(f"  • {key:16}  {what}")
    print("\n✔  Migration finished – start the app with the new database.")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
