"""
Collections of records (blog posts, gallery images) kept as JSON lists.

A collection seeds itself with built-in defaults the first time it is used,
gives every legacy record without an id a fresh one, and decides what an
empty list means when it is saved.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, TypedDict

from folio.store import PersistentStore

log = logging.getLogger(__name__)

POSTS_KEY = "posts"
GALLERY_KEY = "gallery:images"

DAY_MS = 1000 * 60 * 60 * 24


class Record(TypedDict, total=False):
    id: str
    title: str
    body: str
    content: str
    excerpt: str
    tags: list[str]
    image: str
    url: str
    createdAt: int | float | str
    date: str
    publishedAt: str


def new_id() -> str:
    return uuid.uuid4().hex


def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(utc_now().timestamp() * 1000)


###############################################################################
# Built-in defaults
###############################################################################
def default_posts(id_factory: Callable[[], str] = new_id) -> list[Record]:
    now = now_ms()
    return [
        {
            "id": id_factory(),
            "title": "Welcome to the Blog",
            "body": "This is your first post. You can delete it, or create your own. "
            "Pro tip: add tags like #intro to make filtering easier.",
            "tags": ["intro", "welcome"],
            "image": "/static/placeholder.jpg",
            "createdAt": now,
        },
        {
            "id": id_factory(),
            "title": "Adding Images to Posts",
            "body": "Attach a photo to your post. Large images are downscaled "
            "before they are stored to keep things snappy.",
            "tags": ["howto", "images"],
            "image": "/static/placeholder.jpg",
            "createdAt": now - DAY_MS,
        },
        {
            "id": id_factory(),
            "title": "Tag Filtering Demo",
            "body": "Use the tag chips above the list to filter posts. "
            "Try clicking on #demo or #tips.",
            "tags": ["demo", "tips"],
            "image": "/static/placeholder.jpg",
            "createdAt": now - 2 * DAY_MS,
        },
    ]


GALLERY_FILES = (
    "photo1.jpeg",
    "photo2.jpeg",
    "photo10.jpeg",
    "photo4.jpeg",
    "photo11.jpeg",
    "photo6.jpeg",
    "photo7.jpeg",
    "photo9.jpeg",
    "photo12.jpeg",
    "photo3.jpeg",
    "photo5.jpeg",
    "photo8.jpeg",
    "photo13.jpeg",
)


def default_gallery(id_factory: Callable[[], str] = new_id) -> list[Record]:
    now = now_ms()
    return [
        {"id": id_factory(), "url": f"/static/{name}", "createdAt": now - i}
        for i, name in enumerate(GALLERY_FILES)
    ]


###############################################################################
# Collection
###############################################################################
class Collection:
    """
    A list of records under one store key.

    • ``load()``   – stored records (ids normalised) or freshly seeded defaults
    • ``save()``   – persist; an empty list is kept as ``[]`` unless
                     *keep_empty* is False, in which case the key is dropped and
                     the next load seeds again
    """

    def __init__(
        self,
        store: PersistentStore,
        key: str,
        defaults: Callable[[Callable[[], str]], list[Record]],
        *,
        id_factory: Callable[[], str] = new_id,
        keep_empty: bool = True,
    ) -> None:
        self.store = store
        self.key = key
        self.defaults = defaults
        self.id_factory = id_factory
        self.keep_empty = keep_empty

    def _stored(self) -> list | None:
        """Parsed stored list, or None when absent / corrupt / unusable."""
        raw = self.store.read_raw(self.key)
        if raw is None or not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            log.warning("collection %r is not valid JSON; reseeding", self.key)
            return None
        if not isinstance(data, list):
            log.warning("collection %r is not a list; reseeding", self.key)
            return None
        if not data and not self.keep_empty:
            return None
        return data

    def normalize(self, records: Iterable) -> tuple[list[Record], bool]:
        """Give every record an id. Returns (records, changed)."""
        out: list[Record] = []
        changed = False
        for rec in records:
            if not isinstance(rec, dict):
                log.warning("dropping non-object entry in %r", self.key)
                changed = True
                continue
            if not rec.get("id"):
                rec = {**rec, "id": self.id_factory()}
                changed = True
            out.append(rec)
        return out, changed

    def seed(self) -> list[Record]:
        try:
            records = self.defaults(self.id_factory)
        except Exception:
            log.exception("building defaults for %r failed", self.key)
            return []
        self.store.write(self.key, records)
        return records

    def load(self) -> list[Record]:
        """Stored records; ids handed out here are written back so they stay put."""
        data = self._stored()
        if data is None:
            return self.seed()
        records, changed = self.normalize(data)
        if changed:
            self.store.write(self.key, records)
        return records

    def ensure_seeded(self) -> list[Record]:
        """Seed if needed and persist normalised ids; safe to call repeatedly."""
        return self.load()

    def save(self, records: list[Record]) -> bool:
        records = list(records)
        if not records and not self.keep_empty:
            return self.store.remove(self.key)
        return self.store.write(self.key, records)

    # -- record level -------------------------------------------------------
    def get(self, record_id: str) -> Record | None:
        for rec in self.load():
            if rec.get("id") == record_id:
                return rec
        return None

    def add(self, record: Record) -> Record:
        """Prepend *record* (id and createdAt filled in when missing)."""
        rec: Record = dict(record)  # type: ignore[assignment]
        if not rec.get("id"):
            rec["id"] = self.id_factory()
        rec.setdefault("createdAt", now_ms())
        self.save([rec, *self.load()])
        return rec

    def remove(self, record_id: str) -> bool:
        records = self.load()
        kept = [r for r in records if r.get("id") != record_id]
        if len(kept) == len(records):
            return False
        self.save(kept)
        return True


def posts(store: PersistentStore, **kw) -> Collection:
    return Collection(store, POSTS_KEY, default_posts, **kw)


def gallery(store: PersistentStore, **kw) -> Collection:
    return Collection(store, GALLERY_KEY, default_gallery, **kw)
