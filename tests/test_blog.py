"""
tests/test_blog.py
"""
from __future__ import annotations

import io
import re

from PIL import Image

from folio.blog import get_gate, get_store, posts_collection
from folio.seed import POSTS_KEY


# ───────────────────────── helpers ────────────────────────────────────
def _login() -> None:
    gate = get_gate()
    if not gate.create_account("tester", "pw").ok:
        gate.login("tester", "pw")


def _post(client, **data):
    return client.post("/blog", data=data, follow_redirects=True)


def _titles(html: str) -> list[str]:
    """Post titles in the order the list renders them."""
    return re.findall(r'<h3 style="margin-bottom:4px"><a href="/blog/[^"]+">([^<]*)</a>', html)


def _set_posts(records) -> None:
    get_store().write(POSTS_KEY, records)


# ───────────────────────── listing ────────────────────────────────────
def test_seeded_posts_listed_newest_first(client):
    rv = client.get("/blog")
    assert rv.status_code == 200
    assert _titles(rv.data.decode()) == [
        "Welcome to the Blog",
        "Adding Images to Posts",
        "Tag Filtering Demo",
    ]


def test_sort_oldest(client):
    rv = client.get("/blog?sort=oldest")
    assert _titles(rv.data.decode())[0] == "Tag Filtering Demo"


def test_search_query(client):
    _set_posts(
        [
            {"id": "c", "title": "Cats", "tags": ["pets"], "createdAt": 100},
            {"id": "d", "title": "Dogs", "tags": ["pets", "fun"], "createdAt": 200},
        ]
    )
    rv = client.get("/blog?q=dog")
    assert _titles(rv.data.decode()) == ["Dogs"]


def test_tag_filter_and_semantics(client):
    _set_posts(
        [
            {"id": "c", "title": "Cats", "tags": ["pets"], "createdAt": 100},
            {"id": "d", "title": "Dogs", "tags": ["pets", "fun"], "createdAt": 200},
        ]
    )
    rv = client.get("/blog?tag=pets&tag=fun")
    html = rv.data.decode()
    assert _titles(html) == ["Dogs"]
    # both chips are rendered active, all tags are offered
    assert html.count('class="tag active"') == 2


def test_tag_chip_links_toggle(client):
    html = client.get("/blog?tag=intro").data.decode()
    # clicking the active chip removes it, clicking another one adds it
    assert 'href="/blog?sort=newest"' in html
    assert "tag=intro&amp;tag=demo" in html


def test_no_match_message(client):
    rv = client.get("/blog?q=nothing-matches-this")
    assert b"No posts match." in rv.data


def test_legacy_records_render(client):
    _set_posts(
        [
            {"title": "Legacy", "excerpt": "old excerpt", "date": "2020-05-01"},
            {"id": "x", "title": "Weird", "tags": "nope", "createdAt": "??"},
        ]
    )
    rv = client.get("/blog")
    assert rv.status_code == 200
    html = rv.data.decode()
    assert _titles(html) == ["Legacy", "Weird"]
    assert "2020-05-01" in html


def test_legacy_post_links_resolve(client):
    _set_posts([{"title": "Legacy", "excerpt": "no id yet", "createdAt": 1}])
    html = client.get("/blog").data.decode()
    (post_id,) = re.findall(r'<h3 style="margin-bottom:4px"><a href="/blog/([^"]+)">', html)

    assert client.get(f"/blog/{post_id}").status_code == 200
    _login()
    client.post(f"/blog/{post_id}/delete")
    assert posts_collection().load() == []


def test_detail_page(client):
    post = posts_collection().load()[0]
    rv = client.get(f"/blog/{post['id']}")
    assert rv.status_code == 200
    assert post["title"].encode() in rv.data


def test_detail_renders_markdown(client):
    _set_posts([{"id": "m", "title": "Md", "body": "some **bold** text"}])
    rv = client.get("/blog/m")
    assert b"<strong>bold</strong>" in rv.data


def test_detail_unknown_is_404(client):
    assert client.get("/blog/does-not-exist").status_code == 404


# ───────────────────────── mutations ──────────────────────────────────
def test_anonymous_cannot_post_or_delete(client):
    assert client.post("/blog", data={"title": "x"}).status_code == 403
    victim = posts_collection().load()[0]["id"]
    assert client.post(f"/blog/{victim}/delete").status_code == 403
    assert len(posts_collection().load()) == 3


def test_form_only_shown_when_signed_in(client):
    assert b'id="new-post"' not in client.get("/blog").data
    _login()
    assert b'id="new-post"' in client.get("/blog").data


def test_create_post(client):
    _login()
    rv = _post(client, title="  My Post ", body="post body", tags="a, b,, a")
    assert rv.status_code == 200
    assert _titles(rv.data.decode())[0] == "My Post"

    new = posts_collection().load()[0]
    assert new["title"] == "My Post"
    assert new["body"] == "post body"
    assert new["tags"] == ["a", "b"]
    assert new["image"] == ""
    assert new["id"]


def test_create_post_requires_title(client):
    _login()
    rv = _post(client, title="   ", body="no title")
    assert b"A post needs a title." in rv.data
    assert len(posts_collection().load()) == 3


def test_create_post_with_image(client):
    _login()
    buf = io.BytesIO()
    Image.new("RGB", (3000, 1500), (1, 2, 3)).save(buf, format="PNG")
    buf.seek(0)
    rv = client.post(
        "/blog",
        data={"title": "Pic", "image": (buf, "pic.png", "image/png")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert rv.status_code == 200
    assert posts_collection().load()[0]["image"].startswith("data:image/jpeg;base64,")


def test_create_post_bad_image_keeps_nothing(client):
    _login()
    rv = client.post(
        "/blog",
        data={"title": "Broken", "image": (io.BytesIO(b"nope"), "x.png", "image/png")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Not a readable image." in rv.data
    assert "Broken" not in [p["title"] for p in posts_collection().load()]


def test_delete_post(client):
    _login()
    victim = posts_collection().load()[1]
    rv = client.post(f"/blog/{victim['id']}/delete", follow_redirects=True)
    assert rv.status_code == 200
    assert victim["title"] not in _titles(rv.data.decode())
    assert client.post(f"/blog/{victim['id']}/delete").status_code == 404


def test_deleting_everything_leaves_empty_blog(client):
    _login()
    for p in posts_collection().load():
        client.post(f"/blog/{p['id']}/delete")
    rv = client.get("/blog")
    assert _titles(rv.data.decode()) == []
    assert get_store().read(POSTS_KEY) == []
