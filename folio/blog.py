#!/usr/bin/env python3
"""
folio – a small personal site: blog, gallery and profile.

All state lives in one key/value store (SQLite). The owner signs in with the
single local account to add or delete things.
"""

import os
import secrets
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import click
import markdown
from flask import (
    Flask,
    abort,
    flash,
    redirect,
    render_template_string,
    request,
    url_for,
)
from markupsafe import Markup
from werkzeug.datastructures import FileStorage

from folio import seed
from folio.auth import AuthGate
from folio.images import ImageEncodeError, encode_image, is_data_url
from folio.query import (
    NEWEST,
    OLDEST,
    all_tags,
    derive,
    normalize_sort,
    parse_tags,
    primary_text,
    record_tags,
    record_timestamp,
    toggle_tag,
)
from folio.store import PersistentStore, SQLiteBackend

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
DB_FILE = Path(os.environ.get("FOLIO_DB", str(ROOT / "folio.sqlite3")))

SECRET_FILE = ROOT / ".secret_key"
SECRET_KEY = (
    SECRET_FILE.read_text().strip() if SECRET_FILE.exists() else secrets.token_hex(32)
)
SECRET_FILE.write_text(SECRET_KEY)

UPLOAD_MAX_BYTES = 8 * 1024 * 1024  # cap uploads to 8 MiB
IMAGE_MAX_DIM = int(os.environ.get("FOLIO_IMAGE_MAX_DIM", "1600"))
IMAGE_QUALITY = int(os.environ.get("FOLIO_IMAGE_QUALITY", "85"))
RESEED_WHEN_EMPTY = os.environ.get("FOLIO_RESEED_WHEN_EMPTY", "0") == "1"

TAB_KEY = "activeTab"
TAB_VIEWS = {"blog": "blog", "gallery": "gallery", "profile": "profile_view"}
TAB_DEFAULT = "blog"

PROFILE_DEFAULTS = {
    "summary": "I'm a curious and driven student majoring in Data Science and "
    "Applied Mathematics, with strong people, leadership and organisational skills.",
    "plans": "Looking ahead, I want to use my skills in data analysis and machine "
    "learning in the finance and technology sectors, and I am open to new "
    "opportunities that apply them to real-world challenges.",
    "photo": "/static/profile.jpg",
}
PROFILE_FIELDS = tuple(PROFILE_DEFAULTS)

try:
    __version__ = version("folio")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App + template filters
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(
    SECRET_KEY=SECRET_KEY,
    DATABASE=str(DB_FILE),
    MAX_CONTENT_LENGTH=UPLOAD_MAX_BYTES,
    IMAGE_MAX_DIM=IMAGE_MAX_DIM,
    IMAGE_QUALITY=IMAGE_QUALITY,
    RESEED_WHEN_EMPTY=RESEED_WHEN_EMPTY,
)

md = markdown.Markdown(
    extensions=["pymdownx.extra", "pymdownx.magiclink", "pymdownx.tilde"]
)


@app.template_filter("md")
def md_filter(text: str | None) -> Markup:
    md.reset()
    return Markup(md.convert(text or ""))


@app.template_filter("when")
def when_filter(rec) -> str:
    """Short date for a record, empty when it has no usable timestamp."""
    ts = record_timestamp(rec)
    if not ts:
        return ""
    return datetime.fromtimestamp(ts / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


###############################################################################
# Services
###############################################################################
def get_store() -> PersistentStore:
    """The store bound to the configured DATABASE (rebuilt if it changes)."""
    path = app.config["DATABASE"]
    store = app.extensions.get("folio.store")
    if store is None or getattr(store.backend, "path", None) != path:
        store = PersistentStore(SQLiteBackend(path))
        app.extensions["folio.store"] = store
        app.extensions["folio.seeded"] = False
    return store


def get_gate() -> AuthGate:
    return AuthGate(get_store())


def posts_collection() -> seed.Collection:
    return seed.posts(get_store(), keep_empty=not app.config["RESEED_WHEN_EMPTY"])


def gallery_collection() -> seed.Collection:
    return seed.gallery(get_store(), keep_empty=not app.config["RESEED_WHEN_EMPTY"])


def profile():
    return get_store().namespace("profile")


def init_db():
    """Create the kv table and seed both collections (idempotent)."""
    backend = get_store().backend
    if isinstance(backend, SQLiteBackend):
        backend.init_schema()
    posts_collection().ensure_seeded()
    gallery_collection().ensure_seeded()
    app.extensions["folio.seeded"] = True


@app.before_request
def _seed_once():
    get_store()  # a new DATABASE resets the flag
    if not app.extensions.get("folio.seeded"):
        init_db()


def login_required() -> None:
    if not get_gate().is_authed:
        abort(403)


def remember_tab(tab: str) -> None:
    store = get_store()
    if store.read(TAB_KEY) != tab:
        store.write(TAB_KEY, tab)


def last_tab() -> str:
    tab = get_store().read(TAB_KEY, TAB_DEFAULT)
    return tab if tab in TAB_VIEWS else TAB_DEFAULT


def profile_photo() -> str:
    photo = profile().read("photo", PROFILE_DEFAULTS["photo"])
    if isinstance(photo, dict):  # older shape: {"url": …}
        photo = photo.get("url")
    return photo if isinstance(photo, str) and photo else PROFILE_DEFAULTS["photo"]


def encode_upload(f: FileStorage) -> str:
    return encode_image(
        f.read(),
        max_dim=app.config["IMAGE_MAX_DIM"],
        quality=app.config["IMAGE_QUALITY"],
        mimetype=f.mimetype,
    )


def _upload(field: str) -> FileStorage | None:
    f = request.files.get(field)
    return f if f and f.filename else None


app.jinja_env.globals.update(
    is_authed=lambda: get_gate().is_authed,
    account_exists=lambda: get_gate().has_account,
    record_tags=record_tags,
    primary_text=primary_text,
    is_data_url=is_data_url,
    version=__version__,
)


###############################################################################
# Templates + Views
###############################################################################
def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


TEMPL_PROLOG = """
<!doctype html>
<html lang="en">
<title>{{ title or 'folio' }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta charset="utf-8">
<style>
body{font-family:-apple-system,BlinkMacSystemFont,"Segoe UI",Roboto,sans-serif;max-width:46em;margin:auto;padding:13px;line-height:1.6;color:#c9c9c9;background:#222}
a{color:#fff}nav a{margin-right:1em}nav a.active{text-decoration:underline}
input,textarea,select{color:#c9c9c9;background:#4a4a4a;border:1px solid #4a4a4a;border-radius:4px;padding:6px 10px;margin-bottom:10px;box-sizing:border-box}
textarea{width:100%}button{cursor:pointer}
.flash{background:#4a2a2a;padding:.5em 1em;border-left:4px solid #b33}
.post{border-bottom:1px solid #4a4a4a;padding:1em 0}.post img{max-width:100%;border-radius:10px}
.tag{display:inline-block;padding:.1em .6em;margin:0 .3em .3em 0;border:1px solid #888;border-radius:1em;font-size:.8em;text-decoration:none}
.tag.active{background:#A5BA93;color:#000;border-color:#A5BA93}
.wall{column-count:3;column-gap:1em}.wall figure{break-inside:avoid;margin:0 0 1em}.wall img{width:100%;border-radius:10px;display:block}
</style>
<nav>
  <a href="{{ url_for('blog') }}" class="{{ 'active' if tab == 'blog' }}">Blog</a>
  <a href="{{ url_for('gallery') }}" class="{{ 'active' if tab == 'gallery' }}">Gallery</a>
  <a href="{{ url_for('profile_view') }}" class="{{ 'active' if tab == 'profile' }}">Profile</a>
  <span style="float:right">
  {% if is_authed() %}
    <a href="{{ url_for('logout') }}">Logout</a>
  {% else %}
    <a href="{{ url_for('login') }}">Login</a>
    {% if not account_exists() %}<a href="{{ url_for('create_account') }}">Create account</a>{% endif %}
  {% endif %}
  </span>
</nav>
{% with msgs = get_flashed_messages() %}
  {% for m in msgs %}<p class="flash">{{ m }}</p>{% endfor %}
{% endwith %}
<main>
"""

TEMPL_EPILOG = """
</main>
<footer style="margin-top:3em;font-size:.75em;color:#888">folio {{ version }}</footer>
</html>
"""


@app.route("/")
def index():
    return redirect(url_for(TAB_VIEWS[last_tab()]))


# ─── Blog ──────────────────────────────────────────────────────────
@app.route("/blog", methods=["GET", "POST"])
def blog():
    remember_tab("blog")
    col = posts_collection()

    if request.method == "POST":
        login_required()
        title = request.form.get("title", "").strip()
        if not title:
            flash("A post needs a title.")
            return redirect(url_for("blog"))

        image = ""
        if f := _upload("image"):
            try:
                image = encode_upload(f)
            except ImageEncodeError as exc:
                flash(str(exc))
                return redirect(url_for("blog"))

        col.add(
            {
                "title": title,
                "body": request.form.get("body", "").strip(),
                "tags": parse_tags(request.form.get("tags")),
                "image": image,
                "createdAt": seed.now_ms(),
            }
        )
        return redirect(url_for("blog"))

    q = request.args.get("q", "")
    selected = request.args.getlist("tag")
    sort = normalize_sort(request.args.get("sort"))

    records = col.load()
    shown = derive(records, q, selected, sort)

    def tag_href(tag: str) -> str:
        return url_for(
            "blog", q=q or None, sort=sort, tag=toggle_tag(selected, tag) or None
        )

    return render_template_string(
        TEMPL_BLOG,
        title="Blog",
        tab="blog",
        posts=shown,
        tags=all_tags(records),
        selected=selected,
        q=q,
        sort=sort,
        sort_orders=((NEWEST, "Newest first"), (OLDEST, "Oldest first")),
        tag_href=tag_href,
    )


TEMPL_BLOG = wrap("""
<h2>Blog</h2>
{% if is_authed() %}
<form method="post" enctype="multipart/form-data" id="new-post">
  <h3>Create Post</h3>
  <input name="title" placeholder="Title" style="width:100%">
  <textarea name="body" rows="4" placeholder="Write your post..."></textarea>
  <input name="tags" placeholder="tags (comma separated)" style="width:100%">
  <input type="file" name="image" accept="image/*">
  <button type="submit">Create</button>
</form>
{% else %}
<p><a href="{{ url_for('login') }}">Login</a> to create a post.</p>
{% endif %}

<form method="get" style="display:flex;gap:8px;align-items:center">
  <input name="q" value="{{ q }}" placeholder="Search posts…" style="flex:1">
  {% for t in selected %}<input type="hidden" name="tag" value="{{ t }}">{% endfor %}
  <select name="sort" onchange="this.form.submit()">
    {% for val, label in sort_orders %}
      <option value="{{ val }}" {{ 'selected' if val == sort }}>{{ label }}</option>
    {% endfor %}
  </select>
  <button type="submit">Search</button>
</form>

<div class="tags">
{% for t in tags %}
  <a class="tag {{ 'active' if t in selected }}" href="{{ tag_href(t) }}">{{ t }}</a>
{% endfor %}
</div>

<div class="list">
{% for p in posts %}
  <article class="post" id="post-{{ p.id }}">
    <h3 style="margin-bottom:4px"><a href="{{ url_for('post_detail', post_id=p.id) }}">{{ p.title }}</a></h3>
    {% set when = p | when %}{% if when %}<small>{{ when }}</small>{% endif %}
    {% if p.image %}<img src="{{ p.image }}" alt="{{ p.title or 'Post image' }}">{% endif %}
    <p>{{ primary_text(p) | truncate(280) }}</p>
    <div>{% for t in record_tags(p) %}<span class="tag">{{ t }}</span>{% endfor %}</div>
    {% if is_authed() %}
    <form method="post" action="{{ url_for('delete_post', post_id=p.id) }}"
          onsubmit="return confirm('Delete this post?')">
      <button type="submit">Delete</button>
    </form>
    {% endif %}
  </article>
{% else %}
  <p>No posts match.</p>
{% endfor %}
</div>
""")


@app.route("/blog/<post_id>")
def post_detail(post_id):
    post = posts_collection().get(post_id)
    if post is None:
        abort(404)
    return render_template_string(
        TEMPL_POST, title=post.get("title") or "Post", tab="blog", p=post
    )


TEMPL_POST = wrap("""
<article class="post">
  <h2>{{ p.title }}</h2>
  {% set when = p | when %}{% if when %}<small>{{ when }}</small>{% endif %}
  {% if p.image %}<img src="{{ p.image }}" alt="{{ p.title or 'Post image' }}">{% endif %}
  <div class="e-content">{{ primary_text(p) | md }}</div>
  <div>{% for t in record_tags(p) %}<a class="tag" href="{{ url_for('blog', tag=t) }}">{{ t }}</a>{% endfor %}</div>
</article>
<p><a href="{{ url_for('blog') }}">← back</a></p>
""")


@app.route("/blog/<post_id>/delete", methods=["POST"])
def delete_post(post_id):
    login_required()
    if not posts_collection().remove(post_id):
        abort(404)
    return redirect(url_for("blog"))


# ─── Gallery ───────────────────────────────────────────────────────
@app.route("/gallery", methods=["GET", "POST"])
def gallery():
    remember_tab("gallery")
    col = gallery_collection()

    if request.method == "POST":
        login_required()
        url = request.form.get("url", "").strip()
        if f := _upload("file"):
            try:
                url = encode_upload(f)
            except ImageEncodeError as exc:
                flash(str(exc))
                return redirect(url_for("gallery"))
        if not url:
            flash("Paste an image URL or choose a file.")
            return redirect(url_for("gallery"))
        col.add({"url": url})
        return redirect(url_for("gallery"))

    return render_template_string(
        TEMPL_GALLERY, title="Gallery", tab="gallery", images=col.load()
    )


TEMPL_GALLERY = wrap("""
<h2>Gallery</h2>
{% if is_authed() %}
<form method="post" enctype="multipart/form-data" style="display:flex;gap:8px;flex-wrap:wrap">
  <input name="url" placeholder="Paste image URL…">
  <input type="file" name="file" accept="image/*">
  <button type="submit">Add</button>
</form>
{% endif %}
<div class="wall">
{% for img in images %}
  <figure id="img-{{ img.id }}">
    {% if is_data_url(img.url) %}
    <img src="{{ img.url }}" alt="Gallery item">
    {% else %}
    <a href="{{ img.url }}"><img src="{{ img.url }}" alt="Gallery item"></a>
    {% endif %}
    {% if is_authed() %}
    <form method="post" action="{{ url_for('delete_image', image_id=img.id) }}"
          onsubmit="return confirm('Delete this image?')">
      <button type="submit">Delete</button>
    </form>
    {% endif %}
  </figure>
{% else %}
  <p>No images yet.</p>
{% endfor %}
</div>
""")


@app.route("/gallery/<image_id>/delete", methods=["POST"])
def delete_image(image_id):
    login_required()
    if not gallery_collection().remove(image_id):
        abort(404)
    return redirect(url_for("gallery"))


# ─── Profile ───────────────────────────────────────────────────────
@app.route("/profile", methods=["GET", "POST"])
def profile_view():
    remember_tab("profile")
    ns = profile()

    if request.method == "POST":
        login_required()
        field = request.form.get("field", "")
        if field not in PROFILE_FIELDS:
            abort(400)
        if field == "photo":
            photo = request.form.get("photo", "").strip()
            if f := _upload("file"):
                try:
                    photo = encode_upload(f)
                except ImageEncodeError as exc:
                    flash(str(exc))
                    return redirect(url_for("profile_view"))
            if photo:
                ns.write("photo", photo)
        else:
            ns.write(field, request.form.get(field, "").strip())
        return redirect(url_for("profile_view"))

    return render_template_string(
        TEMPL_PROFILE,
        title="Profile",
        tab="profile",
        photo=profile_photo(),
        summary=ns.read("summary", PROFILE_DEFAULTS["summary"]),
        plans=ns.read("plans", PROFILE_DEFAULTS["plans"]),
    )


TEMPL_PROFILE = wrap("""
<h2>Profile</h2>
<img src="{{ photo }}" alt="Profile photo" style="max-width:200px;border-radius:50%">
<h3>Summary</h3>
<p id="summary">{{ summary }}</p>
<h3>Plans</h3>
<p id="plans">{{ plans }}</p>

{% if is_authed() %}
<hr>
<form method="post">
  <input type="hidden" name="field" value="summary">
  <textarea name="summary" rows="4">{{ summary }}</textarea>
  <button type="submit">Save summary</button>
</form>
<form method="post">
  <input type="hidden" name="field" value="plans">
  <textarea name="plans" rows="4">{{ plans }}</textarea>
  <button type="submit">Save plans</button>
</form>
<form method="post" enctype="multipart/form-data">
  <input type="hidden" name="field" value="photo">
  <input name="photo" placeholder="Photo URL…">
  <input type="file" name="file" accept="image/*">
  <button type="submit">Change photo</button>
</form>
{% endif %}
""")


###############################################################################
# Authentication
###############################################################################
@app.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        res = get_gate().login(
            request.form.get("username"), request.form.get("password")
        )
        if res.ok:
            return redirect(url_for("index"))
        flash(res.message)

    return render_template_string(TEMPL_LOGIN, title="Login", tab=None)


TEMPL_LOGIN = wrap("""
<h2>Login</h2>
<form method="post" id="login-form">
  <input name="username" placeholder="Username" autocomplete="username">
  <input name="password" type="password" placeholder="Password" autocomplete="current-password">
  <button type="submit">Login</button>
</form>
""")


@app.route("/account", methods=["GET", "POST"])
def create_account():
    if request.method == "POST":
        res = get_gate().create_account(
            request.form.get("username"),
            request.form.get("password"),
            request.form.get("confirm"),
        )
        if res.ok:
            return redirect(url_for("index"))
        flash(res.message)

    return render_template_string(TEMPL_ACCOUNT, title="Create account", tab=None)


TEMPL_ACCOUNT = wrap("""
<h2>Create account</h2>
{% if account_exists() %}
<p>An account already exists on this device. <a href="{{ url_for('login') }}">Login</a> instead.</p>
{% endif %}
<form method="post" id="account-form">
  <input name="username" placeholder="Username" autocomplete="username">
  <input name="password" type="password" placeholder="Password" autocomplete="new-password">
  <input name="confirm" type="password" placeholder="Confirm password" autocomplete="new-password">
  <button type="submit">Create</button>
</form>
""")


@app.route("/logout")
def logout():
    get_gate().logout()
    return redirect(url_for("index"))


###############################################################################
# Errors
###############################################################################
@app.errorhandler(404)
def not_found(exc):
    """Site-wide “Not Found” page."""
    return render_template_string(TEMPL_404, title="Not found", tab=None), 404


@app.errorhandler(500)
def internal_error(exc):
    app.logger.error("unhandled error: %r", getattr(exc, "original_exception", exc))
    return render_template_string(TEMPL_500, title="Error", tab=None), 500


TEMPL_404 = wrap("""
<h2>Page not found</h2>
<p>The URL you asked for doesn’t exist.
   <a href="{{ url_for('index') }}">Back to the front page</a>.</p>
""")

TEMPL_500 = wrap("""
<h2>Internal Server Error</h2>
<p>Something went wrong on our side. Please try again in a minute.</p>
""")


###############################################################################
# CLI
###############################################################################
@app.cli.command("init")
def cli_init():
    """Create the store and seed the blog and gallery."""
    init_db()
    click.secho("\n✅  Store ready at " + app.config["DATABASE"], fg="green")


@app.cli.command("create-account")
@click.option("--username", prompt=True, help="Owner username")
@click.option(
    "--password", prompt=True, hide_input=True, confirmation_prompt=True
)
def cli_create_account(username: str, password: str):
    """Create the single owner account."""
    init_db()
    res = get_gate().create_account(username, password)
    if not res.ok:
        raise click.ClickException(res.message)
    click.secho(f"\n✅  Account {username.strip()!r} created.", fg="green")


@app.cli.command("reset")
@click.confirmation_option(prompt="Wipe every stored value (account, posts, gallery)?")
def cli_reset():
    """Drop everything in the store; defaults come back on next start."""
    if not get_store().clear():
        raise click.ClickException("Could not clear the store.")
    app.extensions["folio.seeded"] = False
    click.secho("\n🧹  Store cleared.", fg="yellow")


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    app.run(debug=True)
