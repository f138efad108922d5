"""HTML page rendering for the public site."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime
from html import escape
from textwrap import dedent
from typing import Any, Iterable
from urllib.parse import quote

from .config import Settings
from .models import (
    AnimeCard,
    AnimeDetail,
    AnimePage,
    EpisodeCard,
    HomeFeed,
    Pagination,
    WatchPage,
)
from .utils import DEFAULT_IMAGE_URL, absolute_url, extract_years, slugify

_PLACEHOLDER_RE = re.compile(r"__[A-Z_]+__")

PAGE_TEMPLATE = dedent(
    """
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__TITLE__</title>
    <meta name="description" content="__DESCRIPTION__" />
    <link rel="canonical" href="__CANONICAL__" />
    <meta property="og:site_name" content="__SITE_NAME__" />
    <meta property="og:title" content="__TITLE__" />
    <meta property="og:description" content="__DESCRIPTION__" />
    <meta property="og:image" content="__IMAGE__" />
    <meta property="og:url" content="__CANONICAL__" />
    __ROBOTS__
    <style>
        :root {
            color-scheme: dark;
            font-family: 'Inter', 'Segoe UI', system-ui, -apple-system, sans-serif;
            --surface: #141414;
            --surface-strong: #1f1f1f;
            --text-primary: #f5f5f5;
            --text-muted: #a6a6a6;
            --outline: #2b2b2b;
            --accent: #e94560;
            background: #000000;
            color: var(--text-primary);
        }
        * { box-sizing: border-box; }
        body { margin: 0; min-height: 100vh; background: #000000; }
        a { color: inherit; }
        .site-header {
            display: flex;
            flex-wrap: wrap;
            gap: 1rem;
            align-items: center;
            justify-content: space-between;
            padding: 1rem 1.5rem;
            border-bottom: 1px solid var(--outline);
            background: var(--surface);
        }
        .brand { font-weight: 700; font-size: 1.3rem; text-decoration: none; }
        .site-nav { display: flex; flex-wrap: wrap; gap: 0.9rem; }
        .site-nav a { text-decoration: none; color: var(--text-muted); }
        .site-nav a:hover { color: var(--text-primary); }
        .search input {
            background: var(--surface-strong);
            border: 1px solid var(--outline);
            border-radius: 999px;
            color: var(--text-primary);
            padding: 0.45rem 0.9rem;
        }
        main { max-width: 1200px; margin: 0 auto; padding: 2rem 1.5rem 4rem; }
        h1 { letter-spacing: -0.02em; }
        .muted { color: var(--text-muted); }
        .grid {
            display: grid;
            grid-template-columns: repeat(auto-fill, minmax(160px, 1fr));
            gap: 1.25rem;
        }
        .card {
            display: flex;
            flex-direction: column;
            gap: 0.4rem;
            text-decoration: none;
            background: var(--surface);
            border: 1px solid var(--outline);
            border-radius: 14px;
            overflow: hidden;
        }
        .card img { width: 100%; aspect-ratio: 2 / 3; object-fit: cover; background: #222; }
        .card.episode img { aspect-ratio: 16 / 9; }
        .card-title { padding: 0 0.7rem; font-weight: 600; font-size: 0.95rem; }
        .card-meta { padding: 0 0.7rem 0.7rem; font-size: 0.8rem; color: var(--text-muted); }
        .pagination { display: flex; gap: 0.5rem; justify-content: center; margin: 2rem 0; }
        .pagination a, .pagination span {
            padding: 0.4rem 0.8rem;
            border: 1px solid var(--outline);
            border-radius: 8px;
            text-decoration: none;
        }
        .pagination .current { background: var(--accent); border-color: var(--accent); }
        .tags { display: flex; flex-wrap: wrap; gap: 0.5rem; padding: 0; list-style: none; }
        .tags a {
            display: inline-block;
            padding: 0.3rem 0.75rem;
            border-radius: 999px;
            background: var(--surface-strong);
            text-decoration: none;
        }
        .detail { display: grid; grid-template-columns: minmax(180px, 260px) 1fr; gap: 2rem; }
        .detail img { width: 100%; border-radius: 14px; }
        .info { border-collapse: collapse; }
        .info th { text-align: left; padding: 0.25rem 1rem 0.25rem 0; color: var(--text-muted); }
        .episodes { list-style: none; padding: 0; display: grid; gap: 0.4rem; }
        .episodes a {
            display: flex;
            justify-content: space-between;
            padding: 0.6rem 0.9rem;
            background: var(--surface);
            border: 1px solid var(--outline);
            border-radius: 10px;
            text-decoration: none;
        }
        .player { width: 100%; aspect-ratio: 16 / 9; border: 0; background: #111; border-radius: 12px; }
        .servers button, .button {
            background: var(--surface-strong);
            border: 1px solid var(--outline);
            color: var(--text-primary);
            padding: 0.45rem 0.9rem;
            border-radius: 8px;
            cursor: pointer;
            text-decoration: none;
            display: inline-block;
        }
        .servers button.active, .button.primary { background: var(--accent); border-color: var(--accent); }
        .nav-links { display: flex; justify-content: space-between; gap: 1rem; margin: 1rem 0; }
        form.stack { display: grid; gap: 0.75rem; max-width: 360px; }
        form.stack input, form.stack textarea {
            padding: 0.55rem 0.8rem;
            border-radius: 8px;
            border: 1px solid var(--outline);
            background: var(--surface-strong);
            color: var(--text-primary);
        }
        .error { color: #ff7b7b; }
        footer { text-align: center; padding: 2rem; color: var(--text-muted); border-top: 1px solid var(--outline); }
        @media (max-width: 720px) { .detail { grid-template-columns: 1fr; } }
    </style>
</head>
<body>
    <header class="site-header">
        <a class="brand" href="/home">__SITE_NAME__</a>
        <nav class="site-nav">
            <a href="/home">Home</a>
            <a href="/anime-list">Anime List</a>
            <a href="/genre-list">Genres</a>
            <a href="/year-list">Years</a>
            <a href="/schedule">Schedule</a>
            <a href="/random">Random</a>
            <a href="/bookmarks">Bookmarks</a>
        </nav>
        <form class="search" action="/search" method="get" role="search">
            <input type="search" name="q" value="__QUERY__" placeholder="Search anime" aria-label="Search anime" />
        </form>
        <div class="account">__ACCOUNT__</div>
    </header>
    <main>
__BODY__
    </main>
    <footer>&copy; __YEAR__ __SITE_NAME__</footer>
</body>
</html>
    """
).strip()

BOOKMARK_SCRIPT = """
<script>
(function () {
    const button = document.getElementById('bookmark-button');
    if (!button) return;
    const animeId = button.dataset.animeId;
    const render = (saved) => {
        button.dataset.saved = saved ? '1' : '0';
        button.textContent = saved ? 'Remove bookmark' : 'Bookmark';
    };
    fetch('/api/bookmark-status?animeId=' + encodeURIComponent(animeId))
        .then((res) => res.ok ? res.json() : { isBookmarked: false })
        .then((data) => render(Boolean(data.isBookmarked)));
    button.addEventListener('click', async () => {
        const saved = button.dataset.saved === '1';
        const res = saved
            ? await fetch('/api/bookmarks?animeId=' + encodeURIComponent(animeId), { method: 'DELETE' })
            : await fetch('/api/bookmarks', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ animeId: Number(animeId) }),
            });
        if (res.status === 401) { window.location.href = '/login'; return; }
        if (res.ok) render(!saved);
    });
})();
</script>
"""

PLAYER_SCRIPT = """
<script>
(function () {
    const data = JSON.parse(document.getElementById('episode-data').textContent);
    const player = document.getElementById('player');
    const buttons = document.querySelectorAll('.servers button');
    const select = (index) => {
        const stream = data.streaming[index];
        if (!stream || !stream.url) return;
        player.src = atob(stream.url);
        buttons.forEach((button, i) => button.classList.toggle('active', i === index));
    };
    buttons.forEach((button, i) => button.addEventListener('click', () => select(i)));
    select(0);
    const report = document.getElementById('report-form');
    if (report) {
        report.addEventListener('submit', async (event) => {
            event.preventDefault();
            const message = report.querySelector('textarea').value;
            const res = await fetch('/api/report-error', {
                method: 'POST',
                headers: { 'Content-Type': 'application/json' },
                body: JSON.stringify({ pageUrl: window.location.href, message }),
            });
            const body = await res.json().catch(() => ({}));
            report.querySelector('.status').textContent =
                res.status === 401 ? 'Please log in to send a report.' : (body.message || body.error || '');
        });
    }
})();
</script>
"""

SAFELINK_SCRIPT = """
<script>
(function () {
    const target = document.getElementById('safelink');
    let remaining = 5;
    const timer = setInterval(() => {
        remaining -= 1;
        document.getElementById('countdown').textContent = remaining;
        if (remaining <= 0) {
            clearInterval(timer);
            try {
                const url = atob(target.dataset.url);
                target.href = url;
                target.textContent = 'Continue to link';
                target.classList.add('primary');
            } catch (err) {
                target.textContent = 'Invalid link';
            }
        }
    }, 1000);
})();
</script>
"""

BOOKMARKS_SCRIPT = """
<script>
(function () {
    const grid = document.getElementById('bookmark-grid');
    const clear = document.getElementById('clear-bookmarks');
    const escapeHtml = (value) => String(value).replace(/[&<>"']/g, (c) => ({
        '&': '&amp;', '<': '&lt;', '>': '&gt;', '"': '&quot;', "'": '&#39;'
    })[c]);
    const load = async () => {
        const res = await fetch('/api/my-bookmarks');
        if (res.status === 401) { window.location.href = '/login'; return; }
        const items = await res.json();
        grid.innerHTML = items.length ? items.map((item) =>
            '<a class="card" href="/anime/' + item.pageSlugEncoded + '">' +
            '<img src="' + escapeHtml(item.imageUrl) + '" alt="" loading="lazy" />' +
            '<span class="card-title">' + escapeHtml(item.title) + '</span></a>'
        ).join('') : '<p class="muted">No bookmarks yet.</p>';
    };
    clear.addEventListener('click', async () => {
        if (!confirm('Remove all bookmarks?')) return;
        await fetch('/api/bookmarks/all', { method: 'DELETE' });
        load();
    });
    load();
})();
</script>
"""


@dataclass(slots=True)
class PageMeta:
    """Title and SEO tags for one rendered page."""

    title: str
    description: str = ""
    path: str = "/"
    image: str = DEFAULT_IMAGE_URL
    noindex: bool = False


def _e(value: Any) -> str:
    return escape("" if value is None else str(value), quote=True)


def _json_script(element_id: str, payload: Any) -> str:
    data = json.dumps(payload).replace("</", "<\\/")
    return f'<script type="application/json" id="{element_id}">{data}</script>'


def render_page(
    settings: Settings,
    meta: PageMeta,
    body: str,
    *,
    user: dict[str, Any] | None = None,
    query: str = "",
) -> str:
    """Wrap ``body`` in the site layout."""

    if user:
        account = (
            f'<span class="muted">{_e(user.get("username"))}</span> '
            '<a href="/logout">Logout</a>'
        )
    else:
        account = '<a href="/login">Login</a> <a href="/register">Register</a>'

    title = meta.title if meta.title.endswith(settings.site_name) else f"{meta.title} - {settings.site_name}"
    replacements = {
        "__TITLE__": _e(title),
        "__DESCRIPTION__": _e(meta.description or f"Watch anime online on {settings.site_name}."),
        "__CANONICAL__": _e(absolute_url(settings.site_url, meta.path)),
        "__IMAGE__": _e(absolute_url(settings.site_url, meta.image or DEFAULT_IMAGE_URL)),
        "__ROBOTS__": '<meta name="robots" content="noindex, nofollow" />' if meta.noindex else "",
        "__SITE_NAME__": _e(settings.site_name),
        "__QUERY__": _e(query),
        "__ACCOUNT__": account,
        "__YEAR__": str(datetime.now().year),
    }
    replacements["__BODY__"] = body
    # Single pass, so inserted values are never scanned for placeholders.
    return _PLACEHOLDER_RE.sub(
        lambda match: replacements.get(match.group(0), match.group(0)), PAGE_TEMPLATE
    )


def _anime_card(card: AnimeCard) -> str:
    meta = " · ".join(
        value for value in (card.info.get("Type"), card.info.get("Status")) if value
    )
    return (
        f'<a class="card" href="/anime/{card.page_slug_encoded}">'
        f'<img src="{_e(card.image_url)}" alt="{_e(card.title)}" loading="lazy" />'
        f'<span class="card-title">{_e(card.title)}</span>'
        f'<span class="card-meta">{_e(meta)}</span></a>'
    )


def _anime_grid(cards: Iterable[AnimeCard], *, empty: str = "Nothing found.") -> str:
    items = "".join(_anime_card(card) for card in cards)
    if not items:
        return f'<p class="muted">{_e(empty)}</p>'
    return f'<div class="grid">{items}</div>'


def _episode_card(card: EpisodeCard) -> str:
    return (
        f'<a class="card episode" href="{_e(card.watch_url)}">'
        f'<img src="{_e(card.image_url)}" alt="{_e(card.title)}" loading="lazy" />'
        f'<span class="card-title">{_e(card.title)}</span>'
        f'<span class="card-meta">{_e(card.quality)} · {_e(card.year)}</span></a>'
    )


def _page_link(base_url: str, page: int) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}page={page}"


def render_pagination(pagination: Pagination, base_url: str) -> str:
    """Previous/next links plus a window of page numbers around the current page."""

    if pagination.total_pages <= 1:
        return ""
    current = pagination.current_page
    parts = []
    if current > 1:
        parts.append(f'<a href="{_e(_page_link(base_url, current - 1))}">&laquo; Prev</a>')
    start = max(1, current - 2)
    end = min(pagination.total_pages, current + 2)
    for number in range(start, end + 1):
        if number == current:
            parts.append(f'<span class="current">{number}</span>')
        else:
            parts.append(f'<a href="{_e(_page_link(base_url, number))}">{number}</a>')
    if current < pagination.total_pages:
        parts.append(f'<a href="{_e(_page_link(base_url, current + 1))}">Next &raquo;</a>')
    return f'<nav class="pagination">{"".join(parts)}</nav>'


def render_landing(settings: Settings, *, user: dict[str, Any] | None = None) -> str:
    body = f"""
        <section style="text-align:center; padding: 4rem 0;">
            <h1>{_e(settings.site_name)}</h1>
            <p class="muted">Stream and download anime episodes with subtitles.</p>
            <form action="/search" method="get" class="search">
                <input type="search" name="q" placeholder="Search anime" aria-label="Search anime" />
            </form>
            <p><a class="button primary" href="/home">Go to home</a></p>
        </section>
    """
    meta = PageMeta(
        title=f"{settings.site_name} - Watch Anime Online",
        description=f"{settings.site_name}: watch the latest anime episodes online.",
        path="/",
    )
    return render_page(settings, meta, body, user=user)


def render_home(settings: Settings, feed: HomeFeed, *, user: dict[str, Any] | None = None) -> str:
    episodes = "".join(_episode_card(card) for card in feed.episodes)
    pagination = Pagination(
        current_page=feed.current_page,
        total_pages=feed.total_pages,
        total_results=feed.total_episodes,
    )
    body = f"""
        <h1>Latest episodes</h1>
        {f'<div class="grid">{episodes}</div>' if episodes else '<p class="muted">No episodes yet.</p>'}
        {render_pagination(pagination, "/home")}
        <h2>Latest series</h2>
        {_anime_grid(feed.latest_series)}
    """
    title = "Home" if feed.current_page == 1 else f"Home - Page {feed.current_page}"
    path = "/home" if feed.current_page == 1 else f"/home?page={feed.current_page}"
    meta = PageMeta(title=title, description="Latest anime episodes.", path=path)
    return render_page(settings, meta, body, user=user)


def render_listing(
    settings: Settings,
    *,
    title: str,
    page: AnimePage,
    base_url: str,
    description: str = "",
    query: str = "",
    noindex: bool = False,
    user: dict[str, Any] | None = None,
) -> str:
    """Grid page used by search, taxonomy filters and the full anime list."""

    body = f"""
        <h1>{_e(title)}</h1>
        <p class="muted">{page.total_count} titles</p>
        {_anime_grid(page.items)}
        {render_pagination(page.pagination, base_url)}
    """
    path = base_url if page.current_page == 1 else _page_link(base_url, page.current_page)
    meta = PageMeta(
        title=title if page.current_page == 1 else f"{title} - Page {page.current_page}",
        description=description or f"{title} on {settings.site_name}.",
        path=path,
        noindex=noindex,
    )
    return render_page(settings, meta, body, user=user, query=query)


def render_genre_index(
    settings: Settings, genres: list[str], *, user: dict[str, Any] | None = None
) -> str:
    items = "".join(
        f'<li><a href="/genre/{_e(slugify(genre))}">{_e(genre)}</a></li>'
        for genre in genres
        if slugify(genre)
    )
    body = f'<h1>Genres</h1><ul class="tags">{items}</ul>'
    meta = PageMeta(title="Genre List", description="Browse anime by genre.", path="/genre-list")
    return render_page(settings, meta, body, user=user)


def render_year_index(
    settings: Settings, years: list[str], *, user: dict[str, Any] | None = None
) -> str:
    items = "".join(f'<li><a href="/year/{_e(year)}">{_e(year)}</a></li>' for year in years)
    body = f'<h1>Release years</h1><ul class="tags">{items}</ul>'
    meta = PageMeta(title="Year List", description="Browse anime by release year.", path="/year-list")
    return render_page(settings, meta, body, user=user)


_INFO_LINKS = {"Status": "status", "Type": "type", "Studio": "studio"}


def _info_value(key: str, value: str) -> str:
    prefix = _INFO_LINKS.get(key)
    if prefix and slugify(value):
        return f'<a href="/{prefix}/{_e(slugify(value))}">{_e(value)}</a>'
    if key == "Released":
        years = extract_years([value])
        if years:
            return f'<a href="/year/{years[0]}">{_e(value)}</a>'
    return _e(value)


def render_anime_detail(
    settings: Settings,
    detail: AnimeDetail,
    recommendations: list[AnimeCard],
    *,
    user: dict[str, Any] | None = None,
) -> str:
    info_rows = "".join(
        f"<tr><th>{_e(key)}</th><td>{_info_value(key, value)}</td></tr>"
        for key, value in detail.info.items()
        if value
    )
    genres = "".join(
        f'<li><a href="/genre/{_e(slugify(genre))}">{_e(genre)}</a></li>'
        for genre in detail.genres
    )
    episodes = "".join(
        f'<li><a href="{_e(ref.watch_url)}"><span>{_e(ref.title)}</span>'
        f'<span class="muted">{_e(ref.date or "")}</span></a></li>'
        for ref in reversed(detail.episodes)
    )
    alternative = (
        f'<p class="muted">{_e(detail.alternative_title)}</p>' if detail.alternative_title else ""
    )
    body = f"""
        <article class="detail">
            <div>
                <img src="{_e(detail.image_url)}" alt="{_e(detail.title)}" />
                <p class="muted">{_e(detail.view_count_label)} views</p>
                <button id="bookmark-button" class="button" data-anime-id="{detail.id}">Bookmark</button>
            </div>
            <div>
                <h1>{_e(detail.title)}</h1>
                {alternative}
                <table class="info">{info_rows}</table>
                <ul class="tags">{genres}</ul>
                <p>{_e(detail.synopsis)}</p>
            </div>
        </article>
        <h2>Episodes</h2>
        {f'<ul class="episodes">{episodes}</ul>' if episodes else '<p class="muted">No episodes yet.</p>'}
        <h2>Recommendations</h2>
        {_anime_grid(recommendations)}
        {BOOKMARK_SCRIPT}
    """
    meta = PageMeta(
        title=detail.title,
        description=detail.short_description(),
        path=f"/anime/{detail.page_slug_encoded}",
        image=detail.image_url,
    )
    return render_page(settings, meta, body, user=user)


def render_watch_page(
    settings: Settings, watch: WatchPage, *, user: dict[str, Any] | None = None
) -> str:
    episode = watch.episode
    servers = "".join(
        f'<button type="button">{_e(stream.name)}</button>' for stream in episode.streaming
    )
    downloads = "".join(
        f"<li><strong>{_e(group.quality)}</strong> "
        + " ".join(
            f'<a class="button" href="/safelink?url={quote(link.url or "", safe="")}" '
            f'rel="nofollow">{_e(link.host)}</a>'
            for link in group.links
            if link.url
        )
        + "</li>"
        for group in episode.downloads
    )
    nav = watch.nav
    prev_link = (
        f'<a class="button" href="{_e(nav.prev.watch_url)}">&laquo; {_e(nav.prev.title)}</a>'
        if nav.prev
        else "<span></span>"
    )
    next_link = (
        f'<a class="button" href="{_e(nav.next.watch_url)}">{_e(nav.next.title)} &raquo;</a>'
        if nav.next
        else "<span></span>"
    )
    all_link = f'<a class="button" href="{_e(nav.all)}">All episodes</a>' if nav.all else ""
    parent = ""
    if watch.parent is not None:
        parent = f"""
            <section class="detail" style="margin-top:2rem;">
                <img src="{_e(watch.parent.image_url)}" alt="{_e(watch.parent.title)}" />
                <div>
                    <h2><a href="/anime/{watch.parent.page_slug_encoded}">{_e(watch.parent.title)}</a></h2>
                    <p>{_e(watch.parent.short_description(300))}</p>
                </div>
            </section>
        """
    report = (
        """
        <form id="report-form" class="stack">
            <h3>Report a problem</h3>
            <textarea name="message" rows="3" required placeholder="What is wrong with this page?"></textarea>
            <button class="button" type="submit">Send report</button>
            <span class="status muted"></span>
        </form>
        """
        if user
        else '<p class="muted"><a href="/login">Log in</a> to report a broken link.</p>'
    )
    body = f"""
        <h1>{_e(episode.title)}</h1>
        <iframe id="player" class="player" allowfullscreen referrerpolicy="no-referrer"></iframe>
        <div class="servers">{servers or '<p class="muted">No streams available yet.</p>'}</div>
        <div class="nav-links">{prev_link}{all_link}{next_link}</div>
        <h2>Downloads</h2>
        {f'<ul class="episodes">{downloads}</ul>' if downloads else '<p class="muted">No downloads available.</p>'}
        {parent}
        {report}
        <h2>Recommendations</h2>
        {_anime_grid(watch.recommendations)}
        <h2>Latest series</h2>
        {_anime_grid(watch.latest_series)}
        {_json_script("episode-data", episode.to_payload())}
        {PLAYER_SCRIPT}
    """
    meta = PageMeta(
        title=episode.title,
        description=f"Watch {episode.title} online.",
        path=f"/anime{episode.episode_slug}",
        image=episode.thumbnail_url,
    )
    return render_page(settings, meta, body, user=user)


def render_schedule(settings: Settings, *, user: dict[str, Any] | None = None) -> str:
    days = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
    items = "".join(f"<li><strong>{day}</strong></li>" for day in days)
    body = f"""
        <h1>Release schedule</h1>
        <p class="muted">New episodes are added as soon as they air.</p>
        <ul class="episodes">{items}</ul>
    """
    meta = PageMeta(title="Release Schedule", description="Weekly anime release schedule.", path="/schedule")
    return render_page(settings, meta, body, user=user)


def render_safelink(
    settings: Settings, encoded_url: str, *, user: dict[str, Any] | None = None
) -> str:
    body = f"""
        <section style="text-align:center; padding: 3rem 0;">
            <h1>Redirecting&hellip;</h1>
            <p class="muted">Your link will be ready in <span id="countdown">5</span> seconds.</p>
            <a id="safelink" class="button" data-url="{_e(encoded_url)}" rel="nofollow noopener">Please wait</a>
        </section>
        {SAFELINK_SCRIPT}
    """
    meta = PageMeta(
        title="Redirecting...",
        description="Please wait to be redirected to your link.",
        path="/safelink",
        noindex=True,
    )
    return render_page(settings, meta, body, user=user)


def render_bookmarks(settings: Settings, *, user: dict[str, Any] | None = None) -> str:
    if not user:
        body = '<h1>My bookmarks</h1><p class="muted"><a href="/login">Log in</a> to see your bookmarks.</p>'
    else:
        body = f"""
            <h1>My bookmarks</h1>
            <p><button id="clear-bookmarks" class="button" type="button">Remove all</button></p>
            <div id="bookmark-grid" class="grid"></div>
            {BOOKMARKS_SCRIPT}
        """
    meta = PageMeta(title="My Bookmarks", description="Your saved anime.", path="/bookmarks", noindex=True)
    return render_page(settings, meta, body, user=user)


def render_auth_page(
    settings: Settings, *, mode: str, error: str | None = None
) -> str:
    """Login or registration form (``mode`` is ``"login"`` or ``"register"``)."""

    is_login = mode == "login"
    heading = "Login" if is_login else "Register"
    switch = (
        '<p class="muted">No account yet? <a href="/register">Register</a></p>'
        if is_login
        else '<p class="muted">Already registered? <a href="/login">Login</a></p>'
    )
    error_html = f'<p class="error">{_e(error)}</p>' if error else ""
    body = f"""
        <h1>{heading}</h1>
        {error_html}
        <form class="stack" method="post" action="/{mode}">
            <input name="username" autocomplete="username" placeholder="Username" required />
            <input name="password" type="password" autocomplete="{'current-password' if is_login else 'new-password'}" placeholder="Password" required />
            <button class="button primary" type="submit">{heading}</button>
        </form>
        {switch}
    """
    meta = PageMeta(
        title=heading,
        description="Log in to keep bookmarks." if is_login else "Create an account to keep bookmarks.",
        path=f"/{mode}",
        noindex=True,
    )
    return render_page(settings, meta, body)


def render_error_page(
    settings: Settings,
    status_code: int,
    message: str,
    *,
    path: str = "/",
    user: dict[str, Any] | None = None,
) -> str:
    heading = "Page not found" if status_code == 404 else "Something went wrong"
    body = f"""
        <section style="text-align:center; padding: 4rem 0;">
            <h1>{status_code}</h1>
            <h2>{heading}</h2>
            <p class="muted">{_e(message)}</p>
            <p><a class="button primary" href="/home">Back to home</a></p>
        </section>
    """
    meta = PageMeta(title=f"{status_code} {heading}", description=heading, path=path, noindex=True)
    return render_page(settings, meta, body, user=user)
