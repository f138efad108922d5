"""HTML rendering for the admin back office."""

from __future__ import annotations

from html import escape
from typing import Any
from urllib.parse import quote

from .config import Settings
from .db_models import Episode, Report
from .models import AnimeDetail
from .services.admin import (
    INFO_FORM_KEYS,
    AdminAnimeList,
    AdminEpisodeList,
    DashboardCounts,
    format_download_lines,
    format_stream_lines,
)
from .services.backup import ImportSummary
from .web import PageMeta, render_page, render_pagination

ADMIN_NAV = """
<nav class="site-nav" style="margin-bottom:1.5rem;">
    <a href="/admin">Dashboard</a>
    <a href="/admin/anime">Anime</a>
    <a href="/admin/anime/add">Add anime</a>
    <a href="/admin/episodes">Episodes</a>
    <a href="/admin/batch-upload">Remote upload</a>
    <a href="/admin/clear-mirrors">Clear mirrors</a>
    <a href="/admin/reports">Reports</a>
    <a href="/admin/backup">Backup</a>
    <a href="/admin/logout">Logout</a>
</nav>
"""


def _e(value: Any) -> str:
    return escape("" if value is None else str(value), quote=True)


def _admin_page(settings: Settings, title: str, body: str, *, path: str = "/admin") -> str:
    meta = PageMeta(title=f"Admin - {title}", path=path, noindex=True)
    return render_page(settings, meta, f"{ADMIN_NAV}<h1>{_e(title)}</h1>{body}")


def _episode_path(episode_slug: str) -> str:
    return quote(episode_slug.lstrip("/"), safe="/")


def render_admin_login(settings: Settings, *, error: str | None = None) -> str:
    error_html = f'<p class="error">{_e(error)}</p>' if error else ""
    body = f"""
        <h1>Admin login</h1>
        {error_html}
        <form class="stack" method="post" action="/admin/login">
            <input name="username" autocomplete="username" placeholder="Username" required />
            <input name="password" type="password" autocomplete="current-password" placeholder="Password" required />
            <button class="button primary" type="submit">Login</button>
        </form>
    """
    meta = PageMeta(title="Admin Login", path="/admin/login", noindex=True)
    return render_page(settings, meta, body)


def render_dashboard(settings: Settings, counts: DashboardCounts) -> str:
    rows = (
        ("Anime", counts.total_anime),
        ("Episodes", counts.total_episodes),
        ("Users", counts.total_users),
        ("Comments", counts.total_comments),
        ("Reports", counts.total_reports),
    )
    cards = "".join(
        f'<div class="card" style="padding:1rem;"><span class="muted">{label}</span>'
        f"<strong style=\"font-size:1.8rem;\">{value}</strong></div>"
        for label, value in rows
    )
    return _admin_page(settings, "Dashboard", f'<div class="grid">{cards}</div>')


def render_admin_anime_list(settings: Settings, listing: AdminAnimeList) -> str:
    rows = "".join(
        f"""<tr>
            <td><a href="/anime/{card.page_slug_encoded}">{_e(card.title)}</a></td>
            <td class="muted">{_e(card.page_slug)}</td>
            <td>{_e(card.info.get('Status', ''))}</td>
            <td><a class="button" href="/admin/anime/{card.page_slug_encoded}/edit">Edit</a>
                <form method="post" action="/admin/anime/{card.page_slug_encoded}/delete" style="display:inline"
                      onsubmit="return confirm('Delete this anime and all of its episodes?');">
                    <button class="button" type="submit">Delete</button>
                </form></td>
        </tr>"""
        for card in listing.items
    )
    base_url = f"/admin/anime?search={quote(listing.search)}" if listing.search else "/admin/anime"
    body = f"""
        <form method="get" action="/admin/anime" class="search">
            <input type="search" name="search" value="{_e(listing.search)}" placeholder="Search title or slug" />
        </form>
        <p class="muted">{listing.pagination.total_results} entries</p>
        <table class="info" style="width:100%;">
            <tr><th>Title</th><th>Slug</th><th>Status</th><th></th></tr>
            {rows}
        </table>
        {render_pagination(listing.pagination, base_url)}
    """
    return _admin_page(settings, "Anime", body, path="/admin/anime")


def _anime_fields(detail: AnimeDetail | None) -> str:
    info = detail.info if detail else {}
    info_inputs = "".join(
        f'<label>{key}<input name="info.{key}" value="{_e(info.get(key, ""))}" /></label>'
        for key in INFO_FORM_KEYS
    )
    return f"""
        <label>Title<input name="title" value="{_e(detail.title if detail else '')}" {'' if detail else 'required'} /></label>
        <label>Alternative title<input name="alternativeTitle" value="{_e(detail.alternative_title if detail else '')}" /></label>
        <label>Image URL<input name="imageUrl" value="{_e(detail.image_url if detail else '')}" /></label>
        <label>Synopsis<textarea name="synopsis" rows="5">{_e(detail.synopsis if detail else '')}</textarea></label>
        <label>Genres (comma separated)<input name="genres" value="{_e(', '.join(detail.genres) if detail else '')}" /></label>
        {info_inputs}
    """


def render_add_anime(settings: Settings, *, error: str | None = None) -> str:
    error_html = f'<p class="error">{_e(error)}</p>' if error else ""
    body = f"""
        {error_html}
        <form class="stack" method="post" action="/admin/anime/add" enctype="multipart/form-data" style="max-width:640px;">
            <label>Slug<input name="pageSlug" required pattern="[a-z0-9-]+" /></label>
            {_anime_fields(None)}
            <label>Cover image (jpg, png or webp, max 5 MB)<input type="file" name="animeImage" accept="image/jpeg,image/png,image/webp" /></label>
            <button class="button primary" type="submit">Create</button>
        </form>
    """
    return _admin_page(settings, "Add anime", body, path="/admin/anime/add")


def render_edit_anime(
    settings: Settings, detail: AnimeDetail, *, error: str | None = None
) -> str:
    error_html = f'<p class="error">{_e(error)}</p>' if error else ""
    episodes = "".join(
        f"""<tr><td><a href="{_e(ref.watch_url)}">{_e(ref.title)}</a></td>
            <td class="muted">{_e(ref.url)}</td>
            <td><a class="button" href="/admin/episode/{_episode_path(ref.url)}/edit">Edit</a></td></tr>"""
        for ref in detail.episodes
    )
    body = f"""
        {error_html}
        <form class="stack" method="post" action="/admin/anime/{detail.page_slug_encoded}/edit" style="max-width:640px;">
            {_anime_fields(detail)}
            <button class="button primary" type="submit">Save</button>
        </form>
        <h2>Episodes</h2>
        <table class="info" style="width:100%;">{episodes}</table>
        <h3>Add episode</h3>
        <form class="stack" method="post" action="/admin/anime/{detail.page_slug_encoded}/episodes/add">
            <label>Episode number<input name="episodeNumber" placeholder="e.g. 3" /></label>
            <label>Custom slug (optional)<input name="episodeSlug" placeholder="/{_e(detail.page_slug)}/3" /></label>
            <label>Title (optional)<input name="episodeTitle" /></label>
            <label>Date (optional)<input name="episodeDate" /></label>
            <button class="button primary" type="submit">Add episode</button>
        </form>
    """
    return _admin_page(
        settings,
        f"Edit: {detail.title}",
        body,
        path=f"/admin/anime/{detail.page_slug_encoded}/edit",
    )


def render_admin_episode_list(settings: Settings, listing: AdminEpisodeList) -> str:
    rows = "".join(
        f"""<tr>
            <td><a href="/anime{_e(episode.episode_slug)}">{_e(episode.title)}</a></td>
            <td class="muted">{_e(episode.anime_title or '')}</td>
            <td>{len(episode.streaming or [])} streams</td>
            <td><a class="button" href="/admin/episode/{_episode_path(episode.episode_slug)}/edit">Edit</a>
                <form method="post" action="/admin/episode/{_episode_path(episode.episode_slug)}/delete" style="display:inline"
                      onsubmit="return confirm('Delete this episode?');">
                    <button class="button" type="submit">Delete</button>
                </form></td>
        </tr>"""
        for episode in listing.items
    )
    body = f"""
        <p class="muted">{listing.pagination.total_results} episodes</p>
        <table class="info" style="width:100%;">{rows}</table>
        {render_pagination(listing.pagination, "/admin/episodes")}
    """
    return _admin_page(settings, "Episodes", body, path="/admin/episodes")


def render_edit_episode(
    settings: Settings, episode: Episode, *, error: str | None = None
) -> str:
    error_html = f'<p class="error">{_e(error)}</p>' if error else ""
    path = _episode_path(episode.episode_slug)
    body = f"""
        {error_html}
        <form class="stack" method="post" action="/admin/episode/{path}/edit" style="max-width:760px;">
            <label>Title<input name="title" value="{_e(episode.title)}" /></label>
            <label>Thumbnail URL<input name="thumbnailUrl" value="{_e(episode.thumbnail_url or '')}" /></label>
            <label>Date<input name="episodeDate" value="{_e(episode.episode_date or '')}" /></label>
            <label>Streams, one <code>name|url</code> per line
                <textarea name="streams" rows="6">{_e(format_stream_lines(episode.streaming))}</textarea></label>
            <label>Downloads, one <code>quality|host|url</code> per line
                <textarea name="downloads" rows="8">{_e(format_download_lines(episode.downloads))}</textarea></label>
            <button class="button primary" type="submit">Save</button>
        </form>
        <form method="post" action="/admin/episode/{path}/delete" onsubmit="return confirm('Delete this episode?');">
            <button class="button" type="submit">Delete episode</button>
        </form>
    """
    return _admin_page(
        settings,
        f"Edit episode: {episode.title or episode.episode_slug}",
        body,
        path=f"/admin/episode/{path}/edit",
    )


def render_backup_page(settings: Settings, *, error: str | None = None) -> str:
    error_html = f'<p class="error">{_e(error)}</p>' if error else ""
    body = f"""
        {error_html}
        <p><a class="button primary" href="/admin/backup/export">Download backup (.json)</a></p>
        <h2>Restore</h2>
        <p class="error">Restoring replaces all anime, episodes, users, bookmarks and comments.</p>
        <form class="stack" method="post" action="/admin/backup/import" enctype="multipart/form-data">
            <input type="file" name="backupFile" accept="application/json,.json" required />
            <button class="button" type="submit">Restore backup</button>
        </form>
    """
    return _admin_page(settings, "Backup & restore", body, path="/admin/backup")


def render_import_result(settings: Settings, summary: ImportSummary) -> str:
    body = f"""
        <p>The database was restored.</p>
        <ul>
            <li>{summary.animes} anime imported.</li>
            <li>{summary.episodes} episodes imported.</li>
            <li>{summary.bookmarks} bookmarks imported.</li>
            <li>{summary.users} users imported.</li>
            <li>{summary.comments} comments imported.</li>
        </ul>
        <p><a href="/admin">&laquo; Back to dashboard</a></p>
    """
    return _admin_page(settings, "Import finished", body, path="/admin/backup")


def render_remote_upload(settings: Settings, *, configured: bool) -> str:
    notice = (
        ""
        if configured
        else '<p class="error">DOOD_API_KEY is not configured; uploads will fail.</p>'
    )
    body = f"""
        {notice}
        <form id="remote-upload" class="stack" style="max-width:640px;">
            <label>Episode slug<input name="episodeSlug" placeholder="/anime-slug/1" required /></label>
            <label>Video URL<input name="videoUrl" type="url" required /></label>
            <button class="button primary" type="submit">Upload</button>
            <span class="status muted"></span>
        </form>
        <script>
        (function () {{
            const form = document.getElementById('remote-upload');
            form.addEventListener('submit', async (event) => {{
                event.preventDefault();
                const status = form.querySelector('.status');
                status.textContent = 'Uploading...';
                const res = await fetch('/admin/api/remote-upload', {{
                    method: 'POST',
                    headers: {{ 'Content-Type': 'application/json' }},
                    body: JSON.stringify({{
                        episodeSlug: form.episodeSlug.value,
                        videoUrl: form.videoUrl.value,
                    }}),
                }});
                const body = await res.json().catch(() => ({{}}));
                status.textContent = body.success ? 'Added ' + body.newLink.url : (body.error || 'Upload failed');
            }});
        }})();
        </script>
    """
    return _admin_page(settings, "Remote upload", body, path="/admin/batch-upload")


def render_clear_mirrors(settings: Settings) -> str:
    body = """
        <p>Removes every stream named Mirror, Viplay or EarnVids and every download
        group with quality Mirror, Viplay, EarnVids, 480p or 720p from all episodes.</p>
        <button id="clear-mirrors" class="button primary" type="button">Clear mirrors</button>
        <p class="status muted"></p>
        <script>
        (function () {
            const button = document.getElementById('clear-mirrors');
            button.addEventListener('click', async () => {
                if (!confirm('Remove mirrors from all episodes?')) return;
                const status = document.querySelector('.status');
                status.textContent = 'Working...';
                const res = await fetch('/admin/api/clear-mirrors-start', { method: 'POST' });
                const body = await res.json().catch(() => ({}));
                status.textContent = body.success ? body.modifiedCount + ' episodes modified.' : (body.error || 'Failed');
            });
        })();
        </script>
    """
    return _admin_page(settings, "Clear mirrors", body, path="/admin/clear-mirrors")


def render_reports(settings: Settings, reports: list[Report]) -> str:
    rows = "".join(
        f"""<tr>
            <td class="muted">{report.created_at:%Y-%m-%d %H:%M}</td>
            <td><a href="{_e(report.page_url)}" rel="nofollow">{_e(report.page_path or report.page_url)}</a></td>
            <td>{_e(report.message)}</td>
            <td>{_e(report.user.username if report.user else '-')}</td>
            <td>{_e(report.status)}</td>
            <td><form method="post" action="/admin/report/delete/{report.id}">
                <button class="button" type="submit">Delete</button></form></td>
        </tr>"""
        for report in reports
    )
    body = (
        f'<table class="info" style="width:100%;">{rows}</table>'
        if rows
        else '<p class="muted">No reports.</p>'
    )
    return _admin_page(settings, "Error reports", body, path="/admin/reports")
