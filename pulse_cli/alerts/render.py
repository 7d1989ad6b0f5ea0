"""Alert content rendering.

Each event name may have a renderer producing a subject line and an HTML
body fragment. Events without one fall back to a JSON dump of their
payload. Alarm and digest wrappers add the ``[PULSE]`` subject prefix.
"""

import json
from html import escape
from typing import Callable, Dict, List, Sequence, Tuple

from pulse_cli.alerts.rules import RenderedContent
from pulse_cli.events.bus import Event

SUBJECT_PREFIX = "[PULSE]"
RETRIGGERED_PREFIX = "[PULSE] Retriggered:"
DIGEST_PREFIX = "[PULSE] Digest:"

# Renderer: event -> (subject, html body)
Renderer = Callable[[Event], Tuple[str, str]]

_RENDERERS: Dict[str, Renderer] = {}

NEWS_STYLE = """
body { font-family: Georgia, serif; color: #222; }
h2 { border-bottom: 1px solid #ccc; }
.article { margin-bottom: 1em; }
.published { color: #777; font-size: 0.8em; }
"""


def renderer(event_name: str) -> Callable[[Renderer], Renderer]:
    """Register a renderer for an event name."""

    def decorator(func: Renderer) -> Renderer:
        _RENDERERS[event_name] = func
        return func

    return decorator


def render_event(event: Event) -> Tuple[str, str]:
    """Render a single event to ``(subject, body)``."""
    func = _RENDERERS.get(event.name, _render_generic)
    return func(event)


def render_alarm(event: Event, retriggered: bool = False) -> RenderedContent:
    """Render an alarm for a single event.

    Args:
        event: The matched event
        retriggered: Whether the rule has fired before
    """
    subject, body = render_event(event)
    prefix = RETRIGGERED_PREFIX if retriggered else SUBJECT_PREFIX
    return RenderedContent(subject=f"{prefix} {subject}", body=body)


def render_digest(event_name: str, events: Sequence[Event]) -> RenderedContent:
    """Render every buffered event, in order, as one digest."""
    sections: List[str] = []
    subject = event_name
    for event in events:
        subject, body = render_event(event)
        sections.append(
            f'<div class="digest-entry"><h3>{escape(event.occurred_at.isoformat())}</h3>{body}</div>'
        )

    count = len(events)
    noun = "event" if count == 1 else "events"
    return RenderedContent(
        subject=f"{DIGEST_PREFIX} {subject} ({count} {noun})",
        body="<hr>".join(sections),
    )


def _render_generic(event: Event) -> Tuple[str, str]:
    payload = json.dumps(dict(event.payload), indent=2, sort_keys=True, default=str)
    return event.name, f"<pre>{escape(payload)}</pre>"


def _over_threshold(event: Event) -> List[dict]:
    readings = event.payload.get("readings", [])
    return [reading for reading in readings if reading.get("over_threshold")]


@renderer("high-disk-usage")
def _render_high_disk_usage(event: Event) -> Tuple[str, str]:
    lines = [
        "<p>Filesystem mounted at {} has {:.2f}% disk usage, which is above the max of {:.2f}</p>".format(
            escape(str(reading["mount"])),
            reading["percent_disk_used"],
            reading["max_usage"],
        )
        for reading in _over_threshold(event)
    ]
    return "High Disk Usage", "\n".join(lines)


@renderer("disk-usage")
def _render_disk_usage(event: Event) -> Tuple[str, str]:
    rows = "".join(
        f"<tr><td>{escape(str(reading['mount']))}</td><td>{reading['percent_disk_used']:.2f}%</td></tr>"
        for reading in event.payload.get("readings", [])
    )
    return "Disk Usage", f"<table><tr><th>Mount</th><th>Used</th></tr>{rows}</table>"


@renderer("newscast")
def _render_newscast(event: Event) -> Tuple[str, str]:
    sections = []
    for section in event.payload.get("sections", []):
        articles = "<br>".join(
            '<div class="article"><a href="{url}">{title}</a>'
            '<div class="published">{published}</div><p>{abstract}</p></div>'.format(
                url=escape(article.get("url", "")),
                title=escape(article.get("title", "")),
                published=escape(article.get("published_date", "")),
                abstract=escape(article.get("abstract", "")),
            )
            for article in section.get("articles", [])
        )
        sections.append(f"<h2>{escape(section.get('section_title', ''))}</h2>{articles}")

    body = f"<html><head><style>{NEWS_STYLE}</style></head><body>{'<br>'.join(sections)}</body></html>"
    return "News", body


@renderer("command-output")
def _render_command_output(event: Event) -> Tuple[str, str]:
    command = event.payload.get("command", "")
    output = event.payload.get("stdout", "")
    return f"Command Output: {command}", f"<p><code>{escape(command)}</code></p><pre>{escape(output)}</pre>"


@renderer("tweets")
def _render_tweets(event: Event) -> Tuple[str, str]:
    sections = []
    for group in event.payload.get("groups", []):
        items = "".join(
            "<li><b>@{user}</b> ({likes} favourites): {text}</li>".format(
                user=escape(str(tweet.get("username") or "unknown")),
                likes=tweet.get("favorite_count", 0),
                text=escape(tweet.get("text", "")),
            )
            for tweet in group.get("popular", [])
        )
        sections.append(f"<h2>{escape(group.get('group_name', ''))}</h2><ul>{items}</ul>")
    return "Popular Tweets", "".join(sections)
