"""
Formatting of Slack messages into Zendesk comment HTML
"""
import re
from typing import List, Optional

from app.integrations.slack.models import SlackFile

EMPTY_MESSAGE_HTML = "<i>(Empty message)</i>"

_BLOCKQUOTE = re.compile(r"^>\s?(.*)", re.MULTILINE)
_CODE_BLOCK = re.compile(r"```(.*?)```", re.DOTALL)
_ORDERED_ITEM = re.compile(r"^\d+\.\s(.*)", re.MULTILINE)
_BULLET_ITEM = re.compile(r"^[*+\-]\s(.*)", re.MULTILINE)
_LIST_RUN = re.compile(r"(<li>.*</li>)", re.DOTALL)
_INLINE_CODE = re.compile(r"`(.*?)`")
_BOLD = re.compile(r"\*(.*?)\*")
_ITALIC = re.compile(r"_(.*?)_")
_STRIKE = re.compile(r"~(.*?)~")
_PLAIN_LINE = re.compile(
    r"^(?!<li>|</li>|<ol>|</ol>|<ul>|</ul>|<pre>|</pre>|<blockquote>|</blockquote>).*$",
    re.MULTILINE,
)
_TEMPLATE_BRACES = re.compile(r"{{(.*?)}}")


def _escape_template_braces(code: str) -> str:
    # Zendesk renders {{...}} as placeholders
    return _TEMPLATE_BRACES.sub(r"&lcub;&lcub;\1&rcub;&rcub;", code)


def slack_markdown_to_html(markdown: Optional[str]) -> str:
    """Convert Slack mrkdwn into the HTML Zendesk accepts for html_body"""
    if not markdown:
        return ""

    html = _BLOCKQUOTE.sub(r"<blockquote>\1</blockquote>", markdown)
    html = _CODE_BLOCK.sub(lambda m: f"<pre><code>{_escape_template_braces(m.group(1))}</code></pre>", html)

    ordered = _ORDERED_ITEM.sub(r"<li>\1</li>", html)
    if ordered != html:
        html = _LIST_RUN.sub(r"<ol>\1</ol>", ordered, count=1)
    bullets = _BULLET_ITEM.sub(r"<li>\1</li>", html)
    if bullets != html:
        html = _LIST_RUN.sub(r"<ul>\1</ul>", bullets, count=1)

    html = _INLINE_CODE.sub(lambda m: f"<code>{_escape_template_braces(m.group(1))}</code>", html)
    html = _BOLD.sub(r"<strong>\1</strong>", html)
    html = _ITALIC.sub(r"<em>\1</em>", html)
    html = _STRIKE.sub(r"<del>\1</del>", html)

    return _PLAIN_LINE.sub(r"\g<0><br>", html)


def message_html_body(text: Optional[str]) -> str:
    if not text or not text.strip():
        return EMPTY_MESSAGE_HTML
    return slack_markdown_to_html(text)


def slack_permalink(domain: Optional[str], channel: str, ts: str) -> str:
    return f"https://{domain}.slack.com/archives/{channel}/p{ts.replace('.', '')}"


def html_permalink(domain: Optional[str], channel: str, ts: str) -> str:
    """Footer linking a comment back to its Slack message"""
    return f'<p><i>(<a href="{slack_permalink(domain, channel, ts)}">View in Slack</a>)</i></p>'


def html_attachment_links(files: List[SlackFile]) -> str:
    """Links to Slack-hosted files, used when attachments could not be uploaded"""
    links = [
        f'<a href="{f.permalink}">{f.title or f.name or f.id}</a>'
        for f in files
        if f.permalink
    ]
    if not links:
        return ""
    return "<p><strong>Attachments:</strong><br>" + "<br>".join(links) + "</p>"
