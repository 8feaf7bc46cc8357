"""Render script and stylesheet tags for registered packages."""
from typing import Any

from jinja2 import Environment, select_autoescape

from bundler.manager import Bundler
from bundler.registry import RegistrationContext

TAGS_TEMPLATE = """\
{%- for css in styles %}
<link rel="stylesheet" type="text/css" href="{{ css.url }}"{% if css.media %} media="{{ css.media }}"{% endif %} />
{%- endfor %}
{%- for url in scripts %}
<script type="text/javascript" src="{{ url }}"></script>
{%- endfor %}
"""

env = Environment(autoescape=select_autoescape(default_for_string=True))
tags_template = env.from_string(TAGS_TEMPLATE)


def collect_urls(bundler: Bundler, context: RegistrationContext) -> tuple[list[str], list[dict[str, Any]]]:
    """Script URLs and stylesheet entries of all registered packages.

    Compiled packages contribute their bundle URLs, all others their raw
    files. Every URL is listed once, in registration order.

    Returns:
        Tuple of (script urls, [{'url': ..., 'media': ...}, ...])
    """
    scripts: dict[str, None] = {}
    styles: dict[str, str] = {}

    for name in context.packages:
        record = None
        if bundler.config.compression.enabled:
            record = bundler.get_compiled_info(name)

        if record is not None:
            for url in record.get("js", {}).get("urls", []):
                scripts.setdefault(url)
            css = record.get("css", {})
            for url in css.get("urls", []):
                styles.setdefault(url, css.get("media", ""))
            continue

        package = bundler.registry.get(name)
        raw_scripts, raw_styles = bundler.registry.expand(name)
        for ref in raw_scripts:
            scripts.setdefault(ref.url)
        for ref in raw_styles:
            styles.setdefault(ref.url, package.media)

    return list(scripts), [{"url": url, "media": media} for url, media in styles.items()]


def render_tags(bundler: Bundler, context: RegistrationContext) -> str:
    """HTML tags for all packages registered in context."""
    scripts, styles = collect_urls(bundler, context)
    return tags_template.render(scripts=scripts, styles=styles).strip()
