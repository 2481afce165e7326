"""Blueprint factory and page helpers shared by the integration tests."""

from __future__ import annotations

import re
from typing import Any

from flask import Blueprint, render_template_string

from forgery_guard import protect_from_forgery

FORM_TEMPLATE = """
<form method="post" action="/articles/">
  {{ authenticity_token_field() }}
  <input type="text" name="title">
</form>
<script>window._token = '{{ form_authenticity_token() }}';</script>
<p id="protected">{{ protect_against_forgery() }}</p>
<p id="param">{{ request_forgery_protection_token() }}</p>
"""

_TOKEN_RE = re.compile(r'name="(?P<name>[^"]+)" value="(?P<value>[^"]+)"')


def make_articles_blueprint(name: str = "articles", *, protect: bool = True, **protect_options: Any) -> Blueprint:
    """Build a fresh blueprint mounted at ``/<name>``, protected unless ``protect=False``."""
    articles = Blueprint(name, __name__, url_prefix=f"/{name}")

    @articles.get("/")
    def index():
        return {"articles": []}

    @articles.get("/new")
    def new():
        return render_template_string(FORM_TEMPLATE)

    @articles.post("/")
    def create():
        return {"created": True}

    @articles.put("/<int:article_id>")
    def update(article_id: int):
        return {"updated": article_id}

    @articles.delete("/<int:article_id>")
    def destroy(article_id: int):
        return {"deleted": article_id}

    @articles.post("/preview")
    def preview():
        return {"preview": True}

    if protect:
        protect_from_forgery(articles, **protect_options)
    return articles


def fetch_token(client, path: str = "/articles/new") -> str:
    """GET a form page and return the embedded authenticity token."""
    response = client.get(path)
    assert response.status_code == 200
    match = _TOKEN_RE.search(response.get_data(as_text=True))
    assert match is not None, "no authenticity token field rendered"
    return match.group("value")
