# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Prompt templates for the two classification stages.

The wording and the reply shapes are a fixed contract with the parsers in
classification.py; bump PROMPT_VERSION whenever either side changes.
"""

from __future__ import annotations

PROMPT_VERSION = "2025-06.1"

CONFIRMATION_PROMPT = """\
Analyze the following HTML snippet. Your task is to determine if it is an advertisement.
- If it IS an advertisement, provide a concise but precise one-sentence description of what it's for. \
The description must be in the same language as the ad content.
- If it is NOT an advertisement (e.g., a navigation menu, a cookie consent banner, a related articles widget), \
simply state that it is not an ad.

Respond ONLY with a valid JSON object with two keys:
1. "isAd": a boolean (true or false).
2. "description": a string. If isAd is false, this should be an empty string "".

Example Response (for an ad):
{{
  "isAd": true,
  "description": "An advertisement for a new sports car."
}}

Example Response (for non-ad):
{{
  "isAd": false,
  "description": ""
}}

Here is the HTML snippet to analyze:
```html
{snippet}
```
"""

DISCOVERY_PROMPT = """\
You are given a reduced copy of a web page. Scripts and styles are removed, \
{content_note} and image/video sources are blanked, but tag names, ids, classes \
and other attributes are preserved.

Identify the elements that are most likely advertisements or sponsored content \
(display ads, ad iframes, sponsored links, promoted product tiles, sticky ad bars). \
Do not include navigation menus, cookie consent banners, or the page's own content.

For each one, return a CSS selector that uniquely matches it in this document. \
Prefer #id selectors; otherwise use a path from body with child combinators \
and :nth-of-type(). Return the outermost element of each ad, once.

Respond ONLY with a valid JSON object of the form:
{{"selectors": ["<css selector>", "..."]}}
If there are no ads, respond with {{"selectors": []}}.

Here is the document:
```html
{document}
```
"""

_SKELETON_NOTE = "all text content is stripped"
_TEXT_NOTE = "text content is shortened"


def confirmation_prompt(snippet: str) -> str:
    return CONFIRMATION_PROMPT.format(snippet=snippet)


def discovery_prompt(document: str, *, keeps_text: bool = False) -> str:
    note = _TEXT_NOTE if keeps_text else _SKELETON_NOTE
    return DISCOVERY_PROMPT.format(document=document, content_note=note)
