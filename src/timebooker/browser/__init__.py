"""Browser automation modules (Playwright).

``session`` owns the browser lifecycle, ``navigation`` loads pages with
wait-strategy fallback, and ``dom`` exposes the ``Scope``/``Node`` locator
protocols the booking engine is written against.
"""
