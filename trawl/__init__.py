"""
Resilient web-extraction engine.

This package extracts structured records from listing and detail pages
whose markup varies: fields are located through ordered fallback probes,
listings are paginated to exhaustion, and detail pages are processed by a
bounded worker pool under an item/request budget.

See DESIGN.md for how the pieces fit together.
"""
