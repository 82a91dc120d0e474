"""Settings for an extraction run.

CrawlSettings gathers every tunable of the engine into one validated,
immutable Pydantic model. Durations are in seconds.

Example::

    settings = CrawlSettings(num_workers=8, max_pagination_steps=20)
    settings = CrawlSettings.model_validate(json.loads(raw))
"""

from pydantic import BaseModel, ConfigDict, Field

from trawl.data_types import LoadSignal


class CrawlSettings(BaseModel):
    """Tunables for pagination, extraction and the worker pool.

    Attributes:
        num_workers: Concurrent detail-page workers.
        probe_timeout: Bound on each probe's interactive waits.
        load_timeout: Bound on waiting for a page's load signal.
        listing_load_signal: Signal awaited on listing pages.
        detail_load_signal: Signal awaited on detail pages.
        max_pagination_steps: Hard ceiling on pagination steps per listing.
        growth_timeout: How long a "load more" click may take to add items.
        activation_timeout: Bound on clicking a control.
        settle_interval: Pause after a scroll before re-measuring.
        poll_interval: Interval between item counts while awaiting growth.
        dismiss_overlays: Whether to close cookie/marketing overlays on
            listing pages before paginating.
        overlay_fallback_key: Key pressed when no overlay control was found.
            None disables the fallback.
    """

    model_config = ConfigDict(frozen=True)

    num_workers: int = Field(default=5, ge=1, le=64)
    probe_timeout: float = Field(default=3.0, gt=0)
    load_timeout: float = Field(default=30.0, gt=0)
    listing_load_signal: LoadSignal = LoadSignal.DOM_CONTENT_LOADED
    detail_load_signal: LoadSignal = LoadSignal.NETWORK_IDLE
    max_pagination_steps: int = Field(default=30, ge=1)
    growth_timeout: float = Field(default=15.0, gt=0)
    activation_timeout: float = Field(default=10.0, gt=0)
    settle_interval: float = Field(default=1.0, ge=0)
    poll_interval: float = Field(default=0.25, gt=0)
    dismiss_overlays: bool = True
    overlay_fallback_key: str | None = "Escape"
