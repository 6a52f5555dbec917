"""
Snapshot capturer: published dashboard → looping animated GIF.

Steps:
    1. launch headless Chromium with the viewport size and a bearer header
    2. load the dashboard and wait for network idle
    3. scroll down in fixed steps until the scrolled distance reaches the
       page height (bounded by a maximum step count) so lazy panels load
    4. take N screenshots at a fixed interval
    5. resize every frame to the first frame's size and write a GIF that loops

Capture is best effort. ``capture()`` never raises; any failure is logged
and returns ``None`` so the pipeline carries on without a snapshot.
"""

from __future__ import annotations

import io
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import Image
from playwright.sync_api import sync_playwright

from dashspine.core.errors import CaptureFailure
from dashspine.core.logging import get_logger
from dashspine.core.settings import DashSpineSettings

logger = get_logger(__name__)

_SCROLL_HEIGHT_JS = "() => document.body.scrollHeight"
_SCROLL_BY_JS = "(distance) => window.scrollBy(0, distance)"


@dataclass(frozen=True)
class CaptureConfig:
    output_dir: Path = Path("gif_captures")
    width: int = 1920
    height: int = 1080
    frames: int = 10
    frame_delay_ms: int = 500
    scroll_step: int = 100
    max_scroll_steps: int = 200
    timeout_ms: int = 120_000

    @classmethod
    def from_settings(cls, settings: DashSpineSettings) -> CaptureConfig:
        return cls(
            output_dir=settings.capture_dir,
            width=settings.capture_width,
            height=settings.capture_height,
            frames=settings.capture_frames,
            frame_delay_ms=settings.capture_frame_delay_ms,
            scroll_step=settings.capture_scroll_step,
            max_scroll_steps=settings.capture_max_scroll_steps,
            timeout_ms=settings.capture_timeout_ms,
        )


def write_gif(frames: list[Image.Image], path: Path, frame_delay_ms: int) -> Path:
    """Write frames as a looping GIF, resizing to the first frame's size."""
    if not frames:
        raise CaptureFailure("No frames captured")
    size = frames[0].size
    normalized = [f if f.size == size else f.resize(size) for f in frames]
    path.parent.mkdir(parents=True, exist_ok=True)
    normalized[0].save(
        path,
        format="GIF",
        save_all=True,
        append_images=normalized[1:],
        duration=frame_delay_ms,
        loop=0,
    )
    return path


class SnapshotCapturer:
    """Captures dashboards with Playwright.

    ``playwright_factory`` defaults to ``sync_playwright`` and is swapped out
    in tests; ``clock`` returns epoch milliseconds for the output filename.
    """

    def __init__(
        self,
        config: CaptureConfig | None = None,
        *,
        playwright_factory: Callable[[], Any] = sync_playwright,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.config = config or CaptureConfig()
        self._playwright_factory = playwright_factory
        self._clock = clock or (lambda: int(time.time() * 1000))

    def capture(self, dashboard_url: str, auth_token: str | None) -> Path | None:
        if not dashboard_url or not auth_token:
            logger.warning("snapshot_skipped", reason="missing url or auth token")
            return None
        try:
            path = self._capture(dashboard_url, auth_token)
        except Exception as e:
            logger.error("snapshot_capture_failed", url=dashboard_url, error=str(e))
            return None
        logger.info("snapshot_captured", url=dashboard_url, path=str(path))
        return path

    def _capture(self, dashboard_url: str, auth_token: str) -> Path:
        cfg = self.config
        images: list[Image.Image] = []

        with self._playwright_factory() as playwright:
            browser = playwright.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
            try:
                context = browser.new_context(
                    viewport={"width": cfg.width, "height": cfg.height},
                    extra_http_headers={"Authorization": f"Bearer {auth_token}"},
                )
                page = context.new_page()
                page.set_default_timeout(cfg.timeout_ms)
                page.goto(dashboard_url, wait_until="networkidle", timeout=cfg.timeout_ms)

                self._auto_scroll(page)

                for index in range(cfg.frames):
                    png = page.screenshot(type="png")
                    with Image.open(io.BytesIO(png)) as shot:
                        images.append(shot.convert("RGB"))
                    if index < cfg.frames - 1:
                        page.wait_for_timeout(cfg.frame_delay_ms)
            finally:
                browser.close()

        path = cfg.output_dir / f"dashboard_{self._clock()}.gif"
        return write_gif(images, path, cfg.frame_delay_ms)

    def _auto_scroll(self, page: Any) -> int:
        """Scroll until the scrolled distance reaches the page height."""
        cfg = self.config
        total = 0
        for _ in range(cfg.max_scroll_steps):
            page.evaluate(_SCROLL_BY_JS, cfg.scroll_step)
            total += cfg.scroll_step
            page.wait_for_timeout(cfg.frame_delay_ms)
            if total >= int(page.evaluate(_SCROLL_HEIGHT_JS)):
                break
        return total


__all__ = ["CaptureConfig", "SnapshotCapturer", "write_gif"]
